"""
Size-based parsing strategy selection.
"""

MIB = 1024 * 1024

STREAMING_THRESHOLD = 1 * MIB
WORKER_THRESHOLD = 5 * MIB


def should_use_streaming(size_bytes: int) -> bool:
    """True for inputs of 1 MiB or more."""
    return size_bytes >= STREAMING_THRESHOLD


def should_use_worker(size_bytes: int) -> bool:
    """True for inputs strictly larger than 5 MiB."""
    return size_bytes > WORKER_THRESHOLD


def describe_strategy(size_bytes: int) -> str:
    """Human-readable name of the strategy parse_smart would pick."""
    if not should_use_streaming(size_bytes):
        return 'non-streaming'
    if should_use_worker(size_bytes):
        return 'streaming (worker process)'
    return 'streaming (inline)'
