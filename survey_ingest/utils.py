"""
Utility functions for paths and display formatting.
"""

from pathlib import Path


def ensure_directory(dir_path: Path) -> Path:
    """Ensure directory exists, create if not."""
    dir_path = Path(dir_path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def truncate_string(s: str, max_length: int = 100) -> str:
    """Truncate string for logging/display."""
    if len(s) <= max_length:
        return s
    return s[:max_length - 3] + "..."


def format_bytes(size: int) -> str:
    """Human-readable byte count (binary units)."""
    value = float(size)
    for unit in ('B', 'KiB', 'MiB'):
        if value < 1024:
            return f"{size} B" if unit == 'B' else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GiB"
