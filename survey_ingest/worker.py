"""
Worker process for very large inputs.
Runs the streaming parse in a separate process and talks to it only through messages.
"""

import asyncio
import logging
import multiprocessing
import queue
from dataclasses import dataclass
from typing import Optional, Union

from .models import ParseError, ParseErrorKind, ParseOptions, ParseResult, ProgressEvent

logger = logging.getLogger(__name__)

MSG_PROGRESS = 'progress'
MSG_ROW = 'row'
MSG_RESULT = 'result'
MSG_ERROR = 'error'
MSG_CANCEL = 'cancel'

POLL_INTERVAL = 0.05  # seconds between cancel checks while waiting on the worker
JOIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class WorkerRequest:
    """Everything the worker needs, in picklable form."""
    source: Union[str, bytes]  # file path or raw bytes
    chunk_size: int
    encoding_hint: Optional[str]
    strict_field_count: bool
    delimiter: str
    normalize: bool = False
    forward_rows: bool = False  # post a row message per parsed row

    @classmethod
    def from_options(cls, source: Union[str, bytes], options: ParseOptions) -> 'WorkerRequest':
        return cls(
            source=source,
            chunk_size=options.chunk_size,
            encoding_hint=options.encoding_hint,
            strict_field_count=options.strict_field_count,
            delimiter=options.delimiter,
            normalize=options.normalize,
            forward_rows=options.on_row is not None,
        )


class ControlQueueSignal:
    """Cancel signal fed by messages on the control queue."""

    def __init__(self, control):
        self._control = control
        self._set = False

    def is_set(self) -> bool:
        if not self._set:
            try:
                self._set = self._control.get_nowait() == MSG_CANCEL
            except queue.Empty:
                pass
        return self._set


def _post_row(outbox):
    def post(row, row_index):
        outbox.put((MSG_ROW, {'row': row, 'row_index': row_index}))
    return post


def worker_main(request: WorkerRequest, outbox, control) -> None:
    """
    Process entry point. Posts progress (and optionally row) messages, then
    exactly one result or error.

    Args:
        request: WorkerRequest
        outbox: Queue for messages to the caller
        control: Queue for messages from the caller
    """
    from .orchestrator import parse_streaming

    options = ParseOptions(
        chunk_size=request.chunk_size,
        on_progress=lambda event: outbox.put((MSG_PROGRESS, event.to_dict())),
        encoding_hint=request.encoding_hint,
        strict_field_count=request.strict_field_count,
        cancel_event=ControlQueueSignal(control),
        delimiter=request.delimiter,
        on_row=_post_row(outbox) if request.forward_rows else None,
        normalize=request.normalize,
    )

    try:
        result = asyncio.run(parse_streaming(request.source, options))
    except ParseError as e:
        outbox.put((MSG_ERROR, e.to_dict()))
    except Exception as e:
        # Anything else still has to reach the caller as a terminal message
        error = ParseError(ParseErrorKind.WORKER_FAILURE, f"{type(e).__name__}: {e}")
        outbox.put((MSG_ERROR, error.to_dict()))
    else:
        outbox.put((MSG_RESULT, result.to_dict()))


class ParseWorker:
    """Caller side of the worker process."""

    def __init__(self, start_method: str = 'spawn'):
        """
        Initialize worker.

        Args:
            start_method: multiprocessing start method
        """
        self.context = multiprocessing.get_context(start_method)

    async def run(self, source: Union[str, bytes], options: ParseOptions) -> ParseResult:
        """
        Stream-parse `source` in a worker process.

        Progress and row messages are forwarded to options.on_progress and
        options.on_row; the caller's cancel signal is forwarded as a control message.

        Raises:
            ParseError: Rebuilt from the worker's error message, CANCELLED if the
                caller cancelled, WORKER_FAILURE if the process died silently
        """
        outbox = self.context.Queue()
        control = self.context.Queue()
        request = WorkerRequest.from_options(source, options)
        process = self.context.Process(target=worker_main, args=(request, outbox, control), daemon=True)
        process.start()
        logger.debug(f"Worker process started (pid {process.pid})")

        cancel_sent = False
        try:
            while True:
                if not cancel_sent and options.is_cancelled():
                    logger.info("Forwarding cancellation to worker")
                    control.put(MSG_CANCEL)
                    cancel_sent = True

                message = await asyncio.to_thread(self._next_message, outbox, process)
                if message is None:
                    continue

                kind, payload = message
                if kind == MSG_PROGRESS:
                    if options.on_progress is not None:
                        options.on_progress(ProgressEvent(**payload))
                    continue
                if kind == MSG_ROW:
                    if options.on_row is not None:
                        options.on_row(payload['row'], payload['row_index'])
                    continue
                if kind == MSG_RESULT:
                    if cancel_sent:
                        raise ParseError(ParseErrorKind.CANCELLED, "Parsing was cancelled")
                    return ParseResult.from_dict(payload)
                raise ParseError.from_dict(payload)

        except ParseError as e:
            logger.error(f"Worker parse failed: {e}")
            raise

        finally:
            await asyncio.to_thread(self._stop, process)
            outbox.close()
            control.close()

    @staticmethod
    def _stop(process) -> None:
        """Wait for the worker to exit, terminating it after JOIN_TIMEOUT."""
        process.join(JOIN_TIMEOUT)
        if process.is_alive():
            logger.warning(f"Worker {process.pid} did not exit, terminating")
            process.terminate()
            process.join()

    @staticmethod
    def _next_message(outbox, process):
        """Next message, or None after POLL_INTERVAL with the worker still alive."""
        try:
            return outbox.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            pass
        if process.is_alive():
            return None
        # The process may have exited right after posting its last message
        try:
            return outbox.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            raise ParseError(
                ParseErrorKind.WORKER_FAILURE,
                f"Worker process exited with code {process.exitcode} without a result",
            )
