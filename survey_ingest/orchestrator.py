"""
Parse orchestrator.
Entry points for non-streaming, streaming and size-adaptive CSV parsing.
"""

import asyncio
import logging
from typing import Optional

from .chunk_reader import ChunkReader
from .csv_parser import RecordParser, RowShaper
from .encoding_detector import SAMPLE_SIZE, EncodingDetector, decode_all
from .issue_report import IssueCollector
from .local_fs import ByteSource, SourceLike
from .models import (
    ParseError,
    ParseErrorKind,
    ParseOptions,
    ParseResult,
    ProgressEvent,
    StreamState,
)
from .sanitizer import EncodingSanitizer
from .size_classifier import should_use_streaming, should_use_worker
from .worker import ParseWorker

logger = logging.getLogger(__name__)


def _detect_encoding(src: ByteSource, options: ParseOptions, collector: IssueCollector) -> str:
    """Pick the codec from the same leading sample on every path."""
    sample = src.peek(SAMPLE_SIZE)
    decision = EncodingDetector.detect(
        sample,
        hint=options.encoding_hint,
        is_complete=len(sample) >= src.total_bytes,
    )
    collector.add_decision(decision)
    logger.debug(f"Encoding for {src.name}: {decision.encoding} ({decision.method})")
    return decision.encoding


def _notify(options: ParseOptions, event: ProgressEvent) -> None:
    if options.on_progress is not None:
        options.on_progress(event)


def _cancelled(src: ByteSource) -> ParseError:
    return ParseError(ParseErrorKind.CANCELLED, f"Parsing of {src.name} was cancelled")


def _result(shaper: RowShaper, collector: IssueCollector, encoding: str, bytes_processed: int) -> ParseResult:
    return ParseResult(
        headers=list(shaper.headers or []),
        rows=shaper.rows,
        encoding_issues=collector.build(),
        encoding=encoding,
        bytes_processed=bytes_processed,
        normalized=collector.normalized,
    )


async def parse_non_streaming(source: SourceLike, options: Optional[ParseOptions] = None) -> ParseResult:
    """
    Read the whole input into memory and parse it in one pass.

    Args:
        source: Path, bytes or binary file object
        options: ParseOptions (chunk_size is ignored)

    Returns:
        ParseResult

    Raises:
        ParseError: On I/O failure, malformed quoting, strict-mode ragged rows or cancellation
    """
    options = options or ParseOptions()
    src = ByteSource.open(source)
    logger.info(f"Parsing {src.name} ({src.total_bytes} bytes) without streaming")

    try:
        if options.is_cancelled():
            raise _cancelled(src)

        collector = IssueCollector()
        encoding = _detect_encoding(src, options, collector)
        data = await asyncio.to_thread(src.read_all)

        if options.is_cancelled():
            raise _cancelled(src)

        text, bom_stripped = EncodingSanitizer.strip_bom(decode_all(data, encoding))
        if bom_stripped:
            collector.note_bom()

        shaper = RowShaper(options.strict_field_count, collector, options.on_row, options.normalize)
        shaper.add_records(RecordParser(options.delimiter).parse(text))

        _notify(options, ProgressEvent(bytes_read=len(data), total_bytes=src.total_bytes,
                                       rows_parsed=len(shaper.rows)))

        result = _result(shaper, collector, encoding, len(data))
        logger.info(f"Parsed {src.name}: {result.row_count} rows, {len(result.headers)} columns")
        return result

    except ParseError as e:
        logger.error(f"Error parsing {src.name}: {e}")
        raise

    finally:
        src.close()


async def parse_streaming(source: SourceLike, options: Optional[ParseOptions] = None) -> ParseResult:
    """
    Parse the input chunk by chunk, yielding to the event loop between chunks.

    Args:
        source: Path, bytes or binary file object
        options: ParseOptions

    Returns:
        ParseResult identical to parse_non_streaming for the same input

    Raises:
        ParseError: IO_ERROR carries the rows parsed before the failure in
            `partial_result`; CANCELLED carries nothing
    """
    options = options or ParseOptions()
    src = ByteSource.open(source)
    logger.info(f"Streaming {src.name} ({src.total_bytes} bytes) in {options.chunk_size}-byte chunks")

    state = StreamState.IDLE
    collector = IssueCollector()
    shaper = RowShaper(options.strict_field_count, collector, options.on_row, options.normalize)
    encoding = 'utf-8'

    try:
        if options.is_cancelled():
            raise _cancelled(src)

        encoding = _detect_encoding(src, options, collector)
        parser = RecordParser(options.delimiter)
        reader = ChunkReader(src, encoding, options.chunk_size, options.delimiter)
        bom_noted = False
        chunk_index = 0

        state = StreamState.READING
        for chunk in reader:
            state = StreamState.ACCUMULATING
            if reader.bom_stripped and not bom_noted:
                collector.note_bom()
                bom_noted = True

            shaper.add_records(parser.parse(chunk.text))
            logger.debug(f"Chunk {chunk_index} [{state.value}]: {chunk.bytes_read}/{chunk.total_bytes} bytes, "
                         f"{len(shaper.rows)} rows")
            _notify(options, ProgressEvent(bytes_read=chunk.bytes_read, total_bytes=chunk.total_bytes,
                                           rows_parsed=len(shaper.rows)))

            if chunk.final:
                break

            await asyncio.sleep(0)
            if options.is_cancelled():
                raise _cancelled(src)
            chunk_index += 1
            state = StreamState.READING

        state = StreamState.FINALIZING
        result = _result(shaper, collector, encoding, src.bytes_read)
        state = StreamState.DONE
        logger.info(f"Parsed {src.name}: {result.row_count} rows, {len(result.headers)} columns "
                    f"in {chunk_index + 1} chunk(s)")
        return result

    except ParseError as e:
        if state in (StreamState.READING, StreamState.ACCUMULATING):
            state = StreamState.ABORTED
        if e.kind == ParseErrorKind.IO_ERROR and e.partial_result is None:
            e.partial_result = _result(shaper, collector, encoding, src.bytes_read)
        logger.error(f"Error streaming {src.name} ({state.value}): {e}")
        raise

    finally:
        src.close()


async def parse_smart(source: SourceLike, options: Optional[ParseOptions] = None) -> ParseResult:
    """
    Choose the parsing strategy from the input size.

    Inputs under 1 MiB are parsed in one pass, larger ones are streamed, and
    inputs over 5 MiB are streamed in a worker process when the source can
    be handed over (a path or bytes). The returned data is the same in every case.

    Args:
        source: Path, bytes or binary file object
        options: ParseOptions

    Returns:
        ParseResult
    """
    options = options or ParseOptions()
    src = ByteSource.open(source)
    size = src.total_bytes

    if not should_use_streaming(size):
        return await parse_non_streaming(src, options)

    if should_use_worker(size):
        descriptor = src.descriptor()
        if descriptor is not None:
            logger.info(f"Delegating {src.name} ({size} bytes) to worker process")
            src.close()
            return await ParseWorker().run(descriptor, options)
        logger.info(f"{src.name} is a caller-owned stream, streaming inline")

    return await parse_streaming(src, options)


def parse_file(source: SourceLike, options: Optional[ParseOptions] = None) -> ParseResult:
    """Synchronous wrapper around parse_smart."""
    return asyncio.run(parse_smart(source, options))
