"""
Byte sources for CSV ingestion.
Opens paths, in-memory bytes and binary file objects behind one read interface.
"""

import io
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .models import ParseError, ParseErrorKind

logger = logging.getLogger(__name__)

SourceLike = Union[str, Path, bytes, bytearray, memoryview, BinaryIO]


class ByteSource:
    """Sequential reader over an input of known total size."""

    def __init__(self, stream: BinaryIO, total_bytes: int, name: str,
                 path: Optional[Path] = None, owns_stream: bool = True):
        """
        Initialize byte source.

        Args:
            stream: Binary stream positioned at the start of the input
            total_bytes: Declared size of the input in bytes
            name: Display name for logs and errors
            path: Filesystem path when the input is a file on disk
            owns_stream: Close the stream on close() if True
        """
        self.stream = stream
        self.total_bytes = total_bytes
        self.name = name
        self.path = path
        self.owns_stream = owns_stream
        self.bytes_read = 0
        self._pending = b''
        self._closed = False

    @classmethod
    def open(cls, source: SourceLike) -> 'ByteSource':
        """
        Open a path, bytes object or binary file object.

        Raises:
            ParseError: IO_ERROR if the file cannot be opened
            TypeError: If the source type is not supported
        """
        if isinstance(source, ByteSource):
            return source

        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            return cls(io.BytesIO(data), len(data), name='<bytes>')

        if isinstance(source, (str, Path)):
            file_path = Path(source)
            try:
                total = file_path.stat().st_size
                stream = open(file_path, 'rb')
            except OSError as e:
                raise ParseError(ParseErrorKind.IO_ERROR, f"Cannot open {file_path}: {e}") from e
            logger.debug(f"Opened {file_path.name} ({total} bytes)")
            return cls(stream, total, name=file_path.name, path=file_path)

        if hasattr(source, 'read'):
            name = str(getattr(source, 'name', '<stream>'))
            if not (hasattr(source, 'seekable') and source.seekable()):
                # Size must be known up front for progress; buffer the stream
                try:
                    data = source.read()
                except OSError as e:
                    raise ParseError(ParseErrorKind.IO_ERROR, f"Cannot read {name}: {e}") from e
                return cls(io.BytesIO(data), len(data), name=name, owns_stream=True)
            start = source.tell()
            end = source.seek(0, io.SEEK_END)
            source.seek(start)
            return cls(source, end - start, name=name, owns_stream=False)

        raise TypeError(f"Unsupported CSV source: {type(source).__name__}")

    def peek(self, size: int) -> bytes:
        """Return up to `size` leading bytes without consuming them."""
        while len(self._pending) < size:
            data = self._raw_read(size - len(self._pending))
            if not data:
                break
            self._pending += data
        return self._pending[:size]

    def read(self, size: int) -> bytes:
        """
        Read the next `size` bytes (fewer at end of input).

        Raises:
            ParseError: IO_ERROR if the underlying stream fails
        """
        if self._pending:
            data, self._pending = self._pending[:size], self._pending[size:]
            if len(data) < size:
                data += self._raw_read(size - len(data))
        else:
            data = self._raw_read(size)
        self.bytes_read += len(data)
        return data

    def read_all(self) -> bytes:
        """Read everything that is left."""
        chunks = []
        while True:
            data = self.read(1024 * 1024)
            if not data:
                break
            chunks.append(data)
        return b''.join(chunks)

    def _raw_read(self, size: int) -> bytes:
        if self._closed:
            raise ParseError(ParseErrorKind.IO_ERROR, f"Source {self.name} is closed")
        try:
            return self.stream.read(size)
        except (OSError, ValueError) as e:
            raise ParseError(ParseErrorKind.IO_ERROR,
                             f"Read failed on {self.name} after {self.bytes_read} bytes: {e}") from e

    def descriptor(self) -> Optional[Union[str, bytes]]:
        """
        Self-contained description of the input for another process.

        Returns the path for files on disk, the raw bytes for in-memory
        inputs, and None for caller-owned streams.
        """
        if self.path is not None:
            return str(self.path)
        if self.owns_stream and isinstance(self.stream, io.BytesIO):
            return self.stream.getvalue()
        return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.owns_stream:
            self.stream.close()
        logger.debug(f"Closed source {self.name}")

    def __enter__(self) -> 'ByteSource':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
