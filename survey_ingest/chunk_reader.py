"""
Chunked reader for large CSV inputs.
Yields text chunks that always end on a record boundary.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterator

from .encoding_detector import make_decoder
from .local_fs import ByteSource
from .models import DEFAULT_CHUNK_SIZE, ParseError, ParseErrorKind
from .sanitizer import EncodingSanitizer

logger = logging.getLogger(__name__)

_QUOTE_OR_LF = re.compile('["\n]')


@dataclass
class Chunk:
    """Complete records from one physical read."""
    text: str  # may be empty while a record is still open
    bytes_read: int  # cumulative
    total_bytes: int
    final: bool


class RecordBoundaryScanner:
    """
    Track CSV quoting state across consecutive pieces of text.

    A quote opens a quoted field only at the start of a field, as in
    RecordParser; a line feed outside a quoted field ends a record.
    """

    def __init__(self, delimiter: str = ','):
        self.delimiter = delimiter
        self.in_quotes = False
        self._pending_quote = False  # piece ended on a quote inside a quoted field
        self._prev_char = '\n'

    def scan(self, piece: str) -> int:
        """
        Scan the next piece of text.

        Returns:
            Index in `piece` just past its last record terminator, or -1
        """
        n = len(piece)
        if not n:
            return -1

        pos = 0
        last_cut = -1

        if self._pending_quote:
            self._pending_quote = False
            if piece[0] == '"':
                pos = 1
            else:
                self.in_quotes = False

        while pos < n:
            if self.in_quotes:
                quote = piece.find('"', pos)
                if quote == -1:
                    break
                if quote + 1 == n:
                    # Escaped or closing quote: decided by the next piece
                    self._pending_quote = True
                    break
                if piece[quote + 1] == '"':
                    pos = quote + 2
                    continue
                self.in_quotes = False
                pos = quote + 1
                continue

            match = _QUOTE_OR_LF.search(piece, pos)
            if match is None:
                break
            i = match.start()
            if piece[i] == '\n':
                last_cut = i + 1
            else:
                prev = piece[i - 1] if i else self._prev_char
                if prev == self.delimiter or prev == '\n':
                    self.in_quotes = True
            pos = i + 1

        self._prev_char = piece[-1]
        return last_cut


class ChunkReader:
    """Read a ByteSource in fixed-size chunks, carrying partial records forward."""

    def __init__(self,
                 source: ByteSource,
                 encoding: str,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 delimiter: str = ','):
        """
        Initialize chunk reader.

        Args:
            source: Opened byte source
            encoding: Codec for decoding
            chunk_size: Bytes per physical read
            delimiter: Field delimiter, needed to recognise field starts
        """
        self.source = source
        self.encoding = encoding
        self.chunk_size = chunk_size
        self.scanner = RecordBoundaryScanner(delimiter)
        self.bom_stripped = False
        self._bom_checked = False
        self._carry: list[str] = []

    def __iter__(self) -> Iterator[Chunk]:
        return self.chunks()

    def chunks(self) -> Iterator[Chunk]:
        """
        Yield one Chunk per physical read.

        Raises:
            ParseError: IO_ERROR if the source fails or ends early
        """
        total = self.source.total_bytes
        decoder = make_decoder(self.encoding)

        if total == 0:
            yield Chunk(text='', bytes_read=0, total_bytes=0, final=True)
            return

        while True:
            data = self.source.read(self.chunk_size)
            bytes_read = self.source.bytes_read
            if not data and bytes_read < total:
                raise ParseError(
                    ParseErrorKind.IO_ERROR,
                    f"Unexpected end of {self.source.name} after {bytes_read} of {total} bytes",
                )
            final = bytes_read >= total

            text = decoder.decode(data, final=final)
            if not self._bom_checked and text:
                self._bom_checked = True
                text, self.bom_stripped = EncodingSanitizer.strip_bom(text)

            yield Chunk(text=self._take_complete(text, final), bytes_read=bytes_read,
                        total_bytes=total, final=final)
            if final:
                return

    def _take_complete(self, text: str, final: bool) -> str:
        if final:
            self._carry.append(text)
            complete = ''.join(self._carry)
            self._carry = []
            return complete

        cut = self.scanner.scan(text)
        if cut == -1:
            if text:
                self._carry.append(text)
            return ''

        self._carry.append(text[:cut])
        complete = ''.join(self._carry)
        self._carry = [text[cut:]] if cut < len(text) else []
        return complete
