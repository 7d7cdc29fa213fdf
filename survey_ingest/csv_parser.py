"""
CSV record parser.
Splits buffers of complete records into fields and shapes them into header-keyed rows.
"""

import logging
import re
from typing import Any, Callable, Optional

from .issue_report import IssueCollector
from .models import ParseError, ParseErrorKind
from .sanitizer import EncodingSanitizer

logger = logging.getLogger(__name__)

EXTRA_FIELD_PREFIX = '_extra_'


class RecordParser:
    """Parse RFC-4180 style records."""

    def __init__(self, delimiter: str = ','):
        """
        Initialize record parser.

        Args:
            delimiter: Field delimiter
        """
        self.delimiter = delimiter
        escaped = re.escape(delimiter)
        self._quoted = re.compile(r'"([^"]*(?:""[^"]*)*)"')
        # A lone CR is field content; only LF and CRLF end a record
        self._unquoted = re.compile(rf'(?:[^{escaped}\r\n]|\r(?!\n))*')

    def parse(self, buffer: str) -> list[list[str]]:
        """
        Parse a buffer holding zero or more complete records.

        Blank records are skipped.

        Args:
            buffer: Text ending on a record boundary (or at end of input)

        Returns:
            List of records, each a list of field strings

        Raises:
            ParseError: MALFORMED_QUOTING on an unterminated quoted field or
                on text between a closing quote and the next delimiter
        """
        if '"' not in buffer:
            return self._parse_unquoted(buffer)

        records = []
        delim = self.delimiter
        n = len(buffer)
        pos = 0

        while pos < n:
            if buffer[pos] == '\n':
                pos += 1
                continue
            if buffer.startswith('\r\n', pos):
                pos += 2
                continue

            fields = []
            while True:
                if pos < n and buffer[pos] == '"':
                    match = self._quoted.match(buffer, pos)
                    if match is None:
                        raise ParseError(
                            ParseErrorKind.MALFORMED_QUOTING,
                            f"Unterminated quoted field in record {len(records) + 1} of chunk: "
                            f"{buffer[pos:pos + 40]!r}",
                        )
                    fields.append(match.group(1).replace('""', '"'))
                    pos = match.end()
                    if pos < n and buffer[pos] != delim and buffer[pos] != '\n' \
                            and not buffer.startswith('\r\n', pos):
                        raise ParseError(
                            ParseErrorKind.MALFORMED_QUOTING,
                            f"Unexpected {buffer[pos]!r} after closing quote: {buffer[max(0, pos - 20):pos + 20]!r}",
                        )
                else:
                    match = self._unquoted.match(buffer, pos)
                    fields.append(match.group(0))
                    pos = match.end()

                if pos >= n:
                    break
                char = buffer[pos]
                if char == delim:
                    pos += 1
                    continue
                pos += 1 if char == '\n' else 2  # LF or CRLF
                break

            records.append(fields)

        return records

    def _parse_unquoted(self, buffer: str) -> list[list[str]]:
        lines = buffer.split('\n')
        last = len(lines) - 1
        records = []
        for i, line in enumerate(lines):
            if i < last and line.endswith('\r'):
                line = line[:-1]
            if line:
                records.append(line.split(self.delimiter))
        return records


class RowShaper:
    """Turn parsed records into header-keyed rows, sanitizing every field."""

    def __init__(self,
                 strict_field_count: bool = False,
                 collector: Optional[IssueCollector] = None,
                 on_row: Optional[Callable[[dict[str, str], int], Any]] = None,
                 normalize: bool = False):
        """
        Initialize row shaper.

        Args:
            strict_field_count: Raise on ragged rows instead of padding them
            collector: Receives encoding findings for each field
            on_row: Called with (row, row_index) as each row is shaped
            normalize: Normalize typographic punctuation and spaces
        """
        self.strict_field_count = strict_field_count
        self.collector = collector or IssueCollector()
        self.on_row = on_row
        self.normalize = normalize
        self.headers: Optional[list[str]] = None
        self.rows: list[dict[str, str]] = []

    def add_records(self, records: list[list[str]]) -> int:
        """
        Consume records in input order. The first record ever seen is the header.

        Returns:
            Number of data rows added

        Raises:
            ParseError: ROW_SHAPE_MISMATCH in strict mode
        """
        added = 0
        for fields in records:
            if self.headers is None:
                self.headers = [self._clean(value, None, str(i)) for i, value in enumerate(fields)]
                logger.debug(f"Header row: {len(self.headers)} columns")
                continue
            row_index = len(self.rows)
            row = self.shape(fields, row_index)
            self.rows.append(row)
            added += 1
            if self.on_row is not None:
                self.on_row(row, row_index)
        return added

    def shape(self, fields: list[str], row_index: int) -> dict[str, str]:
        """Map one record onto the header."""
        headers = self.headers
        expected = len(headers)
        actual = len(fields)

        if actual != expected and self.strict_field_count:
            raise ParseError(
                ParseErrorKind.ROW_SHAPE_MISMATCH,
                f"Row {row_index} has {actual} fields, expected {expected}",
                row_index=row_index,
            )

        values = [self._clean(value, row_index, headers[i] if i < expected else f"{EXTRA_FIELD_PREFIX}{i}")
                  for i, value in enumerate(fields)]

        if actual == expected:
            return dict(zip(headers, values))

        row = {}
        for i, header in enumerate(headers):
            row[header] = values[i] if i < actual else ''
        for i in range(expected, actual):
            row[f"{EXTRA_FIELD_PREFIX}{i}"] = values[i]
        return row

    def _clean(self, value: str, row_index: Optional[int], column: str) -> str:
        outcome = EncodingSanitizer.sanitize(value, self.normalize)
        if outcome.has_issues or outcome.normalized:
            self.collector.record(outcome, row_index, column)
        return outcome.text
