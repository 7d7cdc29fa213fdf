"""
Data models for the survey CSV ingestion parser.
Defines options, progress events, results and the parse error type.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Optional


DEFAULT_CHUNK_SIZE = 256 * 1024  # 256 KiB per physical read


class ParseErrorKind(str, Enum):
    """Kind of a terminal parse failure."""
    IO_ERROR = "io_error"
    MALFORMED_QUOTING = "malformed_quoting"
    ROW_SHAPE_MISMATCH = "row_shape_mismatch"
    CANCELLED = "cancelled"
    WORKER_FAILURE = "worker_failure"


class StreamState(str, Enum):
    """States of the streaming parse loop."""
    IDLE = "idle"
    READING = "reading"
    ACCUMULATING = "accumulating"
    FINALIZING = "finalizing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted after each physical read."""
    bytes_read: int
    total_bytes: int
    rows_parsed: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ParseOptions:
    """Options for one parse call."""
    chunk_size: int = DEFAULT_CHUNK_SIZE  # bytes per physical read
    on_progress: Optional[Callable[[ProgressEvent], Any]] = None
    encoding_hint: Optional[str] = None  # declared source encoding, e.g. 'cp1252'
    strict_field_count: bool = False  # reject ragged rows instead of padding them
    cancel_event: Optional[Any] = None  # anything with is_set(), e.g. threading.Event
    delimiter: str = ','
    on_row: Optional[Callable[[dict[str, str], int], Any]] = None  # (row, row_index) per parsed row
    normalize: bool = False  # map typographic quotes, dashes and Unicode spaces to ASCII

    def __post_init__(self):
        if not isinstance(self.chunk_size, int) or isinstance(self.chunk_size, bool) or self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be a positive integer, got {self.chunk_size!r}")
        if not isinstance(self.delimiter, str) or len(self.delimiter) != 1 or self.delimiter in '"\r\n':
            raise ValueError(f"delimiter must be a single character other than quote or newline, got {self.delimiter!r}")

    def is_cancelled(self) -> bool:
        """Poll the caller's abort signal."""
        return self.cancel_event is not None and bool(self.cancel_event.is_set())


@dataclass
class EncodingIssueReport:
    """Descriptive report of encoding corruption found and repaired."""
    has_issues: bool = False
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'EncodingIssueReport':
        return cls(
            has_issues=bool(data.get('has_issues', False)),
            issues=list(data.get('issues', [])),
            recommendations=list(data.get('recommendations', [])),
        )


@dataclass
class ParseResult:
    """Headers, rows and encoding report for one parsed input."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)  # in input order
    encoding_issues: EncodingIssueReport = field(default_factory=EncodingIssueReport)
    encoding: str = 'utf-8'  # codec used to decode the input
    bytes_processed: int = 0
    normalized: bool = False  # typographic normalization changed at least one field

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'headers': list(self.headers),
            'rows': self.rows,
            'encoding_issues': self.encoding_issues.to_dict(),
            'encoding': self.encoding,
            'bytes_processed': self.bytes_processed,
            'normalized': self.normalized,
            'row_count': self.row_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ParseResult':
        return cls(
            headers=list(data.get('headers', [])),
            rows=list(data.get('rows', [])),
            encoding_issues=EncodingIssueReport.from_dict(data.get('encoding_issues', {})),
            encoding=data.get('encoding', 'utf-8'),
            bytes_processed=int(data.get('bytes_processed', 0)),
            normalized=bool(data.get('normalized', False)),
        )

    def to_dataframe(self):
        """
        Convert rows to a pandas DataFrame of strings.

        Columns follow header order; synthetic `_extra_<n>` keys from ragged
        rows are appended after the headers.
        """
        import pandas as pd

        columns = list(dict.fromkeys(self.headers))
        for row in self.rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        data = [[row.get(column, '') for column in columns] for row in self.rows]
        return pd.DataFrame(data, columns=columns, dtype=str)


class ParseError(Exception):
    """Terminal parse failure with a kind and a human-readable message."""

    def __init__(self,
                 kind: ParseErrorKind,
                 message: str,
                 row_index: Optional[int] = None,
                 partial_result: Optional[ParseResult] = None):
        super().__init__(message)
        self.kind = ParseErrorKind(kind)
        self.message = message
        self.row_index = row_index
        self.partial_result = partial_result

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    def __reduce__(self):
        return (self.__class__, (self.kind, self.message, self.row_index, self.partial_result))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'kind': self.kind.value,
            'message': self.message,
            'row_index': self.row_index,
            'partial_result': self.partial_result.to_dict() if self.partial_result else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ParseError':
        partial = data.get('partial_result')
        return cls(
            kind=ParseErrorKind(data['kind']),
            message=data.get('message', ''),
            row_index=data.get('row_index'),
            partial_result=ParseResult.from_dict(partial) if partial else None,
        )
