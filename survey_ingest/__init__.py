"""
Survey CSV ingestion package.
"""

__version__ = "0.1.0"
__author__ = "Automation Team"

from .models import (
    ParseOptions,
    ProgressEvent,
    ParseResult,
    EncodingIssueReport,
    ParseError,
    ParseErrorKind,
    StreamState,
)
from .size_classifier import should_use_streaming, should_use_worker
from .chunk_reader import Chunk, ChunkReader
from .csv_parser import RecordParser, RowShaper
from .sanitizer import EncodingSanitizer
from .issue_report import IssueCollector, sanitize_with_report
from .encoding_detector import EncodingDetector
from .local_fs import ByteSource
from .orchestrator import parse_non_streaming, parse_streaming, parse_smart, parse_file
from .config_loader import ConfigLoader
from .logging_setup import setup_logging, get_logger

__all__ = [
    'ParseOptions',
    'ProgressEvent',
    'ParseResult',
    'EncodingIssueReport',
    'ParseError',
    'ParseErrorKind',
    'StreamState',
    'should_use_streaming',
    'should_use_worker',
    'Chunk',
    'ChunkReader',
    'RecordParser',
    'RowShaper',
    'EncodingSanitizer',
    'IssueCollector',
    'sanitize_with_report',
    'EncodingDetector',
    'ByteSource',
    'parse_non_streaming',
    'parse_streaming',
    'parse_smart',
    'parse_file',
    'ConfigLoader',
    'setup_logging',
    'get_logger',
]
