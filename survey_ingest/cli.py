"""
CLI interface for parsing uploaded survey CSV files.
Provides commands for parsing a file and inspecting the chosen strategy.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from tabulate import tabulate

from .config_loader import ConfigLoader
from .logging_setup import setup_logging
from .models import ParseError, ParseOptions, ProgressEvent
from .orchestrator import parse_file
from .size_classifier import describe_strategy
from .utils import format_bytes, truncate_string

logger = logging.getLogger(__name__)


class CLI:
    """Command-line interface for the ingestion parser."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize CLI.

        Args:
            config_dir: Directory holding ingest_config.yaml (optional)
        """
        self.config = ConfigLoader(config_dir) if config_dir else None

    def build_options(self, show_progress: bool = False, **overrides) -> ParseOptions:
        """Merge command-line overrides over the config file (if any)."""
        if show_progress:
            overrides['on_progress'] = self._print_progress
        if self.config:
            return self.config.build_parse_options(**overrides)
        return ParseOptions(**{k: v for k, v in overrides.items() if v is not None})

    @staticmethod
    def _print_progress(event: ProgressEvent) -> None:
        pct = 100 * event.bytes_read // max(1, event.total_bytes)
        print(f"\r  {pct:3d}%  {event.rows_parsed} rows", end='', file=sys.stderr, flush=True)
        if event.bytes_read >= event.total_bytes:
            print(file=sys.stderr)

    def parse(self, file_path: Path, options: ParseOptions, preview: int = 5,
              json_out: Optional[Path] = None) -> int:
        """
        Parse a file and print a summary.

        Args:
            file_path: CSV file
            options: ParseOptions
            preview: Number of rows to print
            json_out: Write the full result as JSON here if given

        Returns:
            Process exit code
        """
        file_path = Path(file_path)
        try:
            result = parse_file(file_path, options)
        except ParseError as e:
            print(f"✗ Failed to parse {file_path.name}: {e}")
            if e.row_index is not None:
                print(f"  Offending row index: {e.row_index}")
            if e.partial_result is not None:
                print(f"  Rows parsed before the failure: {e.partial_result.row_count}")
            return 1

        size = file_path.stat().st_size
        print(f"\n{'='*60}")
        print(tabulate([
            ['File', file_path.name],
            ['Size', format_bytes(size)],
            ['Strategy', describe_strategy(size)],
            ['Encoding', result.encoding],
            ['Columns', len(result.headers)],
            ['Rows', result.row_count],
            ['Normalized', 'yes' if result.normalized else 'no'],
        ], tablefmt='plain'))

        if preview and result.rows:
            print(f"\nFirst {min(preview, result.row_count)} rows:\n")
            table = [[truncate_string(row.get(h, ''), 30) for h in result.headers]
                     for row in result.rows[:preview]]
            print(tabulate(table, headers=[truncate_string(h, 30) for h in result.headers], tablefmt='grid'))

        report = result.encoding_issues
        if report.has_issues:
            print(f"\nEncoding issues ({len(report.issues)}):")
            for issue in report.issues:
                print(f"  - {issue}")
            print("Recommendations:")
            for rec in report.recommendations:
                print(f"  - {rec}")
        else:
            print("\n✓ No encoding issues detected")
        print(f"{'='*60}\n")

        if json_out:
            json_out = Path(json_out)
            json_out.parent.mkdir(parents=True, exist_ok=True)
            with open(json_out, 'w', encoding='utf-8') as f:
                json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
            print(f"✓ Wrote {result.row_count} rows to {json_out}")

        return 0

    def classify(self, file_path: Path) -> int:
        """Print the strategy parse_smart would choose for a file."""
        file_path = Path(file_path)
        size = file_path.stat().st_size
        print(f"{file_path.name}: {format_bytes(size)} -> {describe_strategy(size)}")
        return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Survey CSV ingestion parser")

    parser.add_argument('--config', type=Path, help='Directory containing ingest_config.yaml')
    parser.add_argument('--log-dir', type=Path, help='Write structured logs to this directory')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # parse command
    parse_parser = subparsers.add_parser('parse', help='Parse a CSV file')
    parse_parser.add_argument('path', type=Path, help='CSV file')
    parse_parser.add_argument('--chunk-size', type=int, help='Bytes per chunk when streaming')
    parse_parser.add_argument('--strict', action='store_true', default=None,
                              help='Fail on rows whose field count differs from the header')
    parse_parser.add_argument('--encoding', type=str, help='Declared source encoding')
    parse_parser.add_argument('--delimiter', type=str, help='Field delimiter (default: comma)')
    parse_parser.add_argument('--normalize', action='store_true', default=None,
                              help='Map smart quotes, dashes, ellipses and Unicode spaces to ASCII')
    parse_parser.add_argument('--preview', type=int, default=5, help='Rows to print')
    parse_parser.add_argument('--json', type=Path, dest='json_out', help='Write result JSON to this path')
    parse_parser.add_argument('--progress', action='store_true', help='Show progress')

    # classify command
    classify_parser = subparsers.add_parser('classify', help='Show the parsing strategy for a file')
    classify_parser.add_argument('path', type=Path, help='CSV file')

    args = parser.parse_args(argv)

    cli = CLI(args.config)

    if args.log_dir or cli.config:
        settings = cli.config.load_logging_settings() if cli.config else {}
        setup_logging(
            log_dir=args.log_dir or Path(settings.get('log_dir', './logs')),
            log_level=settings.get('level', 'INFO'),
            json_format=settings.get('json_format', True),
            console_output=settings.get('console_output', False),
            redact_patterns=settings.get('redact_patterns'),
        )

    if args.command == 'parse':
        if args.delimiter in ('\\t', 'tab'):
            args.delimiter = '\t'
        try:
            options = cli.build_options(
                show_progress=args.progress,
                chunk_size=args.chunk_size,
                strict_field_count=args.strict,
                encoding_hint=args.encoding,
                delimiter=args.delimiter,
                normalize=args.normalize,
            )
        except ValueError as e:
            parser.error(str(e))
        return cli.parse(args.path, options, preview=args.preview, json_out=args.json_out)
    elif args.command == 'classify':
        return cli.classify(args.path)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
