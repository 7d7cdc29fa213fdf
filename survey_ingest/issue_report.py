"""
Encoding issue report builder.
Aggregates per-field sanitizer findings into one EncodingIssueReport.
"""

import logging
from typing import Optional

from .encoding_detector import EncodingDecision, EncodingDetector
from .models import EncodingIssueReport
from .sanitizer import EncodingSanitizer, IssueKind, SanitizeOutcome
from .utils import truncate_string

logger = logging.getLogger(__name__)


RECOMMENDATIONS = {
    IssueKind.BOM: 'Save the file as UTF-8 without a byte-order mark',
    IssueKind.MOJIBAKE: EncodingDetector.REEXPORT_HINT,
    IssueKind.REPLACEMENT_CHAR: EncodingDetector.REEXPORT_HINT,
    IssueKind.STRAY_BOM: 'Remove invisible formatting characters from the source data',
    IssueKind.ZERO_WIDTH: 'Remove invisible formatting characters from the source data',
    IssueKind.CONTROL_CHAR: 'Remove non-printable control characters from the source data',
}


class IssueCollector:
    """Collects sanitizer findings for one parse."""

    def __init__(self):
        # kind -> {'count', 'fields', 'first', 'example'}, in order of first occurrence
        self._stats: dict[IssueKind, dict] = {}
        self._issues: list[str] = []
        self._recommendations: list[str] = []
        self.normalized = False  # typographic normalization changed at least one field

    def add_decision(self, decision: EncodingDecision) -> None:
        """Record findings from encoding detection."""
        for issue in decision.issues:
            self._issues.append(issue)
        for rec in decision.recommendations:
            self._add_recommendation(rec)

    def note_bom(self) -> None:
        """Record the leading byte-order mark stripped from the input."""
        self._stats[IssueKind.BOM] = {'count': 1, 'fields': 0, 'first': None, 'example': None}
        self._add_recommendation(RECOMMENDATIONS[IssueKind.BOM])

    def record(self, outcome: SanitizeOutcome, row_index: Optional[int], column: Optional[str]) -> None:
        """
        Record one sanitized field.

        Args:
            outcome: Sanitizer outcome for the field
            row_index: Data row index, None for the header row
            column: Column name (or header position for header cells)
        """
        if outcome.normalized:
            self.normalized = True
        if not outcome.has_issues:
            return
        for kind, count in outcome.counts.items():
            stats = self._stats.get(kind)
            if stats is None:
                stats = {'count': 0, 'fields': 0, 'first': (row_index, column), 'example': outcome.example}
                self._stats[kind] = stats
                self._add_recommendation(RECOMMENDATIONS[kind])
            stats['count'] += count
            stats['fields'] += 1

    def _add_recommendation(self, rec: str) -> None:
        if rec not in self._recommendations:
            self._recommendations.append(rec)

    @staticmethod
    def _location(first) -> str:
        row_index, column = first
        if column is None:
            return 'start of text'
        if row_index is None:
            return f"header column {column}"
        return f"row {row_index}, column {truncate_string(column, 40)!r}"

    def _describe(self, kind: IssueKind, stats: dict) -> str:
        count = stats['count']
        if kind == IssueKind.BOM:
            return 'Stripped leading byte-order mark (BOM) from input'
        where = f"in {stats['fields']} field(s), first at {self._location(stats['first'])}"
        if kind == IssueKind.MOJIBAKE:
            garbled, fixed = stats['example']
            return (f"Repaired garbled text {where} "
                    f"({truncate_string(garbled, 40)!r} -> {truncate_string(fixed, 40)!r}); "
                    f"file was likely saved as UTF-8 and re-read with a legacy encoding such as Windows-1252")
        if kind == IssueKind.REPLACEMENT_CHAR:
            return f"Removed {count} Unicode replacement character(s) left by undecodable bytes {where}"
        if kind == IssueKind.STRAY_BOM:
            return f"Removed {count} stray zero-width no-break space(s) {where}"
        if kind == IssueKind.ZERO_WIDTH:
            return f"Removed {count} zero-width character(s) {where}"
        return f"Removed {count} disallowed control character(s) {where}"

    def build(self) -> EncodingIssueReport:
        """Assemble the report."""
        issues = list(self._issues)
        for kind, stats in self._stats.items():
            issues.append(self._describe(kind, stats))

        if issues:
            logger.warning(f"Encoding issues detected: {len(issues)}")
            for issue in issues:
                logger.warning(f"  - {issue}")

        return EncodingIssueReport(
            has_issues=bool(issues),
            issues=issues,
            recommendations=list(self._recommendations) if issues else [],
        )


def sanitize_with_report(text: str, normalize: bool = False) -> tuple[str, EncodingIssueReport]:
    """
    Sanitize standalone text and describe what was repaired.

    Args:
        text: Text to clean
        normalize: Also normalize typographic punctuation and spaces

    Returns:
        Tuple of (cleaned text, EncodingIssueReport)
    """
    collector = IssueCollector()
    text, stripped = EncodingSanitizer.strip_bom(text)
    if stripped:
        collector.note_bom()
    outcome = EncodingSanitizer.sanitize(text, normalize)
    collector.record(outcome, row_index=None, column=None)
    return outcome.text, collector.build()
