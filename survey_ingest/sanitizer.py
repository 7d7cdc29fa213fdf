"""
Encoding sanitization for parsed field text.
Repairs mojibake with ftfy and strips BOMs, invisible, control and replacement characters.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ftfy import fix_encoding

logger = logging.getLogger(__name__)


class IssueKind(str, Enum):
    """Kinds of character-level corruption."""
    BOM = "bom"
    MOJIBAKE = "mojibake"
    REPLACEMENT_CHAR = "replacement_char"
    STRAY_BOM = "stray_bom"
    ZERO_WIDTH = "zero_width"
    CONTROL_CHAR = "control_char"


# C0 except tab/LF/CR, DEL, and C1
_CONTROL_RE = re.compile('[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')
# Zero-width space, non-joiner, joiner
_ZERO_WIDTH_RE = re.compile('[\u200b-\u200d]')

BOM_CHAR = '\ufeff'
REPLACEMENT_CHAR = '\ufffd'

# Opt-in typographic normalization to plain ASCII punctuation
TYPOGRAPHY_MAP = str.maketrans({
    '—': '-',    # em dash
    '–': '-',    # en dash
    '“': '"',
    '”': '"',
    '‘': "'",
    '’': "'",
    '…': '...',
    **{chr(cp): ' ' for cp in range(0x2000, 0x200b)},  # en quad .. hair space
})


@dataclass
class SanitizeOutcome:
    """Cleaned text plus counts of what was repaired."""
    text: str
    counts: dict[IssueKind, int] = field(default_factory=dict)
    example: Optional[tuple[str, str]] = None  # first mojibake repair (garbled, fixed)
    normalized: bool = False  # typographic normalization changed the text

    @property
    def has_issues(self) -> bool:
        return bool(self.counts)

    def _add(self, kind: IssueKind, count: int) -> None:
        if count:
            self.counts[kind] = self.counts.get(kind, 0) + count


class EncodingSanitizer:
    """Detect and repair character corruption without touching well-formed text."""

    @staticmethod
    def strip_bom(text: str) -> tuple[str, bool]:
        """Strip one leading byte-order mark. Returns (text, stripped)."""
        if text.startswith(BOM_CHAR):
            return text[1:], True
        return text, False

    @staticmethod
    def sanitize(text: str, normalize: bool = False) -> SanitizeOutcome:
        """
        Sanitize one field value.

        Repairs are applied until the text is stable, so sanitizing the
        result again changes nothing and reports nothing.

        Args:
            text: Field text
            normalize: Also map typographic quotes, dashes, ellipses and
                Unicode spaces to their ASCII equivalents

        Returns:
            SanitizeOutcome with the cleaned text and issue counts
        """
        outcome = SanitizeOutcome(text=text)
        if not text:
            return outcome

        if text.isascii():
            # Mojibake and invisible characters are never ASCII
            outcome.text, removed = _CONTROL_RE.subn('', text)
            outcome._add(IssueKind.CONTROL_CHAR, removed)
            return outcome

        current = text
        while True:
            previous = current
            current = EncodingSanitizer._repair_mojibake(current, outcome)
            current = EncodingSanitizer._strip(current, REPLACEMENT_CHAR, IssueKind.REPLACEMENT_CHAR, outcome)
            current = EncodingSanitizer._strip(current, BOM_CHAR, IssueKind.STRAY_BOM, outcome)
            current, removed = _ZERO_WIDTH_RE.subn('', current)
            outcome._add(IssueKind.ZERO_WIDTH, removed)
            current, removed = _CONTROL_RE.subn('', current)
            outcome._add(IssueKind.CONTROL_CHAR, removed)
            if normalize:
                typographic = current.translate(TYPOGRAPHY_MAP)
                outcome.normalized = outcome.normalized or typographic != current
                current = typographic
            if current == previous:
                break

        outcome.text = current
        return outcome

    @staticmethod
    def _repair_mojibake(text: str, outcome: SanitizeOutcome) -> str:
        repaired = fix_encoding(text)
        if repaired != text:
            outcome._add(IssueKind.MOJIBAKE, 1)
            if outcome.example is None:
                outcome.example = (text, repaired)
        return repaired

    @staticmethod
    def _strip(text: str, char: str, kind: IssueKind, outcome: SanitizeOutcome) -> str:
        count = text.count(char)
        if count:
            outcome._add(kind, count)
            return text.replace(char, '')
        return text

    @staticmethod
    def sanitize_text(text: str, normalize: bool = False) -> str:
        """Cleaned text only."""
        return EncodingSanitizer.sanitize(text, normalize).text
