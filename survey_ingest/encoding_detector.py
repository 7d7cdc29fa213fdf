"""
Detect the text encoding of an uploaded CSV from a leading byte sample.
Deterministic detection: BOM signature, declared hint, UTF-8 trial, chardet, fallback.
"""

import codecs
import logging
from dataclasses import dataclass, field
from typing import Optional

import chardet

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 64 * 1024
FALLBACK_ENCODING = 'cp1252'
MIN_CHARDET_CONFIDENCE = 0.5


@dataclass
class EncodingDecision:
    """Chosen codec plus any findings worth reporting."""
    encoding: str
    method: str  # 'bom', 'hint', 'utf-8', 'chardet', 'fallback'
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


class EncodingDetector:
    """Pick a codec for a byte sample."""

    # Codecs that keep the BOM as U+FEFF so the sanitizer can strip and report it.
    # UTF-32 signatures first: the UTF-32 LE BOM starts with the UTF-16 LE one.
    BOM_SIGNATURES = [
        (codecs.BOM_UTF32_LE, 'utf-32-le'),
        (codecs.BOM_UTF32_BE, 'utf-32-be'),
        (codecs.BOM_UTF8, 'utf-8'),
        (codecs.BOM_UTF16_LE, 'utf-16-le'),
        (codecs.BOM_UTF16_BE, 'utf-16-be'),
    ]

    REEXPORT_HINT = 'Re-export the source file with UTF-8 encoding (e.g. "CSV UTF-8" in Excel)'

    @staticmethod
    def detect(sample: bytes, hint: Optional[str] = None, is_complete: bool = False) -> EncodingDecision:
        """
        Detect encoding of a leading byte sample.

        Args:
            sample: First bytes of the input (up to SAMPLE_SIZE)
            hint: Declared source encoding, tried before any guessing
            is_complete: True if the sample is the whole input

        Returns:
            EncodingDecision
        """
        for signature, encoding in EncodingDetector.BOM_SIGNATURES:
            if sample.startswith(signature):
                logger.debug(f"Detected encoding by BOM: {encoding}")
                return EncodingDecision(encoding=encoding, method='bom')

        issues = []
        if hint:
            normalized = normalize_encoding_name(hint)
            if normalized:
                logger.debug(f"Using declared encoding: {normalized}")
                return EncodingDecision(encoding=normalized, method='hint')
            logger.warning(f"Unknown encoding hint {hint!r}, ignoring it")
            issues.append(f"Declared encoding {hint!r} is not a known codec and was ignored")

        if is_valid_utf8(sample, is_complete):
            return EncodingDecision(encoding='utf-8', method='utf-8', issues=issues)

        guess = chardet.detect(sample)
        guessed = normalize_encoding_name(guess.get('encoding') or '')
        confidence = guess.get('confidence') or 0.0

        if guessed and guessed != 'utf-8' and confidence >= MIN_CHARDET_CONFIDENCE:
            method = 'chardet'
            encoding = guessed
        else:
            method = 'fallback'
            encoding = FALLBACK_ENCODING

        logger.warning(f"Input is not valid UTF-8, decoding as {encoding} ({method}, confidence {confidence:.2f})")
        issues.append(f"Input is not valid UTF-8; decoded as {encoding}")
        return EncodingDecision(
            encoding=encoding,
            method=method,
            issues=issues,
            recommendations=[EncodingDetector.REEXPORT_HINT],
        )


def normalize_encoding_name(name: str) -> Optional[str]:
    """Canonical Python codec name, or None if unknown."""
    if not name:
        return None
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


def is_valid_utf8(sample: bytes, is_complete: bool) -> bool:
    """Strict UTF-8 check that tolerates a character cut at the sample end."""
    decoder = codecs.getincrementaldecoder('utf-8')(errors='strict')
    try:
        decoder.decode(sample, final=is_complete)
    except UnicodeDecodeError:
        return False
    return True


def make_decoder(encoding: str) -> codecs.IncrementalDecoder:
    """Incremental decoder that substitutes U+FFFD for undecodable bytes."""
    return codecs.getincrementaldecoder(encoding)(errors='replace')


def decode_all(data: bytes, encoding: str) -> str:
    """Decode a whole input exactly the way the chunked path does."""
    return make_decoder(encoding).decode(data, final=True)
