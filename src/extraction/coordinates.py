"""Map matched text back to the region of the page it came from."""

from dataclasses import dataclass

from src.ocr.result_model import BoundingBox, OCRPage, clamp_confidence
from src.utils.logger import get_logger

from .fields import FieldCandidate
from .rule_extractor import RuleMatch

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 95.0


@dataclass(frozen=True)
class ResolvedLocation:
    """Where a match sits on the page and how much to trust it."""

    bbox: BoundingBox
    confidence: float
    source: str


class CoordinateResolver:
    """Locates rule matches among the page's OCR lines and words.

    Lines are searched first, then words. Anything not found falls back
    to a placeholder box with ``default_confidence``.

    Args:
        default_confidence: Confidence for matches that cannot be located.
    """

    def __init__(self, default_confidence: float = DEFAULT_CONFIDENCE) -> None:
        self.default_confidence = clamp_confidence(default_confidence)

    def resolve(self, match: RuleMatch, page: OCRPage) -> ResolvedLocation:
        """Find the bounding box and confidence for a match.

        Args:
            match: Rule match to locate.
            page: Normalized OCR page the match was taken from.

        Returns:
            Resolved location; never raises for missing data.
        """
        needle = match.matched_text.lower()

        # Lines the rule matches on their own, with the same capture, first.
        for line in page.lines:
            found = match.rule.search(line.text)
            if found is not None and found.group(1).strip() == match.matched_text:
                return ResolvedLocation(line.bbox, line.confidence, "line")

        for line in page.lines:
            if needle and needle in line.text.lower():
                return ResolvedLocation(line.bbox, line.confidence, "line")

        if needle:
            for word in page.words:
                text = word.text.lower()
                if needle in text or text in needle:
                    return ResolvedLocation(word.bbox, word.confidence, "word")

        logger.debug(
            "No coordinates for %s value %r, using placeholder",
            match.field_type.value,
            match.value,
        )
        return ResolvedLocation(
            BoundingBox.placeholder(), self.default_confidence, "placeholder"
        )

    def to_candidate(self, match: RuleMatch, page: OCRPage) -> FieldCandidate:
        """Resolve a match into a positioned field candidate."""
        location = self.resolve(match, page)
        return FieldCandidate(
            type=match.field_type,
            value=match.value,
            raw_source_text=match.source_text,
            confidence=location.confidence,
            bbox=location.bbox,
            pattern_rank=match.rank,
        )
