"""Candidate selection, de-duplication and ordering.

Turns the candidate pool produced by rule matching, plus loose
high-confidence OCR words, into the final ordered field list:
structured fields first, then free-text fields, each top to bottom.
"""

import re
from collections.abc import Iterable, Sequence

from src.ocr.result_model import OCRWord
from src.utils.logger import get_logger

from .fields import STRUCTURED_TYPES, ExtractedField, FieldCandidate, FieldType

logger = get_logger(__name__)

_ALLOWED_TEXT = re.compile(r"[A-Za-z0-9.,$@#%&+=_:;/\\]+")
_HAS_LETTER = re.compile(r"[A-Za-z]")

STOPWORDS: frozenset[str] = frozenset(
    """
    a about above after again against all also am an and any are as at be
    because been before being below between both but by can could did do does
    doing down during each few for from further had has have having he her
    here hers herself him himself his how i if in into is it its itself just
    may me might more most must my myself no nor not now of off on once only
    or other our ours ourselves out over own per same shall she should so some
    such than that the their theirs them themselves then there these they
    this those through to too under until up upon very via was we were what
    when where which while who whom whose why will with within without would
    yes yet you your yours yourself
    """.split()
)


def _normalize_key(value: str) -> str:
    return " ".join(value.lower().split())


def deduplicate_fields(fields: Sequence[ExtractedField]) -> list[ExtractedField]:
    """Drop redundant fields and put the rest in reading order.

    Free-text fields that overlap a structured value are removed, exact
    ``(value, type)`` repeats keep their first occurrence, and the result
    lists structured fields before free text, each by ascending ``y``.
    Applying this to its own output returns the same list.
    """
    structured_values = [
        _normalize_key(f.value) for f in fields if f.type.is_structured
    ]

    seen: set[tuple[str, FieldType]] = set()
    kept: list[ExtractedField] = []
    for field in fields:
        key = (_normalize_key(field.value), field.type)
        if field.type is FieldType.TEXT and any(
            key[0] in value or value in key[0] for value in structured_values
        ):
            continue
        if key in seen:
            continue
        seen.add(key)
        kept.append(field)

    structured = sorted(
        (f for f in kept if f.type.is_structured), key=lambda f: f.bbox.y0
    )
    free_text = sorted(
        (f for f in kept if not f.type.is_structured), key=lambda f: f.bbox.y0
    )
    return structured + free_text


class FieldRanker:
    """Selects the winning candidate per field type and adds free text.

    Args:
        min_confidence: Floor below which a structured field is omitted.
        text_min_confidence: Floor for free-text words.
        min_text_length: Minimum length of a free-text word.
        stopwords: Lower-case words never reported as free text.
    """

    def __init__(
        self,
        min_confidence: float = 70.0,
        text_min_confidence: float = 85.0,
        min_text_length: int = 3,
        stopwords: frozenset[str] = STOPWORDS,
    ) -> None:
        self.min_confidence = min_confidence
        self.text_min_confidence = text_min_confidence
        self.min_text_length = min_text_length
        self.stopwords = stopwords

    def select_structured(
        self, candidates: Iterable[FieldCandidate]
    ) -> list[ExtractedField]:
        """Keep the best candidate per structured type.

        Highest confidence wins; on an exact tie the lower pattern rank
        (earlier-declared rule) wins, then the earlier candidate.
        """
        best: dict[FieldType, FieldCandidate] = {}
        for candidate in candidates:
            if not candidate.type.is_structured:
                continue
            current = best.get(candidate.type)
            if current is None or (
                candidate.confidence,
                -candidate.pattern_rank,
            ) > (current.confidence, -current.pattern_rank):
                best[candidate.type] = candidate

        selected: list[ExtractedField] = []
        for field_type in STRUCTURED_TYPES:
            candidate = best.get(field_type)
            if candidate is None:
                continue
            if candidate.confidence < self.min_confidence:
                logger.debug(
                    "Dropping %s: confidence %.1f below %.1f",
                    field_type.value,
                    candidate.confidence,
                    self.min_confidence,
                )
                continue
            selected.append(ExtractedField.from_candidate(candidate))
        return selected

    def is_valid_text(self, word: OCRWord) -> bool:
        """Check whether a word qualifies as a free-text field."""
        text = word.text
        if word.confidence < self.text_min_confidence:
            return False
        if len(text) < self.min_text_length:
            return False
        if not _HAS_LETTER.search(text) or not _ALLOWED_TEXT.fullmatch(text):
            return False
        return text.lower().strip(".,:;") not in self.stopwords

    def collect_text(self, words: Iterable[OCRWord]) -> list[ExtractedField]:
        """Turn qualifying words into ``text`` fields."""
        return [
            ExtractedField(
                type=FieldType.TEXT,
                label=FieldType.TEXT.label,
                value=word.text,
                raw_source_text=word.text,
                confidence=word.confidence,
                bbox=word.bbox,
            )
            for word in words
            if self.is_valid_text(word)
        ]

    def rank(
        self,
        candidates: Iterable[FieldCandidate],
        words: Iterable[OCRWord] = (),
    ) -> list[ExtractedField]:
        """Produce the final ordered field list.

        Args:
            candidates: Positioned candidates from rule matching.
            words: OCR words to scan for free-text fields.

        Returns:
            Structured fields followed by free-text fields; empty when
            nothing qualifies.
        """
        structured = self.select_structured(candidates)
        free_text = self.collect_text(words)
        fields = deduplicate_fields(structured + free_text)
        logger.info(
            "Ranked %d fields (%d structured)",
            len(fields),
            sum(1 for f in fields if f.type.is_structured),
        )
        return fields

    def merge(
        self, field_lists: Iterable[Sequence[ExtractedField]]
    ) -> list[ExtractedField]:
        """Combine per-page field lists into one document-level list.

        The highest-confidence field per structured type is kept, the
        earliest page winning ties; free text from every page is kept.
        """
        best: dict[FieldType, ExtractedField] = {}
        free_text: list[ExtractedField] = []
        for fields in field_lists:
            for field in fields:
                if not field.type.is_structured:
                    free_text.append(field)
                    continue
                current = best.get(field.type)
                if current is None or field.confidence > current.confidence:
                    best[field.type] = field
        structured = [best[t] for t in STRUCTURED_TYPES if t in best]
        return deduplicate_fields(structured + free_text)
