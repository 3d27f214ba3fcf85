"""Field types and result records shared across the extraction pipeline."""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from src.ocr.result_model import BoundingBox


class FieldType(StrEnum):
    """Semantic tag of an extracted field.

    ``TEXT`` marks unclassified high-confidence tokens; every other
    member is a structured field.
    """

    INVOICE_NUMBER = "invoiceNumber"
    DATE = "date"
    DUE_DATE = "dueDate"
    TOTAL = "total"
    SUBTOTAL = "subtotal"
    TAX = "tax"
    VENDOR = "vendor"
    CUSTOMER = "customer"
    TEXT = "text"

    @property
    def is_structured(self) -> bool:
        return self is not FieldType.TEXT

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``invoiceNumber`` -> ``Invoice Number``."""
        words = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", self.value).split()
        return " ".join(word.capitalize() for word in words)


STRUCTURED_TYPES: tuple[FieldType, ...] = tuple(
    t for t in FieldType if t.is_structured
)


@dataclass(frozen=True)
class FieldCandidate:
    """An unranked hypothesis produced by a single rule match."""

    type: FieldType
    value: str
    raw_source_text: str
    confidence: float
    bbox: BoundingBox
    pattern_rank: int


@dataclass(frozen=True)
class ExtractedField:
    """A final, de-duplicated field ready for display or export."""

    type: FieldType
    label: str
    value: str
    raw_source_text: str
    confidence: float
    bbox: BoundingBox

    @classmethod
    def from_candidate(cls, candidate: FieldCandidate) -> "ExtractedField":
        return cls(
            type=candidate.type,
            label=candidate.type.label,
            value=candidate.value,
            raw_source_text=candidate.raw_source_text,
            confidence=candidate.confidence,
            bbox=candidate.bbox,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys and a ``{x, y, w, h}`` box."""
        return {
            "type": self.type.value,
            "label": self.label,
            "value": self.value,
            "rawSourceText": self.raw_source_text,
            "confidence": self.confidence,
            "bbox": self.bbox.to_xywh(),
        }


@dataclass(frozen=True)
class LineItem:
    """A priced line of an invoice body."""

    description: str
    amount: str
    bbox: BoundingBox

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "amount": self.amount,
            "bbox": self.bbox.to_xywh(),
        }
