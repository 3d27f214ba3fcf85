"""Uniform view of an OCR engine's output.

Normalizes raw engine results (``words``, ``lines`` and ``paragraphs``
arrays of ``{text, confidence, bbox}``) into immutable page objects with
pixel-space bounding boxes and confidences clamped to 0-100.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from src.utils.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_WIDTH = 100
PLACEHOLDER_HEIGHT = 20


def clamp_confidence(value: Any) -> float:
    """Coerce a confidence value into the 0-100 range.

    Non-numeric or NaN values become 0.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(100.0, max(0.0, number))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in source-image pixels, corner form."""

    x0: float
    y0: float
    x1: float
    y1: float

    def __post_init__(self) -> None:
        if self.x1 < self.x0:
            x0, x1 = self.x1, self.x0
            object.__setattr__(self, "x0", x0)
            object.__setattr__(self, "x1", x1)
        if self.y1 < self.y0:
            y0, y1 = self.y1, self.y0
            object.__setattr__(self, "y0", y0)
            object.__setattr__(self, "y1", y1)

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @classmethod
    def placeholder(cls) -> "BoundingBox":
        """Fixed-size box used when a location cannot be resolved."""
        return cls(0, 0, PLACEHOLDER_WIDTH, PLACEHOLDER_HEIGHT)

    @classmethod
    def from_raw(cls, raw: Any) -> "BoundingBox":
        """Build a box from an ``{x0, y0, x1, y1}`` mapping.

        Missing or non-numeric corners yield the placeholder box.
        """
        if not isinstance(raw, Mapping):
            return cls.placeholder()
        try:
            return cls(
                float(raw["x0"]),
                float(raw["y0"]),
                float(raw["x1"]),
                float(raw["y1"]),
            )
        except (KeyError, TypeError, ValueError):
            return cls.placeholder()

    @classmethod
    def union(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        """Smallest box enclosing all given boxes."""
        boxes = list(boxes)
        if not boxes:
            return cls.placeholder()
        return cls(
            min(b.x0 for b in boxes),
            min(b.y0 for b in boxes),
            max(b.x1 for b in boxes),
            max(b.y1 for b in boxes),
        )

    def to_xywh(self, scale: float = 1.0) -> dict[str, float]:
        """Width/height form, optionally scaled by a zoom factor."""
        return {
            "x": self.x0 * scale,
            "y": self.y0 * scale,
            "w": self.width * scale,
            "h": self.height * scale,
        }


@dataclass(frozen=True)
class OCRSpan:
    """A run of recognized text with its confidence and location."""

    text: str
    confidence: float
    bbox: BoundingBox


class OCRWord(OCRSpan):
    """A single recognized word."""


class OCRLine(OCRSpan):
    """A contiguous recognized text line."""


class OCRParagraph(OCRSpan):
    """A recognized paragraph."""


@dataclass(frozen=True)
class OCRPage:
    """Normalized OCR result for one page."""

    words: tuple[OCRWord, ...] = ()
    lines: tuple[OCRLine, ...] = ()
    paragraphs: tuple[OCRParagraph, ...] = ()
    full_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.words or self.lines or self.paragraphs)


def _build_spans(raw_items: Any, span_cls: type[OCRSpan]) -> tuple:
    if not raw_items:
        return ()
    spans = []
    for item in raw_items:
        if not isinstance(item, Mapping):
            continue
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        spans.append(
            span_cls(
                text=text,
                confidence=clamp_confidence(item.get("confidence")),
                bbox=BoundingBox.from_raw(item.get("bbox")),
            )
        )
    return tuple(spans)


def build_ocr_page(raw: Mapping[str, Any] | None) -> OCRPage:
    """Normalize raw OCR engine output into an :class:`OCRPage`.

    Absent arrays are treated as empty. ``full_text`` joins line texts
    with a single space in emission order.

    Args:
        raw: Engine result with optional ``words``, ``lines`` and
            ``paragraphs`` arrays, or ``None``. Anything that is not a
            mapping gives an empty page.

    Returns:
        Normalized page.
    """
    if not raw:
        return OCRPage()
    if not isinstance(raw, Mapping):
        logger.warning("Ignoring OCR result of type %s", type(raw).__name__)
        return OCRPage()

    words = _build_spans(raw.get("words"), OCRWord)
    lines = _build_spans(raw.get("lines"), OCRLine)
    paragraphs = _build_spans(raw.get("paragraphs"), OCRParagraph)
    full_text = " ".join(line.text for line in lines)

    logger.debug(
        "Normalized OCR result: %d words, %d lines, %d paragraphs",
        len(words),
        len(lines),
        len(paragraphs),
    )
    return OCRPage(
        words=words,
        lines=lines,
        paragraphs=paragraphs,
        full_text=full_text,
    )
