"""End-to-end field extraction for a single OCR page.

Chains OCR normalization, rule matching, coordinate resolution and
ranking. Each call is independent; the extractor holds only immutable
configuration and is safe to reuse across documents.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from src.ocr.result_model import OCRPage, build_ocr_page
from src.utils.config import ExtractionConfig
from src.utils.logger import get_logger

from .coordinates import CoordinateResolver
from .fields import ExtractedField, LineItem
from .ranker import FieldRanker
from .rule_extractor import RuleExtractor, line_end_offsets

logger = get_logger(__name__)


@dataclass
class ExtractionResult:
    """Fields and line items extracted from one page."""

    fields: list[ExtractedField]
    raw_text: str
    line_items: list[LineItem] = field(default_factory=list)

    @property
    def overall_confidence(self) -> float:
        if not self.fields:
            return 0.0
        return sum(f.confidence for f in self.fields) / len(self.fields)


class FieldExtractor:
    """Produces ranked, typed invoice fields from OCR output.

    Args:
        config: Extraction thresholds. Defaults to :class:`ExtractionConfig`.
        rule_extractor: Rule matcher; defaults to the built-in rule set.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        rule_extractor: RuleExtractor | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.rule_extractor = rule_extractor or RuleExtractor()
        self.resolver = CoordinateResolver(self.config.default_confidence)
        self.ranker = FieldRanker(
            min_confidence=self.config.min_confidence,
            text_min_confidence=self.config.text_min_confidence,
            min_text_length=self.config.min_text_length,
        )

    def extract(self, ocr: OCRPage | Mapping[str, Any] | None) -> list[ExtractedField]:
        """Extract the ordered field list from one page.

        Args:
            ocr: Normalized page or raw engine output.

        Returns:
            Ordered fields; empty when nothing is found.
        """
        page = ocr if isinstance(ocr, OCRPage) else build_ocr_page(ocr)
        matches = self.rule_extractor.match(
            page.full_text, line_ends=line_end_offsets(page.lines)
        )
        candidates = [self.resolver.to_candidate(m, page) for m in matches]
        return self.ranker.rank(candidates, page.words)

    def extract_page(self, ocr: OCRPage | Mapping[str, Any] | None) -> ExtractionResult:
        """Extract fields and, if enabled, line items from one page."""
        page = ocr if isinstance(ocr, OCRPage) else build_ocr_page(ocr)
        fields = self.extract(page)
        line_items = (
            self.rule_extractor.extract_line_items(page.lines)
            if self.config.extract_line_items
            else []
        )
        logger.debug(
            "Page extraction: %d fields, %d line items", len(fields), len(line_items)
        )
        return ExtractionResult(
            fields=fields, raw_text=page.full_text, line_items=line_items
        )
