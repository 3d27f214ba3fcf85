"""Rule-based field matching over the full recognized text.

Applies every rule of every structured field type to the page text and
reports one match per matching rule. Later rules are evaluated even when
an earlier one matched, since a later match may resolve to a higher
confidence.
"""

import bisect
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from src.ocr.result_model import OCRLine
from src.utils.logger import get_logger

from .fields import FieldType, LineItem
from .patterns import FIELD_RULES, ExtractionRule, normalize_value

logger = get_logger(__name__)

_LINE_ITEM_PATTERN = re.compile(
    r"^(.+?)\s+\$?(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)$"
)
_LINE_ITEM_EXCLUDED = ("total", "subtotal", "tax", "amount due")


def line_end_offsets(lines: Iterable[OCRLine]) -> list[int]:
    """End offset of each line in the space-joined page text."""
    ends: list[int] = []
    position = 0
    for line in lines:
        position += len(line.text)
        ends.append(position)
        position += 1
    return ends


def _line_end_at(offset: int, line_ends: Sequence[int]) -> int | None:
    index = bisect.bisect_left(line_ends, offset)
    if index < len(line_ends):
        return line_ends[index]
    return None


def _single_line_span(
    rule: ExtractionRule, text: str, found: re.Match[str], line_ends: Sequence[int]
) -> tuple[int, int, int]:
    """Match start, capture start and capture end, kept within one line.

    A capture running past the end of the line it starts on is searched
    for again from each following line it covers. If none of those lines
    holds a match of its own, the capture is cut at the end of its first
    line.
    """
    start, end = found.span(1)
    first_end = _line_end_at(start, line_ends)
    if first_end is None or end <= first_end:
        return found.start(), start, end

    last_end = _line_end_at(end, line_ends) or len(text)
    pos = first_end + 1
    while pos < last_end:
        retry = rule.pattern.search(text, pos, last_end)
        if retry is None:
            break
        retry_start, retry_end = retry.span(1)
        retry_line_end = _line_end_at(retry_start, line_ends) or last_end
        if retry_end <= retry_line_end:
            return retry.start(), retry_start, retry_end
        pos = retry_line_end + 1
    return found.start(), start, first_end


@dataclass(frozen=True)
class RuleMatch:
    """A single rule's hit in the page text."""

    field_type: FieldType
    rule: ExtractionRule
    rank: int
    value: str
    matched_text: str
    source_text: str
    start_pos: int
    end_pos: int


class RuleExtractor:
    """Regex-based matcher for structured invoice fields.

    Args:
        rules: Ordered rules per field type. Defaults to the built-in
            invoice rule set.
    """

    def __init__(
        self, rules: Mapping[FieldType, Iterable[ExtractionRule]] | None = None
    ) -> None:
        source = FIELD_RULES if rules is None else rules
        self.rules: dict[FieldType, tuple[ExtractionRule, ...]] = {
            field_type: tuple(field_rules)
            for field_type, field_rules in source.items()
            if field_type.is_structured
        }

    def match(
        self,
        text: str,
        fields: Iterable[FieldType] | None = None,
        line_ends: Sequence[int] | None = None,
    ) -> list[RuleMatch]:
        """Evaluate all rules against ``text``.

        Args:
            text: Full recognized page text.
            fields: Field types to evaluate. If ``None``, evaluates all.
            line_ends: End offsets of each line within ``text``. When
                given, captures are kept within a single line.

        Returns:
            Matches in field-type then rule order.
        """
        results: list[RuleMatch] = []
        if not text:
            return results

        target_fields = list(fields) if fields is not None else list(self.rules)
        for field_type in target_fields:
            for rank, rule in enumerate(self.rules.get(field_type, ())):
                found = rule.search(text)
                if found is None:
                    continue
                if line_ends:
                    match_start, start, end = _single_line_span(
                        rule, text, found, line_ends
                    )
                else:
                    match_start = found.start()
                    start, end = found.span(1)
                captured = text[start:end].strip()
                try:
                    value = normalize_value(field_type, captured)
                except ValueError as exc:
                    logger.warning("Skipping %s match: %s", rule.name, exc)
                    continue
                results.append(
                    RuleMatch(
                        field_type=field_type,
                        rule=rule,
                        rank=rank,
                        value=value,
                        matched_text=captured,
                        source_text=text[match_start:end].strip(),
                        start_pos=match_start,
                        end_pos=end,
                    )
                )

        logger.info("Rule matching found %d candidates", len(results))
        return results

    def extract_line_items(self, lines: Iterable[OCRLine]) -> list[LineItem]:
        """Find priced body lines such as ``Widget x2 $40.00``.

        Args:
            lines: Recognized text lines in reading order.

        Returns:
            Line items, excluding total, subtotal and tax lines.
        """
        items: list[LineItem] = []
        for line in lines:
            found = _LINE_ITEM_PATTERN.match(line.text.strip())
            if found is None:
                continue
            description = found.group(1).strip()
            lowered = description.lower()
            if not 3 < len(description) < 100:
                continue
            if any(word in lowered for word in _LINE_ITEM_EXCLUDED):
                continue
            items.append(
                LineItem(
                    description=description,
                    amount=found.group(2).replace(",", ""),
                    bbox=line.bbox,
                )
            )
        logger.debug("Found %d line items", len(items))
        return items
