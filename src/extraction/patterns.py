"""Ordered extraction rules for each structured field type.

Each rule is a compiled regular expression with exactly one capturing
group. Rules for a field are listed most specific first; the list order
is also the tie-break order when two candidates resolve to the same
confidence.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .fields import FieldType

# Building blocks
_AMOUNT = r"(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)(?![\d%])"
_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"
_DATE_NUMERIC = r"\d{4}-\d{2}-\d{2}|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"
_DATE_MONTH_NAME = rf"{_MONTH}\s+\d{{1,2}},?\s+\d{{4}}|\d{{1,2}}\s+{_MONTH},?\s+\d{{4}}"
_DATE_ANY = rf"(?:{_DATE_NUMERIC}|{_DATE_MONTH_NAME})"

# Words that end a captured name because they start the next label.
_NAME_STOP = (
    r"(?i:invoice|inv|bill|date|due|total|subtotal|sub-total|tax|vat|"
    r"customer|client|ship|sold|from|to|phone|tel|fax|email|e-mail|amount|"
    r"balance|payment|terms|order|po|page|vendor|attn|number|no|id)\b"
)
_NAME_WORD = r"[A-Z0-9][\w&.,'\-]*"
_NAME = (
    rf"(?!{_NAME_STOP}){_NAME_WORD}"
    rf"(?:\s+(?!{_NAME_STOP})(?:{_NAME_WORD}|&|and|of|the))*"
)
_COMPANY_SUFFIX = r"(?i:inc|llc|ltd|corp|corporation|company|co|gmbh|plc)\b\.?"


@dataclass(frozen=True)
class ExtractionRule:
    """A single-capture-group pattern for one field type.

    Args:
        name: Short identifier used in logs.
        pattern: Compiled regular expression with one capturing group.
        select: Optional chooser over all matches; defaults to the
            first match.
    """

    name: str
    pattern: re.Pattern[str]
    select: Callable[[list[re.Match[str]]], re.Match[str]] | None = None

    def __post_init__(self) -> None:
        if self.pattern.groups != 1:
            raise ValueError(
                f"Rule {self.name!r} must have exactly one capturing group, "
                f"found {self.pattern.groups}"
            )

    def search(self, text: str) -> re.Match[str] | None:
        """Return this rule's match in ``text``, or ``None``."""
        if self.select is None:
            return self.pattern.search(text)
        matches = list(self.pattern.finditer(text))
        return self.select(matches) if matches else None


def _rule(
    name: str,
    pattern: str,
    flags: int = 0,
    select: Callable[[list[re.Match[str]]], re.Match[str]] | None = None,
) -> ExtractionRule:
    return ExtractionRule(name=name, pattern=re.compile(pattern, flags), select=select)


def _largest_amount(matches: list[re.Match[str]]) -> re.Match[str]:
    """Pick the match with the largest amount; the first wins on ties."""
    best = matches[0]
    best_value = _amount_value(best.group(1))
    for match in matches[1:]:
        value = _amount_value(match.group(1))
        if value > best_value:
            best, best_value = match, value
    return best


def _amount_value(raw: str) -> Decimal:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return Decimal(0)


FIELD_RULES: dict[FieldType, tuple[ExtractionRule, ...]] = {
    FieldType.INVOICE_NUMBER: (
        _rule(
            "labeled_invoice_number",
            r"\binvoice\s*(?:(?:number|num|no)\b\.?|#)\s*[:#]?\s*"
            r"([A-Z0-9][A-Z0-9\-/]{2,})",
            re.IGNORECASE,
        ),
        _rule(
            "labeled_inv_hash",
            r"\binv\.?\s*#\s*:?\s*([A-Z0-9][A-Z0-9\-/]{2,})",
            re.IGNORECASE,
        ),
        _rule(
            "bare_dashed_code",
            r"\b((?=[A-Z0-9\-]*[A-Z])(?=[A-Z0-9\-]*\d)(?=[A-Z0-9\-]{4,})"
            r"[A-Z0-9]+(?:-[A-Z0-9]+)+)\b",
        ),
    ),
    FieldType.DATE: (
        _rule(
            "labeled_issue_date",
            rf"\b(?:invoice|bill|issue|issued)\s*date\s*[:\-]?\s*({_DATE_ANY})",
            re.IGNORECASE,
        ),
        _rule(
            "labeled_date",
            rf"(?<!due\s)\bdate\s*[:\-]?\s*({_DATE_ANY})",
            re.IGNORECASE,
        ),
        _rule("bare_numeric_date", rf"\b({_DATE_NUMERIC})\b"),
        _rule("bare_month_name_date", rf"\b({_DATE_MONTH_NAME})", re.IGNORECASE),
    ),
    FieldType.DUE_DATE: (
        _rule(
            "labeled_due_date",
            rf"\b(?:due\s*date|payment\s*due|due\s*(?:by|on))\s*[:\-]?\s*({_DATE_ANY})",
            re.IGNORECASE,
        ),
    ),
    FieldType.TOTAL: (
        _rule(
            "labeled_grand_total",
            rf"\b(?:grand\s*total|total\s*due|amount\s*due|balance\s*due)"
            rf"\s*[:\-]?\s*\$?\s*{_AMOUNT}",
            re.IGNORECASE,
        ),
        _rule(
            "labeled_total",
            rf"(?<!sub\s)(?<!sub-)\btotal(?:\s*amount)?\s*[:\-]?\s*\$?\s*{_AMOUNT}",
            re.IGNORECASE,
        ),
        _rule("bare_dollar_amount", rf"\$\s*{_AMOUNT}", select=_largest_amount),
    ),
    FieldType.SUBTOTAL: (
        _rule(
            "labeled_subtotal",
            rf"\bsub[\s\-]?total\s*[:\-]?\s*\$?\s*{_AMOUNT}",
            re.IGNORECASE,
        ),
    ),
    FieldType.TAX: (
        _rule(
            "labeled_tax",
            rf"\b(?:sales\s+)?(?:tax|vat|gst)(?:\s*\(\s*\d+(?:\.\d+)?\s*%\s*\))?"
            rf"\s*[:\-]?\s*\$?\s*{_AMOUNT}",
            re.IGNORECASE,
        ),
    ),
    FieldType.VENDOR: (
        _rule(
            "labeled_vendor",
            rf"(?i:\b(?:from|vendor|seller|supplier|sold\s+by|remit\s+to|pay\s+to))"
            rf"\s*:?\s*({_NAME})",
        ),
        _rule(
            "company_suffix",
            rf"\b((?:[A-Z][\w&'\-]*\s+){{0,4}}[A-Z][\w&'\-]*,?\s+{_COMPANY_SUFFIX})",
        ),
    ),
    FieldType.CUSTOMER: (
        _rule(
            "labeled_customer",
            r"(?i:\b(?:bill(?:ed)?\s+to|customer(?:\s+name)?|client|"
            r"sold\s+to|ship\s+to))"
            rf"\s*:?\s*({_NAME})",
        ),
        _rule(
            "bare_email",
            r"\b([A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,})\b",
        ),
    ),
}


_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%m/%d/%y",
    "%d/%m/%y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)


def parse_date(raw: str) -> date | None:
    """Parse a matched date literal, trying US month-first order first."""
    cleaned = re.sub(r"[,]", " ", raw)
    cleaned = re.sub(r"(?<=[A-Za-z])\.", "", cleaned)
    cleaned = " ".join(cleaned.split())
    if re.fullmatch(r"\d{1,2}[\-.]\d{1,2}[\-.]\d{2,4}", cleaned):
        cleaned = re.sub(r"[\-.]", "/", cleaned)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def normalize_value(field_type: FieldType, raw: str) -> str:
    """Canonical display value for a captured substring.

    Amounts lose currency symbols and thousands separators, parseable
    dates become ISO ``YYYY-MM-DD``, names lose trailing punctuation.

    Raises:
        ValueError: If the normalized value is empty.
    """
    value = " ".join(raw.split())
    if field_type in (FieldType.TOTAL, FieldType.SUBTOTAL, FieldType.TAX):
        value = value.replace("$", "").replace(",", "").strip()
    elif field_type in (FieldType.DATE, FieldType.DUE_DATE):
        parsed = parse_date(value)
        if parsed is not None:
            value = parsed.isoformat()
    elif field_type in (FieldType.VENDOR, FieldType.CUSTOMER):
        value = value.rstrip(" ,;:")
    else:
        value = value.strip(" .,;:")

    if not value:
        raise ValueError(f"Empty value for {field_type.value} from {raw!r}")
    return value
