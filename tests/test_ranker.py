"""Tests for candidate selection, free-text collection and de-duplication."""

from src.extraction.fields import ExtractedField, FieldCandidate, FieldType
from src.extraction.ranker import FieldRanker, deduplicate_fields
from src.ocr.result_model import BoundingBox, OCRWord


def _make_candidate(
    field_type: FieldType,
    value: str,
    confidence: float,
    pattern_rank: int = 0,
    y0: float = 0.0,
) -> FieldCandidate:
    """Create a FieldCandidate with a simple box for testing."""
    return FieldCandidate(
        type=field_type,
        value=value,
        raw_source_text=value,
        confidence=confidence,
        bbox=BoundingBox(0, y0, 100, y0 + 20),
        pattern_rank=pattern_rank,
    )


def _make_field(
    field_type: FieldType, value: str, confidence: float = 90.0, y0: float = 0.0
) -> ExtractedField:
    """Create an ExtractedField with a simple box for testing."""
    return ExtractedField(
        type=field_type,
        label=field_type.label,
        value=value,
        raw_source_text=value,
        confidence=confidence,
        bbox=BoundingBox(0, y0, 100, y0 + 20),
    )


def _make_word(text: str, confidence: float = 90.0, y0: float = 0.0) -> OCRWord:
    """Create an OCRWord with a simple box for testing."""
    return OCRWord(
        text=text, confidence=confidence, bbox=BoundingBox(0, y0, 50, y0 + 20)
    )


class TestSelectStructured:
    """Tests for picking the best candidate per type."""

    def setup_method(self) -> None:
        self.ranker = FieldRanker()

    def test_highest_confidence_wins(self) -> None:
        fields = self.ranker.select_structured(
            [
                _make_candidate(FieldType.TOTAL, "100.00", 80, pattern_rank=0),
                _make_candidate(FieldType.TOTAL, "250.00", 92, pattern_rank=2),
            ]
        )
        assert [(f.type, f.value) for f in fields] == [(FieldType.TOTAL, "250.00")]

    def test_tie_prefers_earlier_rule(self) -> None:
        fields = self.ranker.select_structured(
            [
                _make_candidate(FieldType.DATE, "2024-03-04", 90, pattern_rank=2),
                _make_candidate(FieldType.DATE, "2024-01-15", 90, pattern_rank=0),
            ]
        )
        assert fields[0].value == "2024-01-15"

    def test_floor_is_inclusive(self) -> None:
        fields = self.ranker.select_structured(
            [
                _make_candidate(FieldType.TOTAL, "10.00", 70),
                _make_candidate(FieldType.TAX, "1.00", 69.9),
            ]
        )
        assert [f.type for f in fields] == [FieldType.TOTAL]

    def test_one_per_type_in_declared_order(self) -> None:
        fields = self.ranker.select_structured(
            [
                _make_candidate(FieldType.CUSTOMER, "Globex", 90),
                _make_candidate(FieldType.INVOICE_NUMBER, "INV-1", 90),
                _make_candidate(FieldType.INVOICE_NUMBER, "INV-2", 85),
                _make_candidate(FieldType.TOTAL, "5.00", 90),
            ]
        )
        assert [f.type for f in fields] == [
            FieldType.INVOICE_NUMBER,
            FieldType.TOTAL,
            FieldType.CUSTOMER,
        ]
        assert fields[0].label == "Invoice Number"

    def test_text_candidates_ignored(self) -> None:
        assert self.ranker.select_structured(
            [_make_candidate(FieldType.TEXT, "hello", 99)]
        ) == []


class TestFreeText:
    """Tests for free-text word qualification."""

    def setup_method(self) -> None:
        self.ranker = FieldRanker()

    def test_valid_word(self) -> None:
        assert self.ranker.is_valid_text(_make_word("Acme", 90))

    def test_low_confidence(self) -> None:
        assert not self.ranker.is_valid_text(_make_word("Acme", 84.9))

    def test_too_short(self) -> None:
        assert not self.ranker.is_valid_text(_make_word("ab", 99))

    def test_requires_letter(self) -> None:
        assert not self.ranker.is_valid_text(_make_word("1234", 99))
        assert not self.ranker.is_valid_text(_make_word("$1,000.00", 99))

    def test_disallowed_characters(self) -> None:
        assert not self.ranker.is_valid_text(_make_word("foo-bar", 99))
        assert not self.ranker.is_valid_text(_make_word("(note)", 99))

    def test_allowed_punctuation(self) -> None:
        assert self.ranker.is_valid_text(_make_word("user@example.com", 99))
        assert self.ranker.is_valid_text(_make_word("Total:", 99))

    def test_stopwords(self) -> None:
        assert not self.ranker.is_valid_text(_make_word("the", 99))
        assert not self.ranker.is_valid_text(_make_word("To:", 99))
        assert not self.ranker.is_valid_text(_make_word("With", 99))

    def test_collect_text(self) -> None:
        fields = self.ranker.collect_text(
            [_make_word("Hello", 60), _make_word("Payment", 95, y0=40)]
        )
        assert len(fields) == 1
        assert fields[0].type is FieldType.TEXT
        assert fields[0].label == "Text"
        assert fields[0].value == "Payment"
        assert fields[0].raw_source_text == "Payment"


class TestDeduplicateFields:
    """Tests for the deduplicate_fields function."""

    def test_text_overlapping_structured_value_dropped(self) -> None:
        fields = [
            _make_field(FieldType.VENDOR, "Acme Supplies Inc.", y0=5),
            _make_field(FieldType.TEXT, "Acme", y0=5),
            _make_field(FieldType.TEXT, "Payment", y0=50),
        ]
        result = deduplicate_fields(fields)
        assert [f.value for f in result] == ["Acme Supplies Inc.", "Payment"]

    def test_repeated_value_and_type_kept_once(self) -> None:
        fields = [
            _make_field(FieldType.TEXT, "Date:", y0=10),
            _make_field(FieldType.TEXT, "date:", y0=30),
        ]
        result = deduplicate_fields(fields)
        assert len(result) == 1
        assert result[0].bbox.y0 == 10

    def test_same_value_different_type_kept(self) -> None:
        fields = [
            _make_field(FieldType.SUBTOTAL, "1000.00", y0=10),
            _make_field(FieldType.TOTAL, "1000.00", y0=20),
        ]
        assert len(deduplicate_fields(fields)) == 2

    def test_structured_before_text_each_top_to_bottom(self) -> None:
        fields = [
            _make_field(FieldType.TEXT, "Thanks", y0=300),
            _make_field(FieldType.TOTAL, "10.00", y0=200),
            _make_field(FieldType.TEXT, "Notes", y0=100),
            _make_field(FieldType.INVOICE_NUMBER, "INV-1", y0=20),
        ]
        result = deduplicate_fields(fields)
        assert [f.value for f in result] == ["INV-1", "10.00", "Notes", "Thanks"]

    def test_idempotent(self) -> None:
        fields = [
            _make_field(FieldType.TEXT, "Thanks", y0=300),
            _make_field(FieldType.TOTAL, "10.00", y0=200),
            _make_field(FieldType.TEXT, "thanks", y0=310),
            _make_field(FieldType.TEXT, "10.00 USD", y0=200),
        ]
        once = deduplicate_fields(fields)
        assert deduplicate_fields(once) == once

    def test_empty(self) -> None:
        assert deduplicate_fields([]) == []


class TestRank:
    """Tests for the full ranking step."""

    def setup_method(self) -> None:
        self.ranker = FieldRanker()

    def test_empty_inputs(self) -> None:
        assert self.ranker.rank([], []) == []

    def test_structured_then_text(self) -> None:
        fields = self.ranker.rank(
            [_make_candidate(FieldType.TOTAL, "10.00", 95, y0=200)],
            [_make_word("Thanks", 90, y0=10), _make_word("10.00", 99, y0=200)],
        )
        assert [(f.type, f.value) for f in fields] == [
            (FieldType.TOTAL, "10.00"),
            (FieldType.TEXT, "Thanks"),
        ]

    def test_custom_thresholds(self) -> None:
        ranker = FieldRanker(min_confidence=90, text_min_confidence=50)
        fields = ranker.rank(
            [_make_candidate(FieldType.TOTAL, "10.00", 85)],
            [_make_word("Hello", 60)],
        )
        assert [(f.type, f.value) for f in fields] == [(FieldType.TEXT, "Hello")]


class TestMerge:
    """Tests for combining per-page fields."""

    def setup_method(self) -> None:
        self.ranker = FieldRanker()

    def test_highest_confidence_across_pages(self) -> None:
        page_one = [_make_field(FieldType.TOTAL, "100.00", 80)]
        page_two = [_make_field(FieldType.TOTAL, "250.00", 95)]
        merged = self.ranker.merge([page_one, page_two])
        assert [f.value for f in merged] == ["250.00"]

    def test_tie_keeps_earlier_page(self) -> None:
        page_one = [_make_field(FieldType.INVOICE_NUMBER, "INV-1", 90)]
        page_two = [_make_field(FieldType.INVOICE_NUMBER, "INV-2", 90)]
        merged = self.ranker.merge([page_one, page_two])
        assert [f.value for f in merged] == ["INV-1"]

    def test_text_from_all_pages(self) -> None:
        page_one = [_make_field(FieldType.TEXT, "Thanks", y0=10)]
        page_two = [_make_field(FieldType.TEXT, "Remittance", y0=5)]
        merged = self.ranker.merge([page_one, page_two])
        assert {f.value for f in merged} == {"Thanks", "Remittance"}

    def test_no_pages(self) -> None:
        assert self.ranker.merge([]) == []
