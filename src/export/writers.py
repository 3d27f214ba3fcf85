"""JSON/CSV payloads and overlay geometry for extracted fields."""

import csv
import io
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from src.extraction.fields import ExtractedField, LineItem

CSV_COLUMNS = ["type", "label", "value", "confidence", "x", "y", "w", "h"]


def fields_to_payload(fields: Sequence[ExtractedField]) -> dict[str, str]:
    """Flatten fields into a ``{label: value}`` mapping.

    Later fields with the same label overwrite earlier ones, so repeated
    free-text labels are numbered instead.
    """
    payload: dict[str, str] = {}
    text_count = 0
    for field in fields:
        label = field.label
        if not field.type.is_structured:
            text_count += 1
            label = f"{label} {text_count}"
        payload[label] = field.value
    return payload


def fields_to_records(
    fields: Sequence[ExtractedField],
    line_items: Sequence[LineItem] = (),
) -> dict[str, Any]:
    """Full JSON document with fields, line items and a summary."""
    return {
        "fields": [f.to_dict() for f in fields],
        "lineItems": [item.to_dict() for item in line_items],
        "summary": summarize(fields),
    }


def summarize(fields: Sequence[ExtractedField]) -> dict[str, float | int]:
    """Count and average confidence (rounded to a whole percent)."""
    if not fields:
        return {"total_fields": 0, "average_confidence": 0}
    average = sum(f.confidence for f in fields) / len(fields)
    return {"total_fields": len(fields), "average_confidence": round(average)}


def highlight_boxes(
    fields: Sequence[ExtractedField], zoom: float = 1.0
) -> list[dict[str, float]]:
    """Field boxes in ``{x, y, w, h}`` form scaled for a display zoom."""
    return [f.bbox.to_xywh(zoom) for f in fields]


def fields_to_csv(fields: Sequence[ExtractedField]) -> str:
    """Render fields as CSV text with a header row."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for field in fields:
        box = field.bbox.to_xywh()
        writer.writerow(
            {
                "type": field.type.value,
                "label": field.label,
                "value": field.value,
                "confidence": round(field.confidence, 2),
                **{key: round(box[key], 2) for key in ("x", "y", "w", "h")},
            }
        )
    return buffer.getvalue()


def write_fields(
    fields: Sequence[ExtractedField],
    output_path: Path,
    line_items: Sequence[LineItem] = (),
) -> None:
    """Write fields to ``output_path`` as CSV or JSON by file suffix."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".csv":
        output_path.write_text(fields_to_csv(fields), newline="")
    else:
        output_path.write_text(
            json.dumps(fields_to_records(fields, line_items), indent=2)
        )
