"""Shared test fixtures for the invoice field extraction test suite."""

from pathlib import Path
from typing import Any

import numpy as np
import pytest

# (text, confidence, (x0, y0, x1, y1)) for each line of a one-page invoice.
INVOICE_LINES: list[tuple[str, float, tuple[float, float, float, float]]] = [
    ("Acme Supplies Inc.", 96, (10, 5, 180, 25)),
    ("Invoice Number: INV-2024-0001", 93, (10, 30, 260, 50)),
    ("Invoice Date: 01/15/2024", 92, (10, 55, 220, 75)),
    ("Due Date: 02/14/2024", 91, (10, 80, 200, 100)),
    ("Bill To: Globex Corporation", 90, (10, 105, 250, 125)),
    ("Consulting services $1,000.00", 89, (10, 130, 300, 150)),
    ("Subtotal: $1,000.00", 94, (10, 155, 200, 175)),
    ("Tax: $250.00", 94, (10, 180, 150, 200)),
    ("Total: $1,250.00", 95, (10, 205, 180, 225)),
]


def _box(x0: float, y0: float, x1: float, y1: float) -> dict[str, float]:
    return {"x0": x0, "y0": y0, "x1": x1, "y1": y1}


def split_into_words(
    text: str, confidence: float, bbox: tuple[float, float, float, float]
) -> list[dict[str, Any]]:
    """Split a line into word entries with boxes laid out left to right."""
    x0, y0, _, y1 = bbox
    words = []
    cursor = x0
    for token in text.split():
        width = len(token) * 8
        words.append(
            {
                "text": token,
                "confidence": confidence,
                "bbox": _box(cursor, y0, cursor + width, y1),
            }
        )
        cursor += width + 8
    return words


@pytest.fixture
def invoice_ocr() -> dict[str, Any]:
    """Raw OCR output for a simple single-page invoice."""
    lines = [
        {"text": text, "confidence": conf, "bbox": _box(*bbox)}
        for text, conf, bbox in INVOICE_LINES
    ]
    words = [
        word
        for text, conf, bbox in INVOICE_LINES
        for word in split_into_words(text, conf, bbox)
    ]
    return {
        "words": words,
        "lines": lines,
        "paragraphs": [
            {
                "text": " ".join(text for text, _, _ in INVOICE_LINES),
                "confidence": 93,
                "bbox": _box(10, 5, 300, 225),
            }
        ],
    }


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic RGB page image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
