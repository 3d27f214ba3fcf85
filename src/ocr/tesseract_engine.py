"""Tesseract OCR engine adapter.

Runs Tesseract on a page image and reshapes its word table into the
``words`` / ``lines`` / ``paragraphs`` form consumed by
:func:`src.ocr.result_model.build_ocr_page`.
"""

from collections.abc import Mapping
from typing import Any

import numpy as np
import pytesseract
from PIL import Image

from src.utils.logger import get_logger

from .result_model import OCRPage, build_ocr_page

logger = get_logger(__name__)


def _span(words: list[dict[str, Any]]) -> dict[str, Any]:
    """Merge consecutive word records into one line/paragraph record."""
    return {
        "text": " ".join(w["text"] for w in words),
        "confidence": sum(w["confidence"] for w in words) / len(words),
        "bbox": {
            "x0": min(w["bbox"]["x0"] for w in words),
            "y0": min(w["bbox"]["y0"] for w in words),
            "x1": max(w["bbox"]["x1"] for w in words),
            "y1": max(w["bbox"]["y1"] for w in words),
        },
    }


def tesseract_data_to_raw(data: Mapping[str, list[Any]]) -> dict[str, Any]:
    """Convert ``image_to_data`` output into a raw OCR result mapping.

    Words with negative confidence or blank text are dropped. Lines and
    paragraphs are grouped by Tesseract's block, paragraph and line
    numbers, preserving first-seen order.

    Args:
        data: Dictionary output of ``pytesseract.image_to_data``.

    Returns:
        Mapping with ``words``, ``lines`` and ``paragraphs`` arrays.
    """
    words: list[dict[str, Any]] = []
    lines: dict[tuple[int, int, int], list[dict[str, Any]]] = {}
    paragraphs: dict[tuple[int, int], list[dict[str, Any]]] = {}

    for i in range(len(data["text"])):
        text = str(data["text"][i]).strip()
        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            continue
        if conf < 0 or not text:
            continue

        left, top = data["left"][i], data["top"][i]
        word = {
            "text": text,
            "confidence": conf,
            "bbox": {
                "x0": left,
                "y0": top,
                "x1": left + data["width"][i],
                "y1": top + data["height"][i],
            },
        }
        words.append(word)

        block = data["block_num"][i]
        par = data.get("par_num", [0] * len(data["text"]))[i]
        line = data["line_num"][i]
        lines.setdefault((block, par, line), []).append(word)
        paragraphs.setdefault((block, par), []).append(word)

    return {
        "words": words,
        "lines": [_span(group) for group in lines.values()],
        "paragraphs": [_span(group) for group in paragraphs.values()],
    }


class TesseractEngine:
    """Wrapper around Tesseract producing normalized OCR pages.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Default OCR language code.
        psm: Default Tesseract page segmentation mode.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
        psm: int = 3,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang
        self.psm = psm

    def recognize(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int | None = None,
    ) -> OCRPage:
        """Recognize text in a page image.

        Args:
            image: Page image as a numpy array.
            lang: OCR language code. Defaults to the engine default.
            psm: Page segmentation mode. Defaults to the engine default.

        Returns:
            Normalized OCR page with words, lines and paragraphs.
        """
        lang = lang or self.default_lang
        psm = self.psm if psm is None else psm

        data = pytesseract.image_to_data(
            Image.fromarray(image),
            lang=lang,
            config=f"--psm {psm}",
            output_type=pytesseract.Output.DICT,
        )
        page = build_ocr_page(tesseract_data_to_raw(data))

        logger.info(
            "OCR recognized %d words in %d lines (lang=%s, psm=%d)",
            len(page.words),
            len(page.lines),
            lang,
            psm,
        )
        return page
