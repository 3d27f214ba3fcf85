"""PDF page rasterization for previews and OCR.

Converts PDF pages to numpy arrays at a zoom scale (72 DPI per unit of
scale). The async helpers render one page per worker-thread call so each
page boundary is a suspension point where a cancelled render can stop.
"""

import asyncio
import functools
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any, TypeVar

import numpy as np
from pdf2image import (
    convert_from_bytes,
    convert_from_path,
    pdfinfo_from_bytes,
    pdfinfo_from_path,
)

from src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

POINTS_PER_INCH = 72


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call in a worker thread.

    If the awaiting task is cancelled, the call already in progress is
    allowed to finish before the cancellation propagates, so no other
    render can start while it is still drawing.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        raise


class PDFHandler:
    """Renders PDF pages to images.

    Args:
        ocr_scale: Zoom used when rasterizing for OCR.
        preview_scale: Zoom used for on-screen previews.
    """

    def __init__(self, ocr_scale: float = 3.0, preview_scale: float = 1.5) -> None:
        self.ocr_scale = ocr_scale
        self.preview_scale = preview_scale

    @staticmethod
    def dpi_for(scale: float) -> int:
        return max(1, round(POINTS_PER_INCH * scale))

    def render_page(
        self, pdf_source: Path | bytes, page_number: int = 1, scale: float = 1.0
    ) -> np.ndarray:
        """Render a single page.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.
            page_number: 1-based page number.
            scale: Zoom factor relative to 72 DPI.

        Returns:
            The page as an RGB numpy array.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
            RuntimeError: If PDF conversion fails.
        """
        dpi = self.dpi_for(scale)
        try:
            if isinstance(pdf_source, str | Path):
                path = Path(pdf_source)
                if not path.exists():
                    raise FileNotFoundError(f"PDF file not found: {path}")
                pil_images = convert_from_path(
                    str(path), dpi=dpi, first_page=page_number, last_page=page_number
                )
            else:
                pil_images = convert_from_bytes(
                    pdf_source, dpi=dpi, first_page=page_number, last_page=page_number
                )
        except FileNotFoundError:
            raise
        except Exception as exc:
            raise RuntimeError(f"PDF conversion failed: {exc}") from exc

        if not pil_images:
            raise RuntimeError(f"PDF page {page_number} produced no image")
        logger.debug("Rendered page %d at %d DPI", page_number, dpi)
        return np.array(pil_images[0])

    def get_page_count(self, pdf_source: Path | bytes) -> int:
        """Get the number of pages in a PDF without converting.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.

        Returns:
            Number of pages in the PDF.
        """
        if isinstance(pdf_source, str | Path):
            info = pdfinfo_from_path(str(pdf_source))
        else:
            info = pdfinfo_from_bytes(pdf_source)
        count = info["Pages"]
        logger.debug("PDF has %d pages", count)
        return count

    def iter_pages(
        self, pdf_source: Path | bytes, scale: float
    ) -> Iterator[np.ndarray]:
        """Render every page lazily, one at a time."""
        for page_number in range(1, self.get_page_count(pdf_source) + 1):
            yield self.render_page(pdf_source, page_number, scale)

    async def render_pages(
        self,
        pdf_source: Path | bytes,
        scale: float | None = None,
        pages: Sequence[int] | None = None,
    ) -> list[np.ndarray]:
        """Render pages without blocking the event loop.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.
            scale: Zoom factor; defaults to the OCR scale.
            pages: 1-based page numbers; defaults to all pages.

        Returns:
            Rendered pages in the requested order.
        """
        scale = self.ocr_scale if scale is None else scale
        if pages is None:
            count = await run_blocking(self.get_page_count, pdf_source)
            pages = range(1, count + 1)

        images: list[np.ndarray] = []
        for page_number in pages:
            images.append(
                await run_blocking(self.render_page, pdf_source, page_number, scale)
            )
        logger.info("Rendered %d pages at scale %.1f", len(images), scale)
        return images
