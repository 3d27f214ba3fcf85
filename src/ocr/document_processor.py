"""Document processing pipeline.

Rasterizes PDF pages through the shared render queue, runs OCR on each
page and extracts ranked fields per page and for the whole document.
"""

import asyncio
import io
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image

from src.extraction.fields import ExtractedField, LineItem
from src.extraction.pipeline import FieldExtractor
from src.rendering.render_queue import RenderQueue, RenderTask
from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .pdf_handler import PDFHandler
from .result_model import OCRPage
from .tesseract_engine import TesseractEngine

logger = get_logger(__name__)

OCR_RENDER_KEY = "ocr"
PREVIEW_RENDER_KEY = "preview"


@dataclass
class PageResult:
    """OCR and extraction results for a single document page."""

    page_number: int
    ocr_page: OCRPage
    fields: list[ExtractedField]
    line_items: list[LineItem] = field(default_factory=list)


@dataclass
class DocumentResult:
    """Complete processing results for a document."""

    source_file: str
    page_count: int
    pages: list[PageResult]
    fields: list[ExtractedField]
    combined_text: str

    @property
    def line_items(self) -> list[LineItem]:
        return [item for page in self.pages for item in page.line_items]


def is_pdf(source: Path | bytes) -> bool:
    if isinstance(source, bytes):
        return source[:4] == b"%PDF"
    return Path(source).suffix.lower() == ".pdf"


class DocumentProcessor:
    """End-to-end document processing.

    The processor does not own a render queue; the caller supplies the
    one queue guarding the rendering surface.

    Args:
        config: Application configuration object.
        render_queue: Queue serializing all page renders.
        pdf_handler: Page renderer; built from ``config`` if omitted.
        ocr_engine: OCR engine; built from ``config`` if omitted.
        extractor: Field extractor; built from ``config`` if omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        render_queue: RenderQueue,
        pdf_handler: PDFHandler | None = None,
        ocr_engine: TesseractEngine | None = None,
        extractor: FieldExtractor | None = None,
    ) -> None:
        self.config = config
        self.render_queue = render_queue
        self.pdf_handler = pdf_handler or PDFHandler(
            ocr_scale=config.ocr.ocr_scale,
            preview_scale=config.ocr.preview_scale,
        )
        self.ocr_engine = ocr_engine or TesseractEngine(
            tesseract_cmd=config.ocr.tesseract_cmd,
            default_lang=config.ocr.default_lang,
            psm=config.ocr.psm,
        )
        self.extractor = extractor or FieldExtractor(config.extraction)

    def rasterize(
        self, source: Path | bytes, filename: str = "document"
    ) -> RenderTask[list[np.ndarray]]:
        """Queue OCR rasterization of every page of a PDF.

        A newer rasterization request supersedes an outstanding one.
        """
        return self.render_queue.submit(
            lambda: self.pdf_handler.render_pages(source, self.pdf_handler.ocr_scale),
            context=f"ocr:{filename}",
            supersede=OCR_RENDER_KEY,
        )

    def render_preview(
        self, source: Path | bytes, page_number: int = 1
    ) -> RenderTask[np.ndarray]:
        """Queue a preview render of one page.

        A newer preview request supersedes an outstanding one.
        """

        async def render() -> np.ndarray:
            images = await self.pdf_handler.render_pages(
                source, self.pdf_handler.preview_scale, [page_number]
            )
            return images[0]

        return self.render_queue.submit(
            render,
            context=f"preview:page-{page_number}",
            supersede=PREVIEW_RENDER_KEY,
        )

    async def load_images(
        self, source: Path | bytes, filename: str = "document"
    ) -> list[np.ndarray]:
        """Load page images from a PDF (via the render queue) or an image.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
        """
        if is_pdf(source):
            return await self.rasterize(source, filename)

        if isinstance(source, bytes):
            img = Image.open(io.BytesIO(source))
        else:
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Document not found: {path}")
            img = Image.open(path)
        return [np.array(img.convert("RGB"))]

    async def process(
        self, source: Path | bytes, filename: str = "document"
    ) -> DocumentResult:
        """Process a document from file path or bytes.

        Args:
            source: Path to a document file, or raw file bytes.
            filename: Display name for the source document.

        Returns:
            Complete document processing results.
        """
        logger.info("Processing document: %s", filename)
        images = await self.load_images(source, filename)
        pages: list[PageResult] = []

        for i, image in enumerate(images):
            ocr_page = await asyncio.to_thread(self.ocr_engine.recognize, image)
            extraction = self.extractor.extract_page(ocr_page)
            pages.append(
                PageResult(
                    page_number=i + 1,
                    ocr_page=ocr_page,
                    fields=extraction.fields,
                    line_items=extraction.line_items,
                )
            )

        fields = self.extractor.ranker.merge(p.fields for p in pages)
        combined_text = "\n\n--- Page Break ---\n\n".join(
            p.ocr_page.full_text for p in pages
        )

        logger.info(
            "Processed %d pages from %s: %d fields", len(pages), filename, len(fields)
        )
        return DocumentResult(
            source_file=filename,
            page_count=len(pages),
            pages=pages,
            fields=fields,
            combined_text=combined_text,
        )
