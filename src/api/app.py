"""FastAPI application for the invoice field extraction API.

Provides REST endpoints for document extraction, extraction from raw
OCR output, render queue status, and health checks. The render queue
guarding the rendering surface is created once per application in the
lifespan handler and shared by every request.
"""

import shutil
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from src.export.writers import summarize
from src.extraction.fields import ExtractedField, LineItem
from src.extraction.pipeline import FieldExtractor
from src.ocr.document_processor import DocumentProcessor
from src.rendering.render_queue import RenderCancelledError, RenderQueue
from src.utils.config import load_config
from src.utils.logger import get_logger

from .schemas import (
    ExtractedFieldResponse,
    ExtractionResponse,
    FieldSummary,
    HealthResponse,
    LineItemResponse,
    OCRResultRequest,
    RenderQueueStatus,
)

logger = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = load_config()
    render_queue = RenderQueue(settle_interval=config.render.settle_interval)
    app.state.config = config
    app.state.render_queue = render_queue
    app.state.processor = DocumentProcessor(config, render_queue)
    app.state.extractor = FieldExtractor(config.extraction)
    try:
        yield
    finally:
        await render_queue.close()


app = FastAPI(
    title="Invoice Field Extraction API",
    description="Extract typed invoice fields with provenance from OCR output",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/pdf",
    "application/octet-stream",
}


def _queue_status(render_queue: RenderQueue) -> RenderQueueStatus:
    return RenderQueueStatus(
        state=render_queue.state.value,
        pending=render_queue.pending_count,
        current_task=render_queue.current_context,
    )


def _build_response(
    fields: list[ExtractedField],
    line_items: list[LineItem],
    raw_text: str,
    start_time: float,
    page_count: int = 1,
) -> ExtractionResponse:
    return ExtractionResponse(
        success=True,
        document_id=str(uuid.uuid4()),
        fields=[ExtractedFieldResponse(**f.to_dict()) for f in fields],
        line_items=[LineItemResponse(**item.to_dict()) for item in line_items],
        summary=FieldSummary(**summarize(fields)),
        raw_text=raw_text,
        processing_time_ms=(time.time() - start_time) * 1000,
        page_count=page_count,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
        render_queue=_queue_status(request.app.state.render_queue),
    )


@app.get("/render/status", response_model=RenderQueueStatus)
async def render_status(request: Request) -> RenderQueueStatus:
    """Report whether a render is in progress and how many are queued."""
    return _queue_status(request.app.state.render_queue)


@app.post("/extract/ocr", response_model=ExtractionResponse)
async def extract_from_ocr(
    request: Request, ocr_result: OCRResultRequest
) -> ExtractionResponse:
    """Extract fields from OCR output produced elsewhere.

    Args:
        ocr_result: Words, lines and paragraphs from an OCR engine.

    Returns:
        Ordered fields with confidence and bounding boxes.
    """
    start_time = time.time()
    extractor: FieldExtractor = request.app.state.extractor
    result = extractor.extract_page(ocr_result.model_dump())
    return _build_response(
        result.fields, result.line_items, result.raw_text, start_time
    )


@app.post("/extract", response_model=ExtractionResponse)
async def extract_document(
    request: Request,
    file: Annotated[UploadFile, File(...)],
) -> ExtractionResponse:
    """Extract fields from an uploaded PDF or image.

    Args:
        file: Uploaded document file (PNG, JPEG, TIFF, or PDF).

    Returns:
        Document-level fields, line items and the recognized text.
    """
    start_time = time.time()

    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    processor: DocumentProcessor = request.app.state.processor
    try:
        content = await file.read()
        doc_result = await processor.process(content, file.filename or "document")
    except RenderCancelledError as exc:
        logger.info("Extraction superseded: %s", exc)
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as exc:
        logger.error("Extraction failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return _build_response(
        doc_result.fields,
        doc_result.line_items,
        doc_result.combined_text,
        start_time,
        page_count=doc_result.page_count,
    )
