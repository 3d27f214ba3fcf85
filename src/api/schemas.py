"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel, Field


class CornerBox(BaseModel):
    """Bounding box in corner form as emitted by OCR engines."""

    x0: float
    y0: float
    x1: float
    y1: float


class OCRElement(BaseModel):
    """One recognized word, line or paragraph."""

    text: str
    confidence: float = 0.0
    bbox: CornerBox | None = None


class OCRResultRequest(BaseModel):
    """Raw OCR engine output submitted for field extraction."""

    words: list[OCRElement] = Field(default_factory=list)
    lines: list[OCRElement] = Field(default_factory=list)
    paragraphs: list[OCRElement] = Field(default_factory=list)


class FieldBox(BaseModel):
    """Bounding box in width/height form."""

    x: float
    y: float
    w: float
    h: float


class ExtractedFieldResponse(BaseModel):
    """Response schema for a single extracted field."""

    type: str
    label: str
    value: str
    rawSourceText: str
    confidence: float
    bbox: FieldBox


class LineItemResponse(BaseModel):
    """Response schema for a priced invoice line."""

    description: str
    amount: str
    bbox: FieldBox


class FieldSummary(BaseModel):
    """Field count and average confidence."""

    total_fields: int
    average_confidence: float


class ExtractionResponse(BaseModel):
    """Response schema for an extraction request."""

    success: bool
    document_id: str
    fields: list[ExtractedFieldResponse]
    line_items: list[LineItemResponse] = Field(default_factory=list)
    summary: FieldSummary
    raw_text: str
    processing_time_ms: float
    page_count: int = 1


class RenderQueueStatus(BaseModel):
    """Snapshot of the render queue."""

    state: str
    pending: int
    current_task: str | None = None


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    render_queue: RenderQueueStatus
