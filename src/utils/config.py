"""Configuration management for the invoice field extraction system.

Loads and validates YAML configuration with sensible defaults for OCR,
field extraction thresholds, and render queue timing.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class OCRConfig(BaseModel):
    """Configuration for Tesseract OCR and page rasterization."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    ocr_scale: float = Field(default=3.0, gt=0)
    preview_scale: float = Field(default=1.5, gt=0)


class ExtractionConfig(BaseModel):
    """Thresholds for field ranking, on the 0-100 confidence scale."""

    min_confidence: float = Field(default=70.0, ge=0, le=100)
    text_min_confidence: float = Field(default=85.0, ge=0, le=100)
    default_confidence: float = Field(default=95.0, ge=0, le=100)
    min_text_length: int = Field(default=3, ge=1)
    extract_line_items: bool = True


class RenderConfig(BaseModel):
    """Configuration for the render task queue."""

    settle_interval_ms: int = Field(default=100, ge=0)

    @property
    def settle_interval(self) -> float:
        """Settling interval in seconds."""
        return self.settle_interval_ms / 1000.0


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
