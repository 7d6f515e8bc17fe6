from __future__ import annotations

import secrets
import time
from datetime import datetime
from pathlib import PurePath
from typing import Literal

from pydantic import Field, model_validator

from models.base import ProcessingStatus, StoredDocument, utc_now


ArtifactCategory = Literal["image", "pdf", "text", "document"]

MAX_ARTIFACT_BYTES = 5 * 1024 * 1024
MAX_EXTRACTED_TEXT_LENGTH = 500_000

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

STATUS_DISPLAY = {
    "pending": "Waiting to process",
    "processing": "Processing file...",
    "completed": "Processing complete",
    "failed": "Processing failed",
}


def determine_category(mime_type: str) -> ArtifactCategory:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime == "application/pdf":
        return "pdf"
    if mime == "text/plain":
        return "text"
    # word processors and anything unknown are treated as documents
    return "document"


def generate_storage_name(original_name: str) -> str:
    suffix = PurePath(original_name or "").suffix
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{suffix}"


class Artifact(StoredDocument):
    storage_name: str
    original_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=100)
    size_bytes: int = Field(ge=0, le=MAX_ARTIFACT_BYTES)
    category: ArtifactCategory

    processing_status: ProcessingStatus = "pending"
    extracted_text: str | None = Field(default=None, max_length=MAX_EXTRACTED_TEXT_LENGTH)
    error_message: str | None = Field(default=None, max_length=1000)
    error_category: str | None = None
    processing_duration_ms: int | None = Field(default=None, ge=0)
    processing_warnings: list[str] = Field(default_factory=list)
    processing_attempts: int = 0
    extraction_attempts: int = 0

    uploaded_at: datetime = Field(default_factory=utc_now)
    last_accessed_at: datetime | None = None

    @model_validator(mode="after")
    def _text_only_when_completed(self) -> "Artifact":
        has_text = self.extracted_text is not None
        if has_text != (self.processing_status == "completed"):
            raise ValueError("extracted_text must be set exactly when processing is completed")
        return self

    @property
    def status_display(self) -> str:
        return STATUS_DISPLAY.get(self.processing_status, "Unknown status")
