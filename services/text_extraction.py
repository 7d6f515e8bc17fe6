from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import docx
import pymupdf
import pytesseract
from PIL import Image, ImageFilter, ImageOps

from models.artifact import DOCX_MIME_TYPE, MAX_EXTRACTED_TEXT_LENGTH, ArtifactCategory, determine_category
from services.errors import ExtractionError


logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [truncated]"
OCR_MAX_WIDTH = 3000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_MULTI_NEWLINES = re.compile(r"\n{3,}")
_MULTI_SPACES = re.compile(r"[ \t]+")


@dataclass
class ExtractionResult:
    text: str
    word_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


def clean_extracted_text(text: str) -> str:
    if not text:
        return ""
    text = _CONTROL_CHARS.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _MULTI_NEWLINES.sub("\n\n", text)
    text = _MULTI_SPACES.sub(" ", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def truncate_text(text: str, limit: int = MAX_EXTRACTED_TEXT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def has_valid_signature(data: bytes, mime_type: str) -> bool:
    if not data:
        return False
    mime = (mime_type or "").lower()
    if mime == "application/pdf":
        return data.startswith(b"%PDF")
    if mime in {"image/jpeg", "image/jpg"}:
        return data.startswith(b"\xff\xd8")
    if mime == "image/png":
        return data.startswith(b"\x89PNG")
    if mime == "image/gif":
        return data[:6] in {b"GIF87a", b"GIF89a"}
    if mime == "image/webp":
        return data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    if mime == DOCX_MIME_TYPE:
        return data.startswith(b"PK\x03\x04")
    if mime == "text/plain":
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return True
    return True


def _extract_pdf(data: bytes) -> tuple[str, dict[str, Any]]:
    with pymupdf.open(stream=data, filetype="pdf") as document:
        text = "\n".join(page.get_text("text") for page in document)
        return text, {"page_count": document.page_count}


def _extract_docx(data: bytes) -> tuple[str, dict[str, Any]]:
    document = docx.Document(io.BytesIO(data))
    paragraphs = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            paragraphs.append(" ".join(cell.text for cell in row.cells))
    return "\n".join(paragraphs), {}


def _prepare_for_ocr(image: Image.Image) -> Image.Image:
    prepared = ImageOps.autocontrast(ImageOps.grayscale(image)).filter(ImageFilter.SHARPEN)
    if prepared.width > OCR_MAX_WIDTH:
        prepared.thumbnail((OCR_MAX_WIDTH, OCR_MAX_WIDTH * 10))
    return prepared


def _extract_image(data: bytes) -> tuple[str, dict[str, Any]]:
    with Image.open(io.BytesIO(data)) as image:
        prepared = _prepare_for_ocr(image)
    return pytesseract.image_to_string(prepared), {"ocr": True}


def _extract_plain(data: bytes) -> tuple[str, dict[str, Any]]:
    return data.decode("utf-8"), {}


_HANDLERS = {
    "pdf": ("PDF extraction", _extract_pdf),
    "document": ("DOCX extraction", _extract_docx),
    "image": ("Image OCR", _extract_image),
    "text": ("Text processing", _extract_plain),
}


class TextExtractor:
    """Local extraction for every artifact category.

    The parsing libraries are blocking, so each handler runs in a worker
    thread. Any parser failure is a permanent :class:`ExtractionError`.
    """

    async def extract(self, data: bytes, mime_type: str) -> ExtractionResult:
        if not has_valid_signature(data, mime_type):
            raise ExtractionError("Invalid file content for specified MIME type")

        category: ArtifactCategory = determine_category(mime_type)
        label, handler = _HANDLERS[category]
        try:
            raw_text, metadata = await asyncio.to_thread(handler, data)
        except Exception as err:
            raise ExtractionError(f"{label} failed: {err}") from err

        text = truncate_text(clean_extracted_text(raw_text))
        if not text:
            raise ExtractionError(f"{label} found no text content")

        word_count = len(text.split())
        logger.info("Extracted %d characters (%d words) from %s content", len(text), word_count, category)
        return ExtractionResult(text=text, word_count=word_count, metadata=metadata)
