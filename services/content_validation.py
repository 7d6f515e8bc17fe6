from __future__ import annotations

import re
from dataclasses import dataclass, field

from models.artifact import DOCX_MIME_TYPE, MAX_ARTIFACT_BYTES, MAX_EXTRACTED_TEXT_LENGTH, ArtifactCategory
from services.errors import InvalidInputError


ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    DOCX_MIME_TYPE,
}

MALICIOUS_PATTERNS = [
    re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"<iframe[\s\S]*?</iframe>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"<object[\s\S]*?</object>", re.IGNORECASE),
    re.compile(r"<embed[\s\S]*?>", re.IGNORECASE),
    re.compile(r"\bon[a-z]+\s*=\s*[\"']", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
]

_NON_ASCII = re.compile(r"[^\x00-\x7F]")


@dataclass
class ContentValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_upload(original_name: str, mime_type: str, size_bytes: int) -> None:
    if not (original_name or "").strip():
        raise InvalidInputError("Original file name is required")
    if size_bytes <= 0:
        raise InvalidInputError("The uploaded file is empty")
    if size_bytes > MAX_ARTIFACT_BYTES:
        raise InvalidInputError(
            f"File size {size_bytes} exceeds the {MAX_ARTIFACT_BYTES // (1024 * 1024)}MB limit"
        )
    if (mime_type or "").lower() not in ALLOWED_MIME_TYPES:
        raise InvalidInputError(f"Unsupported file type '{mime_type}'")


def validate_processed_content(text: str | None, category: ArtifactCategory) -> ContentValidationResult:
    result = ContentValidationResult()
    stripped = (text or "").strip()

    if not stripped:
        result.errors.append("No text content could be extracted from the file")
        return result

    if len(text) > MAX_EXTRACTED_TEXT_LENGTH:
        result.errors.append(
            f"Extracted content exceeds {MAX_EXTRACTED_TEXT_LENGTH} characters ({len(text)})"
        )

    min_length = 10 if category == "image" else 50
    if len(stripped) < min_length:
        result.warnings.append(f"Extracted content is very short ({len(stripped)} characters)")

    if len(_NON_ASCII.findall(text)) / len(text) > 0.3:
        result.warnings.append(
            "Extracted text contains many non-standard characters, which may indicate OCR issues"
        )

    if any(pattern.search(text) for pattern in MALICIOUS_PATTERNS):
        result.errors.append("Extracted content contains potentially malicious patterns")

    return result
