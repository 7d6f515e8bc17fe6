from __future__ import annotations

import pytest

from models.artifact import MAX_EXTRACTED_TEXT_LENGTH, determine_category
from services.content_validation import validate_processed_content, validate_upload
from services.errors import InvalidInputError


def test_upload_limits() -> None:
    validate_upload("essay.pdf", "application/pdf", 1024)
    with pytest.raises(InvalidInputError):
        validate_upload("essay.pdf", "application/pdf", 0)
    with pytest.raises(InvalidInputError):
        validate_upload("", "application/pdf", 10)
    with pytest.raises(InvalidInputError):
        validate_upload("clip.mp4", "video/mp4", 10)


def test_categories_from_mime_type() -> None:
    assert determine_category("image/png") == "image"
    assert determine_category("application/pdf") == "pdf"
    assert determine_category("text/plain") == "text"
    assert determine_category("application/msword") == "document"


def test_empty_text_is_an_error() -> None:
    result = validate_processed_content("   ", "text")
    assert not result.is_valid


def test_short_text_only_warns() -> None:
    result = validate_processed_content("Short note", "text")
    assert result.is_valid
    assert result.warnings

    image_result = validate_processed_content("Ten chars!", "image")
    assert image_result.is_valid
    assert not image_result.warnings


def test_oversized_text_is_an_error() -> None:
    result = validate_processed_content("a" * (MAX_EXTRACTED_TEXT_LENGTH + 1), "text")
    assert not result.is_valid


def test_garbled_text_warns() -> None:
    result = validate_processed_content("ÿþÿþÿþÿþ" * 10 + " plain words here", "image")
    assert result.is_valid
    assert any("non-standard" in w for w in result.warnings)


@pytest.mark.parametrize(
    "snippet",
    [
        "<script>steal()</script>",
        "click javascript:alert(1)",
        '<img src=x onerror="boom()">',
        "eval (payload)",
    ],
)
def test_script_patterns_are_rejected(snippet: str) -> None:
    text = f"My summer internship report covers a lot of ground. {snippet}"
    assert not validate_processed_content(text, "text").is_valid


def test_ordinary_prose_with_on_words_is_allowed() -> None:
    text = "I focused on online tutoring and later worked on one large project for the school."
    assert validate_processed_content(text, "text").is_valid
