from __future__ import annotations

import pytest

from agents.prompt_loader import load_prompt, render_prompt


def test_load_prompt_default_language_is_english() -> None:
    text_default = load_prompt("feedback_system.txt")
    text_en = load_prompt("feedback_system.txt", language="en")
    assert text_default == text_en
    assert "interview coach" in text_default


def test_load_prompt_falls_back_to_root() -> None:
    assert load_prompt("feedback_system.txt", language="ru") == load_prompt("feedback_system.txt")


def test_load_prompt_missing_raises() -> None:
    with pytest.raises(FileNotFoundError):
        load_prompt("nonexistent_file_xyz.txt", language="en")


def test_render_prompt_fills_placeholders() -> None:
    text = render_prompt(
        "feedback_system.txt",
        interview_type="behavioral",
        difficulty="advanced",
        user_major="Chemistry",
        duration_minutes=20,
        profile_lines="- Student grade: 12",
    )
    assert "behavioral interviews" in text
    assert "Difficulty level: advanced" in text
    assert "Interview duration: 20 minutes" in text
    assert "- Student grade: 12" in text
    assert "$" not in text
    # JSON braces in the schema survive substitution
    assert '"overall_rating": 7.5' in text


def test_render_prompt_leaves_unknown_placeholders() -> None:
    text = render_prompt("feedback_system.txt", interview_type="technical")
    assert "$difficulty" in text
