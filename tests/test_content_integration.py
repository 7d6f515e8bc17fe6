from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.artifact import Artifact
from services.content_integration import (
    TRUNCATION_NOTICE,
    estimate_token_count,
    format_content_for_prompt,
    get_user_uploaded_content,
    select_relevant_content,
)
from services.document_store import InMemoryDocumentStore
from services.repository import Repository


BASE = datetime(2025, 1, 10, tzinfo=timezone.utc)


def _artifact(name: str, text: str | None, hours: int = 0, owner: str = "user-1") -> Artifact:
    return Artifact(
        owner_id=owner,
        storage_name=f"1-{name}",
        original_name=name,
        mime_type="text/plain",
        size_bytes=10,
        category="text",
        processing_status="completed" if text is not None else "pending",
        extracted_text=text,
        uploaded_at=BASE + timedelta(hours=hours),
    )


def test_estimate_token_count_rounds_up() -> None:
    assert estimate_token_count("") == 0
    assert estimate_token_count("abcde") == 2


def test_select_relevant_content_fits_budget() -> None:
    artifacts = [_artifact("resume.txt", "Robotics captain"), _artifact("essay.txt", "Why engineering")]
    content = select_relevant_content(artifacts, max_tokens=100)
    assert content == "=== resume.txt ===\nRobotics captain\n\n=== essay.txt ===\nWhy engineering"


def test_select_relevant_content_truncates() -> None:
    content = select_relevant_content([_artifact("long.txt", "x" * 1000)], max_tokens=10)
    assert content.endswith(TRUNCATION_NOTICE)
    assert len(content) == 40 + len(TRUNCATION_NOTICE)


def test_select_relevant_content_none_without_text() -> None:
    assert select_relevant_content([]) is None
    assert select_relevant_content([_artifact("blank.txt", "   ")]) is None


def test_format_content_puts_profile_first() -> None:
    artifacts = [
        _artifact("essay.txt", "Essay body", hours=5),
        _artifact("user_info.txt", "Grade 11", hours=1),
        _artifact("older.txt", "Old notes", hours=0),
    ]
    formatted = format_content_for_prompt(artifacts)
    order = [formatted.index(name) for name in ("user_info.txt", "essay.txt", "older.txt")]
    assert order == sorted(order)
    assert "Type: text/plain" in formatted


@pytest.mark.asyncio
async def test_get_user_uploaded_content_only_completed_and_owned() -> None:
    repo = Repository(InMemoryDocumentStore(), "artifacts", Artifact)
    await repo.save(_artifact("old.txt", "First", hours=0))
    await repo.save(_artifact("new.txt", "Second", hours=2))
    await repo.save(_artifact("pending.txt", None))
    await repo.save(_artifact("theirs.txt", "Hidden", owner="user-2"))

    content = await get_user_uploaded_content(repo, "user-1")

    assert content == "=== new.txt ===\nSecond\n\n=== old.txt ===\nFirst"
    assert await get_user_uploaded_content(repo, "nobody") is None
