from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone

import pytest

from models.transcript_rating import InterviewContext, TranscriptMessage, TranscriptRating
from scripts import sweep_expired
from services.document_store import JsonFileDocumentStore
from services.repository import Repository


CREATED = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


async def _seed(tmp_path) -> Repository[TranscriptRating]:
    repository = Repository(JsonFileDocumentStore(tmp_path), "transcript_ratings", TranscriptRating)
    for hours in (0, 30):
        await repository.save(
            TranscriptRating(
                owner_id="user-1",
                messages=[TranscriptMessage(sender="user", text="Hello")],
                interview_context=InterviewContext(difficulty="beginner", interview_type="behavioral"),
                created_at=CREATED + timedelta(hours=hours),
            )
        )
    return repository


@pytest.mark.asyncio
async def test_dry_run_counts_without_deleting(tmp_path) -> None:
    repository = await _seed(tmp_path)
    summary = await sweep_expired._sweep(tmp_path, CREATED + timedelta(hours=40), dry_run=True)

    assert summary["would_remove"] == 1
    assert await repository.count() == 2


@pytest.mark.asyncio
async def test_sweep_removes_expired(tmp_path) -> None:
    repository = await _seed(tmp_path)
    summary = await sweep_expired._sweep(tmp_path, CREATED + timedelta(hours=40), dry_run=False)

    assert summary["removed"] == 1
    assert await repository.count() == 1


def test_main_rejects_missing_data_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["sweep_expired", "--data-dir", str(tmp_path / "missing")])
    with pytest.raises(SystemExit):
        sweep_expired.main()


def test_main_prints_summary(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["sweep_expired", "--data-dir", str(tmp_path), "--now", "2025-06-01T00:00:00"])
    assert sweep_expired.main() == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary == {"removed": 0, "cutoff": "2025-06-01T00:00:00+00:00"}
