#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

from models.transcript_rating import TranscriptRating
from services.document_store import JsonFileDocumentStore
from services.rating_service import TranscriptRatingMachine
from services.repository import Repository


class _NoAnalysis:
    async def analyze_transcript(self, request):
        raise RuntimeError("analysis is not available from the sweep script")


async def _sweep(data_dir: Path, now: datetime | None, dry_run: bool) -> dict:
    repository = Repository(JsonFileDocumentStore(data_dir), "transcript_ratings", TranscriptRating)
    machine = TranscriptRatingMachine(repository, analyzer=_NoAnalysis())
    cutoff = now or datetime.now(timezone.utc)
    if dry_run:
        expired = await repository.count(lambda r: r.status == "expired" or r.expires_at < cutoff)
        return {"would_remove": expired, "cutoff": cutoff.isoformat()}
    removed = await machine.cleanup_expired(now=cutoff)
    return {"removed": removed, "cutoff": cutoff.isoformat()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete expired transcript ratings")
    parser.add_argument(
        "--data-dir",
        default="./data",
        help="Document store directory (default: ./data)",
    )
    parser.add_argument(
        "--now",
        default=None,
        help="ISO timestamp to use as the expiry cutoff (default: current time)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count the ratings that would be removed",
    )
    args = parser.parse_args()

    data_dir = Path(args.data_dir)
    if not data_dir.exists():
        raise SystemExit(f"Data directory not found: {data_dir}")

    now = None
    if args.now:
        now = datetime.fromisoformat(args.now)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    summary = asyncio.run(_sweep(data_dir, now, args.dry_run))
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
