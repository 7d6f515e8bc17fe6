#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from models.artifact import Artifact
from services.document_store import JsonFileDocumentStore
from services.repository import Repository
from services.upload_analytics import UploadAnalytics


async def _report(data_dir: Path, now: datetime | None, window_days: int) -> dict:
    cutoff = now or datetime.now(timezone.utc)
    analytics = UploadAnalytics(
        Repository(JsonFileDocumentStore(data_dir), "artifacts", Artifact),
        clock=lambda: cutoff,
    )
    metrics = await analytics.upload_metrics(since=cutoff - timedelta(days=1), until=cutoff)
    performance = await analytics.system_performance(window_days=window_days)
    activity = await analytics.activity(period="day", count=7)
    return {
        "generated_at": cutoff.isoformat(),
        "last_24h": metrics.model_dump(mode="json"),
        "performance": performance.model_dump(mode="json"),
        "daily_activity": activity.model_dump(mode="json")["buckets"],
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Summarize upload processing across all users")
    parser.add_argument(
        "--data-dir",
        default="./data",
        help="Document store directory (default: ./data)",
    )
    parser.add_argument(
        "--now",
        default=None,
        help="ISO timestamp the report is anchored at (default: current time)",
    )
    parser.add_argument(
        "--window-days",
        type=int,
        default=30,
        help="Days covered by the performance section (default: 30)",
    )
    args = parser.parse_args()

    data_dir = Path(args.data_dir)
    if not data_dir.exists():
        raise SystemExit(f"Data directory not found: {data_dir}")
    if args.window_days < 1:
        raise SystemExit("--window-days must be at least 1")

    now = None
    if args.now:
        now = datetime.fromisoformat(args.now)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    report = asyncio.run(_report(data_dir, now, args.window_days))
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
