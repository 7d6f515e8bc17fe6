from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from models.artifact import Artifact
from models.base import utc_now
from models.upload_analytics import (
    ActivityBucket,
    ActivityPeriod,
    CategoryMetrics,
    OwnerUploadSummary,
    SystemPerformance,
    UploadActivity,
    UploadEvent,
    UploadMetrics,
)
from services.errors import InvalidInputError
from services.repository import Repository


logger = logging.getLogger(__name__)

PERIOD_SPANS: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}
MAX_ACTIVITY_BUCKETS = 90
BYTES_PER_MB = 1024 * 1024


def log_upload_event(owner_id: str, artifact_id: str, event: UploadEvent, **metadata: Any) -> None:
    logger.info(
        "Upload event %s: artifact=%s owner=%s %s",
        event,
        artifact_id,
        owner_id,
        json.dumps(metadata, default=str, sort_keys=True),
    )


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _average_processing_ms(artifacts: Iterable[Artifact]) -> int:
    durations = [
        a.processing_duration_ms
        for a in artifacts
        if a.processing_status == "completed" and a.processing_duration_ms
    ]
    return round(sum(durations) / len(durations)) if durations else 0


def _category_metrics(artifacts: list[Artifact]) -> CategoryMetrics:
    completed = sum(1 for a in artifacts if a.processing_status == "completed")
    failed = sum(1 for a in artifacts if a.processing_status == "failed")
    return CategoryMetrics(
        uploads=len(artifacts),
        completed=completed,
        failed=failed,
        in_progress=len(artifacts) - completed - failed,
        success_rate=_percent(completed, len(artifacts)),
        failure_rate=_percent(failed, len(artifacts)),
        average_processing_ms=_average_processing_ms(artifacts),
    )


class UploadAnalytics:
    """Read-only reporting over stored artifacts."""

    def __init__(self, repository: Repository[Artifact], clock: Callable[[], datetime] = utc_now) -> None:
        self.repository = repository
        self._clock = clock

    async def upload_metrics(
        self,
        owner_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> UploadMetrics:
        if since is not None and until is not None and since > until:
            raise InvalidInputError("'since' must not be after 'until'")

        artifacts = await self.repository.find(
            lambda a: (owner_id is None or a.owner_id == owner_id)
            and (since is None or a.uploaded_at >= since)
            and (until is None or a.uploaded_at <= until)
        )

        grouped: dict[str, list[Artifact]] = defaultdict(list)
        for artifact in artifacts:
            grouped[artifact.category].append(artifact)

        overall = _category_metrics(artifacts)
        return UploadMetrics(
            total_uploads=overall.uploads,
            successful_uploads=overall.completed,
            failed_uploads=overall.failed,
            pending_uploads=overall.in_progress,
            success_rate=overall.success_rate,
            failure_rate=overall.failure_rate,
            average_processing_ms=overall.average_processing_ms,
            total_storage_bytes=sum(a.size_bytes for a in artifacts),
            by_category={category: _category_metrics(items) for category, items in sorted(grouped.items())},
            by_status=dict(Counter(a.processing_status for a in artifacts)),
            error_categories=dict(
                Counter(a.error_category for a in artifacts if a.processing_status == "failed" and a.error_category)
            ),
        )

    async def owner_summary(self, owner_id: str) -> OwnerUploadSummary:
        artifacts = sorted(await self.repository.find_owned(owner_id), key=lambda a: a.uploaded_at)
        if not artifacts:
            return OwnerUploadSummary(owner_id=owner_id)

        total = len(artifacts)
        storage = sum(a.size_bytes for a in artifacts)
        # most_common keeps first-seen order on ties
        most_used = Counter(a.category for a in artifacts).most_common(1)[0][0]
        first, last = artifacts[0].uploaded_at, artifacts[-1].uploaded_at
        days = max(1.0, (last - first).total_seconds() / 86400)

        return OwnerUploadSummary(
            owner_id=owner_id,
            total_files=total,
            total_storage_bytes=storage,
            average_file_size=round(storage / total),
            most_used_category=most_used,
            uploads_per_day=round(total / days, 1),
            last_upload_at=last,
            content_usage_rate=_percent(sum(1 for a in artifacts if a.last_accessed_at is not None), total),
        )

    async def activity(
        self, period: ActivityPeriod = "day", count: int = 7, owner_id: str | None = None
    ) -> UploadActivity:
        if period not in PERIOD_SPANS:
            raise InvalidInputError(f"Unknown activity period '{period}'")
        if not 1 <= count <= MAX_ACTIVITY_BUCKETS:
            raise InvalidInputError(f"Bucket count must be between 1 and {MAX_ACTIVITY_BUCKETS}")

        span = PERIOD_SPANS[period]
        now = self._clock()
        window_start = now - span * count
        artifacts = await self.repository.find(
            lambda a: (owner_id is None or a.owner_id == owner_id) and window_start <= a.uploaded_at < now
        )

        buckets: list[ActivityBucket] = []
        for index in range(count - 1, -1, -1):
            start, end = now - span * (index + 1), now - span * index
            in_bucket = [a for a in artifacts if start <= a.uploaded_at < end]
            buckets.append(
                ActivityBucket(
                    ends_at=end,
                    uploads=len(in_bucket),
                    successes=sum(1 for a in in_bucket if a.processing_status == "completed"),
                    failures=sum(1 for a in in_bucket if a.processing_status == "failed"),
                    average_processing_ms=_average_processing_ms(in_bucket),
                )
            )
        return UploadActivity(period=period, buckets=buckets)

    async def system_performance(self, window_days: int = 30) -> SystemPerformance:
        if window_days < 1:
            raise InvalidInputError("Window must be at least one day")

        now = self._clock()
        cutoff = now - timedelta(days=window_days)
        recent = await self.repository.find(lambda a: a.uploaded_at >= cutoff)

        grouped: dict[str, list[Artifact]] = defaultdict(list)
        for artifact in recent:
            grouped[artifact.category].append(artifact)

        processing_by_category = {
            category: _average_processing_ms(items)
            for category, items in sorted(grouped.items())
            if _average_processing_ms(items)
        }
        error_rates = {
            category: _percent(sum(1 for a in items if a.processing_status == "failed"), len(items))
            for category, items in sorted(grouped.items())
        }

        hours = Counter(a.uploaded_at.hour for a in recent)
        peak_hours = [hour for hour, _ in sorted(hours.items(), key=lambda item: (-item[1], item[0]))[:3]]

        first_day_end = cutoff + timedelta(days=1)
        last_day_start = now - timedelta(days=1)
        first_day = sum(a.size_bytes for a in recent if a.uploaded_at < first_day_end)
        last_day = sum(a.size_bytes for a in recent if a.uploaded_at >= last_day_start)

        performance = SystemPerformance(
            window_days=window_days,
            average_processing_ms_by_category=processing_by_category,
            error_rate_by_category=error_rates,
            peak_upload_hours=peak_hours,
            storage_growth_mb_per_day=round((last_day - first_day) / BYTES_PER_MB, 1),
            active_owners=len({a.owner_id for a in recent}),
        )
        logger.info("Computed upload performance over %d days (%d artifacts)", window_days, len(recent))
        return performance

