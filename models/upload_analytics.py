from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


ActivityPeriod = Literal["hour", "day", "week", "month"]
UploadEvent = Literal["upload", "process", "access", "delete"]


class CategoryMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uploads: int = 0
    completed: int = 0
    failed: int = 0
    in_progress: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    average_processing_ms: int = 0


class UploadMetrics(BaseModel):
    """Aggregate processing outcomes; rates are percentages of all uploads."""

    model_config = ConfigDict(extra="ignore")

    total_uploads: int = 0
    successful_uploads: int = 0
    failed_uploads: int = 0
    pending_uploads: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    average_processing_ms: int = 0
    total_storage_bytes: int = 0
    by_category: dict[str, CategoryMetrics] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    error_categories: dict[str, int] = Field(default_factory=dict)


class OwnerUploadSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    owner_id: str
    total_files: int = 0
    total_storage_bytes: int = 0
    average_file_size: int = 0
    most_used_category: str = "none"
    uploads_per_day: float = 0.0
    last_upload_at: datetime | None = None
    content_usage_rate: float = 0.0


class ActivityBucket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ends_at: datetime
    uploads: int = 0
    successes: int = 0
    failures: int = 0
    average_processing_ms: int = 0


class UploadActivity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    period: ActivityPeriod
    buckets: list[ActivityBucket] = Field(default_factory=list)


class SystemPerformance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    window_days: int
    average_processing_ms_by_category: dict[str, int] = Field(default_factory=dict)
    error_rate_by_category: dict[str, float] = Field(default_factory=dict)
    peak_upload_hours: list[int] = Field(default_factory=list)
    storage_growth_mb_per_day: float = 0.0
    active_owners: int = 0
