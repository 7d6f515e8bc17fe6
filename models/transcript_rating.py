from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.base import StoredDocument, utc_now
from models.feedback import FeedbackReport


RATING_TTL = timedelta(hours=24)

RatingStatus = Literal["pending", "rated", "error", "expired"]


class TranscriptMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, str_strip_whitespace=True)

    sender: Literal["ai", "user"]
    text: str = Field(min_length=1, max_length=5000)
    timestamp: datetime = Field(default_factory=utc_now)


class UserProfileSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    grade: int | None = Field(default=None, ge=1, le=12)
    target_major: str | None = None
    target_colleges: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)

    def as_prompt_fields(self) -> dict:
        return self.model_dump(exclude_none=True, exclude={"name"})


class InterviewContext(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    difficulty: str = Field(min_length=1)
    interview_type: str = Field(min_length=1)
    user_profile: UserProfileSnapshot = Field(default_factory=UserProfileSnapshot)
    duration_minutes: int | None = Field(default=None, ge=1)


class TranscriptRating(StoredDocument):
    messages: list[TranscriptMessage] = Field(min_length=1, frozen=True)
    interview_context: InterviewContext = Field(frozen=True)

    status: RatingStatus = "pending"
    ai_rating: FeedbackReport | None = None
    rating_generated_at: datetime | None = None
    error_message: str | None = Field(default=None, max_length=1000)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _default_expiry(self) -> "TranscriptRating":
        if self.expires_at is None:
            self.expires_at = self.created_at + RATING_TTL
        return self

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) > self.expires_at
