from __future__ import annotations

import secrets
import time
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from models.base import StoredDocument, new_id, utc_now


InterviewStatus = Literal["pending", "active", "completed", "cancelled"]
InterviewType = Literal["behavioral", "technical", "situational", "case_study", "mixed"]
InterviewDifficulty = Literal["beginner", "intermediate", "advanced", "expert"]

PENDING_EXPIRY = timedelta(hours=24)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_token() -> str:
    return f"session_{_base36(int(time.time() * 1000))}_{secrets.token_hex(16)}"


class InterviewQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    text: str = Field(min_length=1, max_length=1000)
    category: str | None = Field(default=None, max_length=50)
    expected_duration_seconds: int | None = Field(default=None, ge=30, le=600)
    hints: list[str] = Field(default_factory=list)
    follow_ups: list[str] = Field(default_factory=list)
    order: int = Field(default=0, ge=0)


class Interview(StoredDocument):
    interview_type: InterviewType = "behavioral"
    difficulty: InterviewDifficulty = "intermediate"
    duration_minutes: int = Field(default=30, ge=5, le=120)

    questions: list[InterviewQuestion] = Field(default_factory=list)
    custom_prompt: str | None = Field(default=None, max_length=1000)
    tags: list[str] = Field(default_factory=list)

    session_token: str = Field(default_factory=generate_session_token)
    status: InterviewStatus = "pending"

    started_at: datetime | None = None
    completed_at: datetime | None = None
    actual_duration_minutes: int | None = Field(default=None, ge=0)
    score: float | None = Field(default=None, ge=0, le=100)
    cancellation_reason: str | None = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.status != "pending" or self.started_at is not None:
            return False
        return (now or utc_now()) - self.created_at > PENDING_EXPIRY
