from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    start: float = 0.0
    end: float = 0.0
    text: str = ""
    speaker_id: str | None = None
    score: float | None = None


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str
    segments: list[TranscriptSegment] = Field(default_factory=list)
    language: str | None = None
    duration_seconds: float | None = None

    @property
    def average_confidence(self) -> float | None:
        scores = [s.score for s in self.segments if s.score is not None]
        if not scores:
            return None
        return max(0.0, min(1.0, sum(scores) / len(scores)))

    @property
    def duration_ms(self) -> int | None:
        if self.duration_seconds is not None:
            return int(self.duration_seconds * 1000)
        if self.segments:
            return int(max(s.end for s in self.segments) * 1000)
        return None
