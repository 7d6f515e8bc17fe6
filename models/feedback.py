from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


Priority = Literal["high", "medium", "low"]
Speaker = Literal["user", "ai", "system"]


class Recommendation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    area: str = Field(max_length=100)
    suggestion: str = Field(max_length=1000)
    priority: Priority = "medium"
    examples: list[str] = Field(default_factory=list)


class DetailedScores(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content_relevance: float = Field(default=0.0, ge=0, le=100)
    communication: float = Field(default=0.0, ge=0, le=100)
    confidence: float = Field(default=0.0, ge=0, le=100)
    structure: float = Field(default=0.0, ge=0, le=100)
    engagement: float = Field(default=0.0, ge=0, le=100)


class QuestionFeedback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question_id: str
    score: float = Field(default=0.0, ge=0, le=100)
    feedback: str = Field(default="", max_length=1000)
    improvements: list[str] = Field(default_factory=list)


class FeedbackReport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overall_rating: float = Field(ge=1, le=10)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    detailed_scores: DetailedScores = Field(default_factory=DetailedScores)
    question_feedback: list[QuestionFeedback] = Field(default_factory=list)
    summary: str = Field(default="", max_length=2000)

    @property
    def overall_score(self) -> float:
        return self.overall_rating * 10


class TranscriptLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    speaker: Speaker
    text: str
    offset_ms: int = 0


class FeedbackRequest(BaseModel):
    """Snapshot handed to the remote analysis call."""

    model_config = ConfigDict(extra="ignore")

    transcript: list[TranscriptLine]
    interview_type: str = "general"
    difficulty: str = "intermediate"
    user_major: str = "General Studies"
    questions: list[str] = Field(default_factory=list)
    duration_minutes: int = 30
    user_profile: dict = Field(default_factory=dict)

    def lines_for(self, speaker: Speaker) -> list[str]:
        return [line.text for line in self.transcript if line.speaker == speaker and line.text.strip()]
