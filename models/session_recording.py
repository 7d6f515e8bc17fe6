from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from models.base import ProcessingStatus, StoredDocument, utc_now
from models.feedback import FeedbackReport, Speaker


class TranscriptEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    speaker: Speaker
    text: str = Field(min_length=1, max_length=5000)
    offset_ms: int = Field(ge=0)
    audio_ref: str | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    duration_ms: int | None = Field(default=None, ge=0)


class ToneMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confidence: float = Field(default=0.0, ge=0, le=1)
    clarity: float = Field(default=0.0, ge=0, le=1)
    enthusiasm: float = Field(default=0.0, ge=0, le=1)
    professionalism: float = Field(default=0.0, ge=0, le=1)


class SpeechPatterns(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pace: float = Field(default=0.0, ge=0)
    average_pause_ms: float = Field(default=0.0, ge=0)
    volume_variation: float = Field(default=0.0, ge=0, le=1)
    filler_words: list[str] = Field(default_factory=list)
    filler_count: int = Field(default=0, ge=0)
    filler_frequency: float = Field(default=0.0, ge=0)
    long_pauses: int = Field(default=0, ge=0)
    interruptions: int = Field(default=0, ge=0)
    trailing_off: int = Field(default=0, ge=0)


class SpeechMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_speaking_ms: int = Field(default=0, ge=0)
    total_words: int = Field(default=0, ge=0)
    unique_words: int = Field(default=0, ge=0)
    sentence_count: int = Field(default=0, ge=0)
    average_sentence_length: float = Field(default=0.0, ge=0)


class VocalAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overall_score: float = Field(ge=0, le=100)
    tone: ToneMetrics = Field(default_factory=ToneMetrics)
    speech_patterns: SpeechPatterns = Field(default_factory=SpeechPatterns)
    metrics: SpeechMetrics = Field(default_factory=SpeechMetrics)


class ProcessingStages(BaseModel):
    """Three independent sub-pipelines; none of them blocks another."""

    model_config = ConfigDict(extra="ignore")

    transcription: ProcessingStatus = "pending"
    analysis: ProcessingStatus = "pending"
    feedback: ProcessingStatus = "pending"


class SessionRecording(StoredDocument):
    interview_id: str = Field(min_length=1, frozen=True)

    transcript: list[TranscriptEntry] = Field(default_factory=list)
    processing_status: ProcessingStages = Field(default_factory=ProcessingStages)

    vocal_analysis: VocalAnalysis | None = None
    feedback: FeedbackReport | None = None
    feedback_generated_at: datetime | None = None
    feedback_error: str | None = None
    overall_score: float | None = Field(default=None, ge=0, le=100)

    recording_ref: str | None = None
    recording_duration_ms: int | None = Field(default=None, ge=0)

    session_start_time: datetime = Field(default_factory=utc_now)
    session_end_time: datetime | None = None
    is_active: bool = True

    @property
    def transcript_complete(self) -> bool:
        return self.processing_status.transcription == "completed"

    def has_user_content(self) -> bool:
        return any(entry.speaker == "user" for entry in self.transcript)

    def transcript_text(self, speaker: Speaker | None = None) -> str:
        entries = self.transcript if speaker is None else [e for e in self.transcript if e.speaker == speaker]
        return " ".join(entry.text for entry in entries)

    def duration_ms(self, now: datetime | None = None) -> int:
        if self.recording_duration_ms is not None:
            return self.recording_duration_ms
        end = self.session_end_time or now or utc_now()
        return max(0, int((end - self.session_start_time).total_seconds() * 1000))
