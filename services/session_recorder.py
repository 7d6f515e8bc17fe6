from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError

from models.base import utc_now
from models.feedback import FeedbackReport, FeedbackRequest, Speaker, TranscriptLine
from models.interview import Interview
from models.session_recording import SessionRecording, TranscriptEntry, VocalAnalysis
from models.transcript_rating import UserProfileSnapshot
from models.transcription import TranscriptionResult
from services.errors import (
    AlreadyExistsError,
    ConflictError,
    IllegalTransitionError,
    InvalidInputError,
    NoContentError,
    PermanentRemoteError,
    user_message,
)
from services.event_bus import EventBus
from services.repository import Repository
from services.state_machine import STAGE_MACHINE
from services.vocal_metrics import compute_vocal_analysis


logger = logging.getLogger(__name__)


class FeedbackAnalyzer(Protocol):
    async def analyze_transcript(self, request: FeedbackRequest) -> FeedbackReport: ...


class AudioTranscriber(Protocol):
    async def transcribe_audio(self, data: bytes, mime_hint: str | None = None) -> TranscriptionResult: ...


def _set_stage(recording: SessionRecording, stage: str, target: str) -> None:
    current = getattr(recording.processing_status, stage)
    try:
        STAGE_MACHINE.ensure(current, target)
    except IllegalTransitionError as err:
        raise IllegalTransitionError(f"{stage} stage", err.source, err.target) from err
    setattr(recording.processing_status, stage, target)


def _ensure_accepting(recording: SessionRecording) -> None:
    if not recording.is_active:
        raise ConflictError(f"Session recording '{recording.id}' has ended")
    if recording.transcript_complete:
        raise ConflictError(f"Transcript of session recording '{recording.id}' is already finalized")


def build_feedback_request(
    recording: SessionRecording,
    interview: Interview | None = None,
    user_profile: UserProfileSnapshot | dict[str, Any] | None = None,
    now: datetime | None = None,
) -> FeedbackRequest:
    if isinstance(user_profile, UserProfileSnapshot):
        profile = user_profile.as_prompt_fields()
    else:
        profile = dict(user_profile or {})

    if interview is not None:
        duration = interview.duration_minutes
    else:
        duration = max(1, round(recording.duration_ms(now) / 60000))

    return FeedbackRequest(
        transcript=[
            TranscriptLine(speaker=e.speaker, text=e.text, offset_ms=e.offset_ms) for e in recording.transcript
        ],
        interview_type=interview.interview_type if interview else "general",
        difficulty=interview.difficulty if interview else "intermediate",
        user_major=profile.get("target_major") or "General Studies",
        questions=[q.text for q in sorted(interview.questions, key=lambda q: q.order)] if interview else [],
        duration_minutes=duration,
        user_profile=profile,
    )


class SessionRecordingMachine:
    """Per-interview recording with three independent processing stages.

    Transcription, analysis and feedback each follow the stage machine on
    their own; a failure in one never blocks the others. All writes go
    through ``Repository.update`` so every transition is checked against
    the freshest stored state.
    """

    def __init__(
        self,
        repository: Repository[SessionRecording],
        analyzer: FeedbackAnalyzer,
        transcriber: AudioTranscriber | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.analyzer = analyzer
        self.transcriber = transcriber
        self.events = events
        self._clock = clock

    async def start_session(self, interview_id: str, owner_id: str) -> SessionRecording:
        existing = await self.find_by_interview(interview_id)
        if existing is not None:
            raise AlreadyExistsError(f"Interview '{interview_id}' already has a session recording")

        recording = SessionRecording(
            owner_id=owner_id,
            interview_id=interview_id,
            session_start_time=self._clock(),
        )
        recording = await self.repository.save(recording)
        logger.info("Started session recording %s for interview %s", recording.id, interview_id)
        return recording

    async def get_or_create_session(self, interview_id: str, owner_id: str) -> SessionRecording:
        existing = await self.find_by_interview(interview_id)
        if existing is None:
            return await self.start_session(interview_id, owner_id)
        return await self.repository.require_owned(existing.id, owner_id)

    async def get(self, recording_id: str, owner_id: str) -> SessionRecording:
        return await self.repository.require_owned(recording_id, owner_id)

    async def find_by_interview(self, interview_id: str) -> SessionRecording | None:
        matches = await self.repository.find(lambda r: r.interview_id == interview_id)
        return matches[0] if matches else None

    async def list_for_owner(self, owner_id: str) -> list[SessionRecording]:
        recordings = await self.repository.find_owned(owner_id)
        return sorted(recordings, key=lambda r: r.session_start_time, reverse=True)

    async def add_transcript_entry(
        self,
        recording_id: str,
        owner_id: str,
        speaker: Speaker,
        text: str,
        audio_ref: str | None = None,
        confidence: float | None = None,
        duration_ms: int | None = None,
    ) -> SessionRecording:
        try:
            entry = TranscriptEntry(
                speaker=speaker,
                text=text,
                offset_ms=0,
                audio_ref=audio_ref,
                confidence=confidence,
                duration_ms=duration_ms,
            )
        except ValidationError as err:
            raise InvalidInputError(f"Invalid transcript entry: {err.errors()[0]['msg']}") from err

        await self.repository.require_owned(recording_id, owner_id)

        def append(recording: SessionRecording) -> None:
            _ensure_accepting(recording)
            elapsed = int((self._clock() - recording.session_start_time).total_seconds() * 1000)
            previous = recording.transcript[-1].offset_ms if recording.transcript else 0
            recording.transcript.append(entry.model_copy(update={"offset_ms": max(elapsed, previous, 0)}))
            if recording.processing_status.transcription in {"pending", "failed"}:
                _set_stage(recording, "transcription", "processing")

        recording = await self.repository.update(recording_id, append)
        logger.debug("Appended %s entry to session recording %s", speaker, recording_id)
        return recording

    async def transcribe_chunk(
        self,
        recording_id: str,
        owner_id: str,
        audio: bytes,
        mime_hint: str | None = None,
        audio_ref: str | None = None,
    ) -> SessionRecording:
        if self.transcriber is None:
            raise PermanentRemoteError("Transcription is not configured")

        recording = await self.repository.require_owned(recording_id, owner_id)
        _ensure_accepting(recording)

        def begin(current: SessionRecording) -> None:
            _ensure_accepting(current)
            if current.processing_status.transcription != "processing":
                _set_stage(current, "transcription", "processing")

        await self.repository.update(recording_id, begin)

        try:
            result = await self.transcriber.transcribe_audio(audio, mime_hint)
        except BaseException as err:
            await self._fail_stage(recording_id, "transcription")
            logger.error("Transcription failed for session recording %s: %s", recording_id, err)
            raise

        text = result.text.strip()
        if not text:
            logger.info("Audio chunk for session recording %s contained no speech", recording_id)
            return await self.repository.require(recording_id)

        return await self.add_transcript_entry(
            recording_id,
            owner_id,
            speaker="user",
            text=text[:5000],
            audio_ref=audio_ref,
            confidence=result.average_confidence,
            duration_ms=result.duration_ms,
        )

    async def complete_transcript(self, recording_id: str, owner_id: str) -> SessionRecording:
        recording = await self.repository.require_owned(recording_id, owner_id)
        if recording.transcript_complete:
            return recording

        def complete(current: SessionRecording) -> None:
            if current.processing_status.transcription != "completed":
                _set_stage(current, "transcription", "completed")

        recording = await self.repository.update(recording_id, complete)
        logger.info("Transcript of session recording %s completed (%d entries)", recording_id, len(recording.transcript))
        await self._publish(recording, "transcription")
        return recording

    async def update_vocal_analysis(
        self, recording_id: str, owner_id: str, analysis: VocalAnalysis
    ) -> SessionRecording:
        await self.repository.require_owned(recording_id, owner_id)

        def apply(recording: SessionRecording) -> None:
            _set_stage(recording, "analysis", "completed")
            recording.vocal_analysis = analysis
            if recording.overall_score is None:
                recording.overall_score = analysis.overall_score

        recording = await self.repository.update(recording_id, apply)
        logger.info("Vocal analysis stored for session recording %s", recording_id)
        await self._publish(recording, "analysis")
        return recording

    async def mark_analysis_failed(self, recording_id: str, owner_id: str) -> SessionRecording:
        await self.repository.require_owned(recording_id, owner_id)
        recording = await self.repository.update(
            recording_id, lambda r: _set_stage(r, "analysis", "failed")
        )
        await self._publish(recording, "analysis")
        return recording

    async def analyze_vocals(self, recording_id: str, owner_id: str) -> SessionRecording:
        recording = await self.repository.require_owned(recording_id, owner_id)
        analysis = compute_vocal_analysis(recording)
        return await self.update_vocal_analysis(recording_id, owner_id, analysis)

    async def generate_feedback(
        self,
        recording_id: str,
        owner_id: str,
        interview: Interview | None = None,
        user_profile: UserProfileSnapshot | dict[str, Any] | None = None,
    ) -> FeedbackReport:
        recording = await self.repository.require_owned(recording_id, owner_id)
        if recording.processing_status.feedback == "completed" and recording.feedback is not None:
            return recording.feedback
        if not recording.has_user_content():
            raise NoContentError(f"Session recording '{recording_id}' has no user responses")

        def begin(current: SessionRecording) -> None:
            _set_stage(current, "feedback", "processing")
            current.feedback_error = None

        recording = await self.repository.update(recording_id, begin)
        logger.info("Generating feedback for session recording %s", recording_id)
        await self._publish(recording, "feedback")

        request = build_feedback_request(recording, interview, user_profile, now=self._clock())
        try:
            report = await self.analyzer.analyze_transcript(request)
        except BaseException as err:
            # cancellation included; the stage must not stay in processing
            message = user_message(err)

            def fail(current: SessionRecording) -> None:
                _set_stage(current, "feedback", "failed")
                current.feedback_error = message

            try:
                failed = await self.repository.update(recording_id, fail)
                await self._publish(failed, "feedback")
            except ConflictError:
                logger.warning("Feedback failure for session recording %s discarded; stage changed", recording_id)
            logger.error("Feedback generation failed for session recording %s: %r", recording_id, err)
            raise

        def complete(current: SessionRecording) -> None:
            status = current.processing_status.feedback
            if status != "processing":
                raise IllegalTransitionError("feedback stage", status, "completed")
            _set_stage(current, "feedback", "completed")
            current.feedback = report
            current.feedback_generated_at = self._clock()
            current.feedback_error = None
            current.overall_score = report.overall_score

        recording = await self.repository.update(recording_id, complete)
        logger.info("Feedback stored for session recording %s (rating %.1f)", recording_id, report.overall_rating)
        await self._publish(recording, "feedback")
        return report

    async def end_session(self, recording_id: str, owner_id: str) -> SessionRecording:
        recording = await self.repository.require_owned(recording_id, owner_id)
        if not recording.is_active:
            return recording

        def end(current: SessionRecording) -> None:
            if not current.is_active:
                return
            now = self._clock()
            current.is_active = False
            current.session_end_time = now
            if current.recording_duration_ms is None:
                current.recording_duration_ms = current.duration_ms(now)

        recording = await self.repository.update(recording_id, end)
        logger.info("Ended session recording %s after %dms", recording_id, recording.recording_duration_ms or 0)
        return recording

    async def _fail_stage(self, recording_id: str, stage: str) -> None:
        def fail(current: SessionRecording) -> None:
            if getattr(current.processing_status, stage) == "processing":
                _set_stage(current, stage, "failed")

        try:
            recording = await self.repository.update(recording_id, fail)
        except ConflictError:
            logger.warning("Could not mark %s failed on session recording %s", stage, recording_id)
            return
        await self._publish(recording, stage)

    async def _publish(self, recording: SessionRecording, stage: str) -> None:
        if self.events is None:
            return
        await self.events.publish(
            recording.owner_id,
            "session_status",
            {
                "id": recording.id,
                "interview_id": recording.interview_id,
                "stage": stage,
                "status": getattr(recording.processing_status, stage),
            },
        )
