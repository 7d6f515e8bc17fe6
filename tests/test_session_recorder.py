from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.feedback import FeedbackReport, FeedbackRequest
from models.interview import Interview, InterviewQuestion
from models.session_recording import SessionRecording, TranscriptEntry
from models.transcription import TranscriptionResult, TranscriptSegment
from services.document_store import InMemoryDocumentStore
from services.errors import (
    AccessDeniedError,
    AlreadyExistsError,
    ConflictError,
    IllegalTransitionError,
    InvalidInputError,
    NoContentError,
    PermanentRemoteError,
    TransientRemoteError,
)
from services.event_bus import EventBus
from services.repository import Repository
from services.session_recorder import SessionRecordingMachine, build_feedback_request
from services.vocal_metrics import compute_vocal_analysis


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


class FakeAnalyzer:
    def __init__(self, report: FeedbackReport | None = None, error: Exception | None = None, during=None):
        self.report = report or FeedbackReport(overall_rating=7.5, strengths=["Clear examples"], summary="Solid")
        self.error = error
        self.during = during
        self.requests: list[FeedbackRequest] = []

    async def analyze_transcript(self, request: FeedbackRequest) -> FeedbackReport:
        self.requests.append(request)
        if self.during is not None:
            await self.during()
        if self.error is not None:
            raise self.error
        return self.report


class FakeTranscriber:
    def __init__(self, result: TranscriptionResult | None = None, error: Exception | None = None):
        self.result = result
        self.error = error

    async def transcribe_audio(self, data: bytes, mime_hint: str | None = None) -> TranscriptionResult:
        if self.error is not None:
            raise self.error
        return self.result


def _machine(analyzer=None, transcriber=None, events=None):
    clock = FakeClock()
    machine = SessionRecordingMachine(
        repository=Repository(InMemoryDocumentStore(), "session_recordings", SessionRecording, clock=clock),
        analyzer=analyzer or FakeAnalyzer(),
        transcriber=transcriber,
        events=events,
        clock=clock,
    )
    return machine, clock


async def _with_answer(machine: SessionRecordingMachine, clock: FakeClock) -> SessionRecording:
    recording = await machine.start_session("interview-1", "user-1")
    clock.advance(seconds=2)
    await machine.add_transcript_entry(recording.id, "user-1", "ai", "Why engineering?")
    clock.advance(seconds=3)
    return await machine.add_transcript_entry(
        recording.id, "user-1", "user", "I have loved building robots since middle school."
    )


@pytest.mark.asyncio
async def test_one_recording_per_interview() -> None:
    machine, _ = _machine()
    recording = await machine.start_session("interview-1", "user-1")

    with pytest.raises(AlreadyExistsError):
        await machine.start_session("interview-1", "user-1")

    reused = await machine.get_or_create_session("interview-1", "user-1")
    assert reused.id == recording.id
    with pytest.raises(AccessDeniedError):
        await machine.get_or_create_session("interview-1", "user-2")


@pytest.mark.asyncio
async def test_transcript_is_append_only_with_monotonic_offsets() -> None:
    machine, clock = _machine()
    recording = await _with_answer(machine, clock)

    assert [e.offset_ms for e in recording.transcript] == [2000, 5000]
    assert recording.processing_status.transcription == "processing"

    # a clock step backwards never reorders the transcript
    clock.advance(seconds=-4)
    recording = await machine.add_transcript_entry(recording.id, "user-1", "ai", "Tell me more.")
    assert [e.offset_ms for e in recording.transcript] == [2000, 5000, 5000]
    assert recording.transcript[0].text == "Why engineering?"


@pytest.mark.asyncio
async def test_invalid_entries_are_rejected() -> None:
    machine, _ = _machine()
    recording = await machine.start_session("interview-1", "user-1")

    with pytest.raises(InvalidInputError):
        await machine.add_transcript_entry(recording.id, "user-1", "user", "   ")
    with pytest.raises(InvalidInputError):
        await machine.add_transcript_entry(recording.id, "user-1", "user", "x" * 5001)
    with pytest.raises(AccessDeniedError):
        await machine.add_transcript_entry(recording.id, "user-2", "user", "Hello")

    stored = await machine.get(recording.id, "user-1")
    assert stored.transcript == []


@pytest.mark.asyncio
async def test_finalized_transcript_rejects_appends() -> None:
    machine, clock = _machine()
    recording = await _with_answer(machine, clock)

    completed = await machine.complete_transcript(recording.id, "user-1")
    assert completed.transcript_complete
    again = await machine.complete_transcript(recording.id, "user-1")
    assert again.version == completed.version

    with pytest.raises(ConflictError):
        await machine.add_transcript_entry(recording.id, "user-1", "user", "One more thing")


@pytest.mark.asyncio
async def test_feedback_is_generated_once_and_cached() -> None:
    analyzer = FakeAnalyzer()
    machine, clock = _machine(analyzer)
    recording = await _with_answer(machine, clock)

    report = await machine.generate_feedback(recording.id, "user-1")
    cached = await machine.generate_feedback(recording.id, "user-1")

    assert cached == report
    assert len(analyzer.requests) == 1
    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.feedback == "completed"
    assert stored.feedback_generated_at == clock.now
    assert stored.overall_score == 75.0


@pytest.mark.asyncio
async def test_feedback_requires_user_responses() -> None:
    analyzer = FakeAnalyzer()
    machine, _ = _machine(analyzer)
    recording = await machine.start_session("interview-1", "user-1")
    await machine.add_transcript_entry(recording.id, "user-1", "ai", "Hello, are you there?")

    with pytest.raises(NoContentError):
        await machine.generate_feedback(recording.id, "user-1")

    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.feedback == "pending"
    assert analyzer.requests == []


@pytest.mark.asyncio
async def test_feedback_failure_is_recorded_and_retryable() -> None:
    analyzer = FakeAnalyzer(error=TransientRemoteError("upstream 503", status_code=503))
    machine, clock = _machine(analyzer)
    recording = await _with_answer(machine, clock)

    with pytest.raises(TransientRemoteError):
        await machine.generate_feedback(recording.id, "user-1")

    failed = await machine.get(recording.id, "user-1")
    assert failed.processing_status.feedback == "failed"
    assert failed.feedback_error == TransientRemoteError.user_message
    assert failed.feedback is None

    analyzer.error = None
    await machine.generate_feedback(recording.id, "user-1")
    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.feedback == "completed"
    assert stored.feedback_error is None


@pytest.mark.asyncio
async def test_concurrent_feedback_request_conflicts() -> None:
    machine, clock = _machine()
    recording = await _with_answer(machine, clock)
    seen: list[Exception] = []

    async def second_call() -> None:
        try:
            await machine.generate_feedback(recording.id, "user-1")
        except IllegalTransitionError as err:
            seen.append(err)

    machine.analyzer = FakeAnalyzer(during=second_call)
    await machine.generate_feedback(recording.id, "user-1")

    assert len(seen) == 1
    assert seen[0].source == "processing"


@pytest.mark.asyncio
async def test_stale_feedback_result_is_discarded() -> None:
    machine, clock = _machine()
    recording = await _with_answer(machine, clock)

    async def stage_moves_on() -> None:
        def force_failed(current: SessionRecording) -> None:
            current.processing_status.feedback = "failed"

        await machine.repository.update(recording.id, force_failed)

    machine.analyzer = FakeAnalyzer(during=stage_moves_on)
    with pytest.raises(IllegalTransitionError):
        await machine.generate_feedback(recording.id, "user-1")

    stored = await machine.get(recording.id, "user-1")
    assert stored.feedback is None
    assert stored.processing_status.feedback == "failed"


@pytest.mark.asyncio
async def test_stages_are_independent() -> None:
    machine, clock = _machine(FakeAnalyzer(error=PermanentRemoteError("bad request", status_code=400)))
    recording = await _with_answer(machine, clock)

    with pytest.raises(PermanentRemoteError):
        await machine.generate_feedback(recording.id, "user-1")

    analyzed = await machine.analyze_vocals(recording.id, "user-1")
    assert analyzed.processing_status.analysis == "completed"
    assert analyzed.processing_status.transcription == "processing"
    assert analyzed.overall_score == analyzed.vocal_analysis.overall_score

    with pytest.raises(IllegalTransitionError):
        await machine.mark_analysis_failed(recording.id, "user-1")


@pytest.mark.asyncio
async def test_feedback_score_overrides_vocal_score() -> None:
    machine, clock = _machine()
    recording = await _with_answer(machine, clock)

    await machine.generate_feedback(recording.id, "user-1")
    stored = await machine.update_vocal_analysis(
        recording.id, "user-1", compute_vocal_analysis(await machine.get(recording.id, "user-1"))
    )
    assert stored.overall_score == 75.0


@pytest.mark.asyncio
async def test_end_session_records_duration_once() -> None:
    machine, clock = _machine()
    recording = await machine.start_session("interview-1", "user-1")
    clock.advance(minutes=12)

    ended = await machine.end_session(recording.id, "user-1")
    assert ended.is_active is False
    assert ended.recording_duration_ms == 12 * 60 * 1000

    clock.advance(minutes=5)
    again = await machine.end_session(recording.id, "user-1")
    assert again.session_end_time == ended.session_end_time
    assert again.version == ended.version

    with pytest.raises(ConflictError):
        await machine.add_transcript_entry(recording.id, "user-1", "user", "Late answer")


@pytest.mark.asyncio
async def test_transcribe_chunk_appends_user_entry() -> None:
    result = TranscriptionResult(
        text=" I led our science fair team. ",
        segments=[TranscriptSegment(start=0.0, end=2.5, text="I led our science fair team.", score=0.8)],
    )
    machine, _ = _machine(transcriber=FakeTranscriber(result))
    recording = await machine.start_session("interview-1", "user-1")

    stored = await machine.transcribe_chunk(recording.id, "user-1", b"RIFF....WAVE", "audio/wav")

    entry = stored.transcript[-1]
    assert entry.speaker == "user"
    assert entry.text == "I led our science fair team."
    assert entry.confidence == pytest.approx(0.8)
    assert entry.duration_ms == 2500


@pytest.mark.asyncio
async def test_transcribe_chunk_failure_marks_stage_failed() -> None:
    machine, _ = _machine(transcriber=FakeTranscriber(error=TransientRemoteError("timeout")))
    recording = await machine.start_session("interview-1", "user-1")

    with pytest.raises(TransientRemoteError):
        await machine.transcribe_chunk(recording.id, "user-1", b"audio")

    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.transcription == "failed"

    # a later text entry resumes the stage
    resumed = await machine.add_transcript_entry(recording.id, "user-1", "user", "Sorry, as I was saying")
    assert resumed.processing_status.transcription == "processing"


@pytest.mark.asyncio
async def test_transcribe_chunk_without_transcriber() -> None:
    machine, _ = _machine()
    recording = await machine.start_session("interview-1", "user-1")
    with pytest.raises(PermanentRemoteError):
        await machine.transcribe_chunk(recording.id, "user-1", b"audio")


@pytest.mark.asyncio
async def test_stage_changes_are_published() -> None:
    events = EventBus()
    queue = events.subscribe("user-1")
    machine, clock = _machine(events=events)
    recording = await _with_answer(machine, clock)

    await machine.generate_feedback(recording.id, "user-1")

    published = []
    while not queue.empty():
        message = queue.get_nowait()
        published.append((message["data"]["stage"], message["data"]["status"]))
    assert published == [("feedback", "processing"), ("feedback", "completed")]


def test_feedback_request_uses_interview_details() -> None:
    recording = SessionRecording(
        owner_id="user-1",
        interview_id="interview-1",
        transcript=[
            TranscriptEntry(speaker="ai", text="Question", offset_ms=0),
            TranscriptEntry(speaker="user", text="Answer", offset_ms=1000),
        ],
    )
    interview = Interview(
        owner_id="user-1",
        interview_type="technical",
        difficulty="advanced",
        duration_minutes=45,
        questions=[
            InterviewQuestion(text="Second", order=1),
            InterviewQuestion(text="First", order=0),
        ],
    )

    request = build_feedback_request(recording, interview, {"target_major": "Physics"})

    assert request.interview_type == "technical"
    assert request.difficulty == "advanced"
    assert request.duration_minutes == 45
    assert request.questions == ["First", "Second"]
    assert request.user_major == "Physics"
    assert request.lines_for("user") == ["Answer"]


@pytest.mark.asyncio
async def test_cancelled_feedback_call_can_be_retried() -> None:
    machine, clock = _machine(FakeAnalyzer(error=asyncio.CancelledError()))
    recording = await _with_answer(machine, clock)

    with pytest.raises(asyncio.CancelledError):
        await machine.generate_feedback(recording.id, "user-1")

    interrupted = await machine.get(recording.id, "user-1")
    assert interrupted.processing_status.feedback == "failed"
    assert interrupted.feedback_error

    machine.analyzer = FakeAnalyzer()
    await machine.generate_feedback(recording.id, "user-1")
    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.feedback == "completed"


@pytest.mark.asyncio
async def test_cancelled_transcription_marks_stage_failed() -> None:
    machine, _ = _machine(transcriber=FakeTranscriber(error=asyncio.CancelledError()))
    recording = await machine.start_session("interview-1", "user-1")

    with pytest.raises(asyncio.CancelledError):
        await machine.transcribe_chunk(recording.id, "user-1", b"audio")

    stored = await machine.get(recording.id, "user-1")
    assert stored.processing_status.transcription == "failed"
