from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from api.deps import get_interview_lifecycle, get_owner_id, get_session_recorder
from api.errors import to_http_error
from models.feedback import Speaker
from models.session_recording import VocalAnalysis
from models.transcript_rating import UserProfileSnapshot
from services.errors import CoachError
from services.interview_lifecycle import InterviewLifecycle
from services.session_recorder import SessionRecordingMachine


router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interview_id: str = Field(min_length=1)
    reuse_existing: bool = False


class TranscriptEntryRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    speaker: Speaker
    text: str
    audio_ref: str | None = None
    confidence: float | None = None
    duration_ms: int | None = None


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    analysis: VocalAnalysis | None = None
    failed: bool = False


class FeedbackGenerateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_profile: UserProfileSnapshot | None = None


def _recording_payload(recording) -> dict:
    payload = recording.model_dump(mode="json")
    payload["duration_ms"] = recording.duration_ms()
    return payload


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        await lifecycle.get(payload.interview_id, owner_id)
        if payload.reuse_existing:
            recording = await recorder.get_or_create_session(payload.interview_id, owner_id)
        else:
            recording = await recorder.start_session(payload.interview_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _recording_payload(recording)


@router.get("/{recording_id}", status_code=status.HTTP_200_OK)
async def get_session(
    recording_id: str,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        recording = await recorder.get(recording_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _recording_payload(recording)


@router.post("/{recording_id}/transcript", status_code=status.HTTP_200_OK)
async def add_transcript_entry(
    recording_id: str,
    payload: TranscriptEntryRequest,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        recording = await recorder.add_transcript_entry(
            recording_id,
            owner_id,
            speaker=payload.speaker,
            text=payload.text,
            audio_ref=payload.audio_ref,
            confidence=payload.confidence,
            duration_ms=payload.duration_ms,
        )
    except CoachError as err:
        raise to_http_error(err) from err
    return {
        "entries": len(recording.transcript),
        "last_entry": recording.transcript[-1].model_dump(mode="json"),
        "transcription": recording.processing_status.transcription,
    }


@router.post("/{recording_id}/audio", status_code=status.HTTP_200_OK)
async def add_audio_chunk(
    recording_id: str,
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    data = await file.read()
    try:
        recording = await recorder.transcribe_chunk(
            recording_id, owner_id, data, mime_hint=file.content_type, audio_ref=file.filename
        )
    except CoachError as err:
        raise to_http_error(err) from err
    return {
        "entries": len(recording.transcript),
        "transcription": recording.processing_status.transcription,
    }


@router.post("/{recording_id}/transcript/complete", status_code=status.HTTP_200_OK)
async def complete_transcript(
    recording_id: str,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        recording = await recorder.complete_transcript(recording_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _recording_payload(recording)


@router.post("/{recording_id}/analysis", status_code=status.HTTP_200_OK)
async def update_analysis(
    recording_id: str,
    payload: AnalysisRequest,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        if payload.failed:
            recording = await recorder.mark_analysis_failed(recording_id, owner_id)
        elif payload.analysis is not None:
            recording = await recorder.update_vocal_analysis(recording_id, owner_id, payload.analysis)
        else:
            recording = await recorder.analyze_vocals(recording_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _recording_payload(recording)


@router.post("/{recording_id}/feedback", status_code=status.HTTP_200_OK)
async def generate_feedback(
    recording_id: str,
    payload: FeedbackGenerateRequest,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        recording = await recorder.get(recording_id, owner_id)
        interview = await lifecycle.get(recording.interview_id, owner_id)
        report = await recorder.generate_feedback(
            recording_id, owner_id, interview=interview, user_profile=payload.user_profile
        )
    except CoachError as err:
        raise to_http_error(err) from err
    return {"feedback": report.model_dump(mode="json"), "overall_score": report.overall_score}


@router.get("/{recording_id}/feedback", status_code=status.HTTP_200_OK)
async def get_feedback(
    recording_id: str,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        recording = await recorder.get(recording_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    if recording.feedback is None:
        raise HTTPException(
            status_code=404,
            detail={
                "code": "not_found",
                "message": "Feedback has not been generated yet.",
                "status": recording.processing_status.feedback,
                "error": recording.feedback_error,
            },
        )
    return {
        "feedback": recording.feedback.model_dump(mode="json"),
        "overall_score": recording.overall_score,
        "generated_at": recording.feedback_generated_at.isoformat() if recording.feedback_generated_at else None,
    }


@router.post("/{recording_id}/end", status_code=status.HTTP_200_OK)
async def end_session(
    recording_id: str,
    owner_id: str = Depends(get_owner_id),
    recorder: SessionRecordingMachine = Depends(get_session_recorder),
) -> dict:
    try:
        recording = await recorder.end_session(recording_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _recording_payload(recording)
