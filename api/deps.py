from __future__ import annotations

from fastapi import Header, HTTPException, Request

from config import Settings
from services.artifact_processor import ArtifactProcessor
from services.event_bus import EventBus
from services.interview_lifecycle import InterviewLifecycle
from services.rating_service import TranscriptRatingMachine
from services.session_recorder import SessionRecordingMachine
from services.upload_analytics import UploadAnalytics


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_owner_id(x_user_id: str | None = Header(default=None)) -> str:
    # authentication happens upstream; the gateway forwards the user id
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_artifact_processor(request: Request) -> ArtifactProcessor:
    return request.app.state.artifact_processor


def get_interview_lifecycle(request: Request) -> InterviewLifecycle:
    return request.app.state.interview_lifecycle


def get_session_recorder(request: Request) -> SessionRecordingMachine:
    return request.app.state.session_recorder


def get_rating_machine(request: Request) -> TranscriptRatingMachine:
    return request.app.state.rating_machine


def get_upload_analytics(request: Request) -> UploadAnalytics:
    return request.app.state.upload_analytics


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus
