from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agents.feedback_analyst import FeedbackAnalyst
from agents.llm_client import LLMClient
from agents.transcriber import Transcriber
from api.routes_interviews import router as interviews_router
from api.routes_ratings import router as ratings_router
from api.routes_sessions import router as sessions_router
from api.routes_stream import router as stream_router
from api.routes_uploads import router as uploads_router
from config import Settings, get_settings
from logging_config import RequestIDMiddleware, init_logging
from models.artifact import Artifact
from models.interview import Interview
from models.session_recording import SessionRecording
from models.transcript_rating import TranscriptRating
from services.artifact_processor import ArtifactProcessor
from services.document_store import DocumentStore, InMemoryDocumentStore, JsonFileDocumentStore
from services.event_bus import EventBus
from services.expiry_sweeper import ExpirySweeper
from services.interview_lifecycle import InterviewLifecycle
from services.rating_service import TranscriptRatingMachine
from services.repository import Repository
from services.retry import RetryConfig, RetryPolicy
from services.session_recorder import SessionRecordingMachine
from services.text_extraction import TextExtractor
from services.upload_analytics import UploadAnalytics


logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    if settings.storage_backend == "memory":
        return InMemoryDocumentStore()
    return JsonFileDocumentStore(settings.data_dir)


def wire_services(app: FastAPI, settings: Settings, store: DocumentStore) -> None:
    retry_policy = RetryPolicy()
    event_bus = EventBus()

    llm_retry = RetryConfig(
        max_attempts=max(1, settings.llm_max_retries),
        initial_delay=settings.llm_retry_initial_delay,
        max_delay=settings.llm_retry_max_delay,
    )

    def build_llm(model: str) -> LLMClient:
        return LLMClient(
            api_key=settings.mistral_api_key,
            model=model,
            api_base=settings.mistral_api_base,
            timeout_seconds=settings.llm_timeout_seconds,
            retry_policy=retry_policy,
            retry_config=llm_retry,
        )

    analyst = FeedbackAnalyst(llm=build_llm(settings.feedback_model))
    transcriber = Transcriber(llm=build_llm(settings.mistral_model), model=settings.transcription_model)

    artifact_processor = ArtifactProcessor(
        repository=Repository(store, "artifacts", Artifact),
        extractor=TextExtractor(),
        retry_policy=retry_policy,
        extraction_retry=RetryConfig(
            max_attempts=max(1, settings.extraction_max_attempts),
            initial_delay=settings.extraction_initial_delay,
            max_delay=settings.extraction_max_delay,
        ),
        reschedule_retry=RetryConfig(
            max_attempts=max(1, settings.reschedule_max_attempts),
            initial_delay=settings.reschedule_initial_delay,
            max_delay=settings.reschedule_max_delay,
        ),
        events=event_bus,
    )
    interview_lifecycle = InterviewLifecycle(Repository(store, "interviews", Interview), events=event_bus)
    session_recorder = SessionRecordingMachine(
        repository=Repository(store, "session_recordings", SessionRecording, label="Session recording"),
        analyzer=analyst,
        transcriber=transcriber,
        events=event_bus,
    )
    rating_machine = TranscriptRatingMachine(
        repository=Repository(store, "transcript_ratings", TranscriptRating, label="Transcript rating"),
        analyzer=analyst,
        events=event_bus,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.event_bus = event_bus
    app.state.artifact_processor = artifact_processor
    app.state.upload_analytics = UploadAnalytics(artifact_processor.repository)
    app.state.interview_lifecycle = interview_lifecycle
    app.state.session_recorder = session_recorder
    app.state.rating_machine = rating_machine
    app.state.expiry_sweeper = ExpirySweeper(
        rating_machine, interval_seconds=settings.expiry_sweep_interval_seconds
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    init_logging(settings.log_level)
    wire_services(app, settings, build_store(settings))

    app.state.expiry_sweeper.start()
    logger.info("Interview coach API started with %s storage", settings.storage_backend)
    try:
        yield
    finally:
        await app.state.expiry_sweeper.stop()
        await app.state.artifact_processor.shutdown()


app = FastAPI(title="Interview Coach API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestIDMiddleware)

app.include_router(uploads_router, prefix="/api")
app.include_router(interviews_router, prefix="/api")
app.include_router(sessions_router, prefix="/api")
app.include_router(ratings_router, prefix="/api")
app.include_router(stream_router, prefix="/api")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/")
def root():
    return {"service": "interview-coach", "docs": "/docs"}
