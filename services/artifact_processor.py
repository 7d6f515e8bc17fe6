from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol

from models.artifact import Artifact, ArtifactCategory, determine_category, generate_storage_name
from models.base import ProcessingStatus, utc_now
from services.content_validation import validate_processed_content, validate_upload
from services.errors import (
    ConflictError,
    ContentValidationError,
    classify_error,
    is_retryable,
    is_transient,
    user_message,
)
from services.event_bus import EventBus
from services.repository import Repository
from services.retry import RetryConfig, RetryPolicy
from services.state_machine import ARTIFACT_MACHINE
from services.text_extraction import ExtractionResult
from services.upload_analytics import log_upload_event


logger = logging.getLogger(__name__)

EXTRACTION_RETRY = RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
RESCHEDULE_RETRY = RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=30.0, backoff_multiplier=2.0)

INTERRUPTED_MESSAGE = "Processing was interrupted. Please upload the file again."


class Extractor(Protocol):
    async def extract(self, data: bytes, mime_type: str) -> ExtractionResult: ...


class ArtifactProcessor:
    """Moves uploaded artifacts through extraction and validation.

    Retries happen on two tiers. ``extraction_retry`` drives immediate
    retries of the extractor within one ``process`` call.
    ``reschedule_retry`` bounds how many whole ``process`` calls are
    scheduled after a transient failure, and how long to wait before each.
    """

    def __init__(
        self,
        repository: Repository[Artifact],
        extractor: Extractor,
        retry_policy: RetryPolicy | None = None,
        extraction_retry: RetryConfig = EXTRACTION_RETRY,
        reschedule_retry: RetryConfig = RESCHEDULE_RETRY,
        events: EventBus | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.extractor = extractor
        self.retry_policy = retry_policy or RetryPolicy(sleep=sleep)
        self.extraction_retry = extraction_retry
        self.reschedule_retry = reschedule_retry
        self.events = events
        self._sleep = sleep
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    async def register_upload(
        self, owner_id: str, original_name: str, mime_type: str, size_bytes: int
    ) -> Artifact:
        validate_upload(original_name, mime_type, size_bytes)
        artifact = Artifact(
            owner_id=owner_id,
            storage_name=generate_storage_name(original_name),
            original_name=original_name,
            mime_type=mime_type.lower(),
            size_bytes=size_bytes,
            category=determine_category(mime_type),
        )
        artifact = await self.repository.save(artifact)
        logger.info("Registered artifact %s (%s, %d bytes)", artifact.id, artifact.category, size_bytes)
        return artifact

    async def process(self, artifact_id: str, raw_bytes: bytes, attempt: int = 1) -> Artifact:
        started = time.monotonic()

        def begin(artifact: Artifact) -> None:
            ARTIFACT_MACHINE.ensure(artifact.processing_status, "processing")
            artifact.processing_status = "processing"
            artifact.processing_attempts = attempt
            artifact.error_message = None
            artifact.error_category = None

        artifact = await self.repository.update(artifact_id, begin)
        logger.info("Processing artifact %s (attempt %d/%d)", artifact_id, attempt, self.reschedule_retry.max_attempts)
        await self._publish(artifact)

        calls = 0

        async def extract_once() -> ExtractionResult:
            nonlocal calls
            calls += 1
            return await self.extractor.extract(raw_bytes, artifact.mime_type)

        try:
            result = await self.retry_policy.execute(
                extract_once,
                config=self.extraction_retry,
                label=f"Extraction of artifact {artifact_id}",
                retry_if=is_retryable,
            )
            validation = validate_processed_content(result.text, artifact.category)
            if not validation.is_valid:
                raise ContentValidationError("; ".join(validation.errors))
        except asyncio.CancelledError:
            await self._record_interrupted(artifact_id, attempt, calls)
            raise
        except Exception as err:
            await self._record_failure(artifact_id, raw_bytes, attempt, calls, err)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)

        def complete(current: Artifact) -> None:
            ARTIFACT_MACHINE.ensure(current.processing_status, "completed")
            current.processing_status = "completed"
            current.extracted_text = result.text
            current.processing_duration_ms = duration_ms
            current.processing_warnings = list(validation.warnings)
            current.extraction_attempts += calls
            current.error_message = None
            current.error_category = None

        artifact = await self.repository.update(artifact_id, complete)
        logger.info(
            "Artifact %s completed in %dms (%d words, %d warnings)",
            artifact_id,
            duration_ms,
            result.word_count,
            len(validation.warnings),
        )
        log_upload_event(artifact.owner_id, artifact_id, "process", status="completed", duration_ms=duration_ms)
        await self._publish(artifact)
        return artifact

    async def _record_failure(
        self, artifact_id: str, raw_bytes: bytes, attempt: int, calls: int, error: BaseException
    ) -> None:
        reschedule = is_transient(error) and attempt < self.reschedule_retry.max_attempts
        if reschedule:
            message = f"Processing failed, retry attempt {attempt + 1}/{self.reschedule_retry.max_attempts} scheduled"
        else:
            message = user_message(error)

        def fail(current: Artifact) -> None:
            ARTIFACT_MACHINE.ensure(current.processing_status, "failed")
            current.processing_status = "failed"
            current.extracted_text = None
            current.error_message = message
            current.error_category = classify_error(error)
            current.extraction_attempts += calls

        try:
            artifact = await self.repository.update(artifact_id, fail)
        except ConflictError:
            logger.warning("Artifact %s changed while processing; failure of attempt %d discarded", artifact_id, attempt)
            return

        await self._publish(artifact)
        if reschedule:
            delay = self.reschedule_retry.delay_for(attempt)
            logger.warning(
                "Artifact %s failed transiently (attempt %d), rescheduling in %.2fs: %s",
                artifact_id,
                attempt,
                delay,
                error,
            )
            self._track(self._run_later(artifact_id, raw_bytes, attempt + 1, delay))
        else:
            logger.error("Artifact %s failed permanently after attempt %d: %s", artifact_id, attempt, error)
            log_upload_event(artifact.owner_id, artifact_id, "process", status="failed", category=artifact.error_category)

    async def _record_interrupted(self, artifact_id: str, attempt: int, calls: int) -> None:
        def fail(current: Artifact) -> None:
            ARTIFACT_MACHINE.ensure(current.processing_status, "failed")
            current.processing_status = "failed"
            current.extracted_text = None
            current.error_message = INTERRUPTED_MESSAGE
            current.error_category = "internal"
            current.extraction_attempts += calls

        try:
            artifact = await self.repository.update(artifact_id, fail)
        except ConflictError:
            logger.warning("Artifact %s changed before cancellation of attempt %d was recorded", artifact_id, attempt)
            return
        logger.warning("Processing of artifact %s cancelled during attempt %d", artifact_id, attempt)
        await self._publish(artifact)

    async def _run_later(self, artifact_id: str, raw_bytes: bytes, attempt: int, delay: float) -> None:
        await self._sleep(delay)
        await self._run_logged(artifact_id, raw_bytes, attempt)

    async def _run_logged(self, artifact_id: str, raw_bytes: bytes, attempt: int) -> None:
        try:
            await self.process(artifact_id, raw_bytes, attempt=attempt)
        except Exception as err:
            # outcome is already persisted on the artifact
            logger.info("Background processing of artifact %s ended with %s", artifact_id, type(err).__name__)

    def _track(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def submit(self, artifact_id: str, raw_bytes: bytes) -> None:
        self._track(self._run_logged(artifact_id, raw_bytes, 1))

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background work; artifacts caught mid-extraction end up ``failed``."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Cancelled %d background artifact tasks", len(tasks))

    async def get(self, artifact_id: str, owner_id: str) -> Artifact:
        await self.repository.require_owned(artifact_id, owner_id)

        def touch(artifact: Artifact) -> None:
            artifact.last_accessed_at = self._clock()

        return await self.repository.update(artifact_id, touch)

    async def list_for_owner(
        self,
        owner_id: str,
        status: ProcessingStatus | None = None,
        category: ArtifactCategory | None = None,
    ) -> list[Artifact]:
        artifacts = await self.repository.find_owned(
            owner_id,
            lambda a: (status is None or a.processing_status == status)
            and (category is None or a.category == category),
        )
        return sorted(artifacts, key=lambda a: a.uploaded_at, reverse=True)

    async def delete(self, artifact_id: str, owner_id: str) -> None:
        await self.repository.require_owned(artifact_id, owner_id)
        await self.repository.delete(artifact_id)
        logger.info("Deleted artifact %s", artifact_id)

    async def cleanup_failed(self, artifact_id: str, owner_id: str) -> bool:
        artifact = await self.repository.require_owned(artifact_id, owner_id)
        if artifact.processing_status != "failed":
            return False
        await self.repository.delete(artifact_id)
        logger.info("Cleaned up failed artifact %s", artifact_id)
        return True

    async def _publish(self, artifact: Artifact) -> None:
        if self.events is None:
            return
        await self.events.publish(
            artifact.owner_id,
            "artifact_status",
            {
                "id": artifact.id,
                "status": artifact.processing_status,
                "status_display": artifact.status_display,
                "error_message": artifact.error_message,
            },
        )
