from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from models.base import utc_now
from models.interview import Interview, InterviewQuestion, generate_session_token
from services.errors import ConflictError, ExpiredError, InvalidInputError, NotFoundError
from services.event_bus import EventBus
from services.repository import Repository
from services.state_machine import INTERVIEW_MACHINE


logger = logging.getLogger(__name__)


class InterviewLifecycle:
    def __init__(
        self,
        repository: Repository[Interview],
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.events = events
        self._clock = clock

    async def create(self, owner_id: str, **fields: Any) -> Interview:
        try:
            interview = Interview(owner_id=owner_id, created_at=self._clock(), **fields)
        except ValidationError as err:
            raise InvalidInputError(f"Invalid interview: {err.errors()[0]['msg']}") from err
        for index, question in enumerate(interview.questions):
            question.order = index
        interview = await self.repository.save(interview)
        logger.info("Created %s interview %s", interview.interview_type, interview.id)
        return interview

    async def get(self, interview_id: str, owner_id: str) -> Interview:
        return await self.repository.require_owned(interview_id, owner_id)

    async def find_by_session_token(self, session_token: str) -> Interview:
        matches = await self.repository.find(lambda i: i.session_token == session_token)
        if not matches:
            raise NotFoundError("No interview for this session token")
        return matches[0]

    async def start(self, interview_id: str, owner_id: str) -> Interview:
        await self.repository.require_owned(interview_id, owner_id)

        def start(interview: Interview) -> None:
            now = self._clock()
            if interview.is_expired(now):
                raise ExpiredError(f"Interview '{interview.id}' expired before it was started")
            INTERVIEW_MACHINE.ensure(interview.status, "active")
            interview.status = "active"
            interview.started_at = now
            if not interview.session_token:
                interview.session_token = generate_session_token()

        interview = await self.repository.update(interview_id, start)
        logger.info("Interview %s started", interview_id)
        await self._publish(interview)
        return interview

    async def complete(self, interview_id: str, owner_id: str, score: float | None = None) -> Interview:
        if score is not None and not 0 <= score <= 100:
            raise InvalidInputError("Score must be between 0 and 100")
        await self.repository.require_owned(interview_id, owner_id)

        def complete(interview: Interview) -> None:
            INTERVIEW_MACHINE.ensure(interview.status, "completed")
            now = self._clock()
            interview.status = "completed"
            interview.completed_at = now
            if interview.started_at is not None:
                minutes = (now - interview.started_at).total_seconds() / 60
                interview.actual_duration_minutes = max(0, math.floor(minutes + 0.5))
            if score is not None:
                interview.score = score

        interview = await self.repository.update(interview_id, complete)
        logger.info("Interview %s completed (%s min)", interview_id, interview.actual_duration_minutes)
        await self._publish(interview)
        return interview

    async def cancel(self, interview_id: str, owner_id: str, reason: str | None = None) -> Interview:
        await self.repository.require_owned(interview_id, owner_id)

        def cancel(interview: Interview) -> None:
            INTERVIEW_MACHINE.ensure(interview.status, "cancelled")
            interview.status = "cancelled"
            if reason:
                interview.cancellation_reason = reason
                interview.tags.append(f"cancelled:{reason}")

        interview = await self.repository.update(interview_id, cancel)
        logger.info("Interview %s cancelled", interview_id)
        await self._publish(interview)
        return interview

    async def add_question(self, interview_id: str, owner_id: str, **fields: Any) -> Interview:
        try:
            question = InterviewQuestion(**fields)
        except ValidationError as err:
            raise InvalidInputError(f"Invalid question: {err.errors()[0]['msg']}") from err
        await self.repository.require_owned(interview_id, owner_id)

        def add(interview: Interview) -> None:
            if interview.status not in {"pending", "active"}:
                raise ConflictError(f"Cannot add questions to a {interview.status} interview")
            interview.questions.append(question.model_copy(update={"order": len(interview.questions)}))

        return await self.repository.update(interview_id, add)

    async def _publish(self, interview: Interview) -> None:
        if self.events is None:
            return
        await self.events.publish(
            interview.owner_id, "interview_status", {"id": interview.id, "status": interview.status}
        )
