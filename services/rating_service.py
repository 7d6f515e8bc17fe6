from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from models.base import utc_now
from models.feedback import FeedbackReport, FeedbackRequest, TranscriptLine
from models.transcript_rating import InterviewContext, TranscriptMessage, TranscriptRating
from services.errors import ConflictError, ExpiredError, NotFoundError, user_message
from services.event_bus import EventBus
from services.repository import Repository
from services.session_recorder import FeedbackAnalyzer
from services.state_machine import RATING_MACHINE


logger = logging.getLogger(__name__)


def build_rating_request(rating: TranscriptRating) -> FeedbackRequest:
    context = rating.interview_context
    profile = context.user_profile.as_prompt_fields()
    return FeedbackRequest(
        transcript=[TranscriptLine(speaker=m.sender, text=m.text) for m in rating.messages],
        interview_type=context.interview_type,
        difficulty=context.difficulty,
        user_major=context.user_profile.target_major or "General Studies",
        duration_minutes=context.duration_minutes or 30,
        user_profile=profile,
    )


class TranscriptRatingMachine:
    """One-shot rating of a finished transcript, kept for 24 hours."""

    def __init__(
        self,
        repository: Repository[TranscriptRating],
        analyzer: FeedbackAnalyzer,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.analyzer = analyzer
        self.events = events
        self._clock = clock

    async def create(
        self, owner_id: str, messages: list[TranscriptMessage], context: InterviewContext
    ) -> TranscriptRating:
        rating = TranscriptRating(
            owner_id=owner_id,
            messages=messages,
            interview_context=context,
            created_at=self._clock(),
        )
        rating = await self.repository.save(rating)
        logger.info("Created transcript rating %s (%d messages)", rating.id, len(messages))
        return rating

    def _ensure_live(self, rating: TranscriptRating, now: datetime) -> None:
        if rating.status == "expired" or rating.is_expired(now):
            raise ExpiredError(f"Transcript rating '{rating.id}' has expired")

    async def get_rating(self, rating_id: str, owner_id: str) -> TranscriptRating:
        rating = await self.repository.require_owned(rating_id, owner_id)
        self._ensure_live(rating, self._clock())
        return rating

    async def generate_rating(self, rating_id: str, owner_id: str) -> TranscriptRating:
        rating = await self.get_rating(rating_id, owner_id)
        if rating.status == "rated" and rating.ai_rating is not None:
            return rating

        def begin(current: TranscriptRating) -> None:
            self._ensure_live(current, self._clock())
            RATING_MACHINE.ensure(current.status, "pending")
            current.status = "pending"
            current.error_message = None

        rating = await self.repository.update(rating_id, begin)
        logger.info("Generating rating %s", rating_id)

        try:
            report: FeedbackReport = await self.analyzer.analyze_transcript(build_rating_request(rating))
        except Exception as err:
            message = user_message(err)

            def fail(current: TranscriptRating) -> None:
                RATING_MACHINE.ensure(current.status, "error")
                current.status = "error"
                current.error_message = message

            try:
                failed = await self.repository.update(rating_id, fail)
                await self._publish(failed)
            except (ConflictError, NotFoundError):
                logger.warning("Rating %s changed during generation; error not recorded", rating_id)
            logger.error("Rating %s failed: %s", rating_id, err)
            raise

        def complete(current: TranscriptRating) -> None:
            RATING_MACHINE.ensure(current.status, "rated")
            current.status = "rated"
            current.ai_rating = report
            current.rating_generated_at = self._clock()
            current.error_message = None

        rating = await self.repository.update(rating_id, complete)
        logger.info("Rating %s completed (overall %.1f)", rating_id, report.overall_rating)
        await self._publish(rating)
        return rating

    async def mark_expired(self, rating_id: str) -> TranscriptRating:
        def expire(current: TranscriptRating) -> None:
            RATING_MACHINE.ensure(current.status, "expired")
            current.status = "expired"

        return await self.repository.update(rating_id, expire)

    async def list_for_owner(self, owner_id: str) -> list[TranscriptRating]:
        now = self._clock()
        ratings = await self.repository.find_owned(
            owner_id, lambda r: r.status != "expired" and not r.is_expired(now)
        )
        return sorted(ratings, key=lambda r: r.created_at, reverse=True)

    async def find_pending(self, owner_id: str | None = None) -> list[TranscriptRating]:
        now = self._clock()
        return await self.repository.find(
            lambda r: r.status == "pending"
            and not r.is_expired(now)
            and (owner_id is None or r.owner_id == owner_id)
        )

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        cutoff = now or self._clock()
        removed = await self.repository.delete_many(
            lambda r: r.status == "expired" or r.expires_at < cutoff
        )
        if removed:
            logger.info("Removed %d expired transcript ratings", removed)
        return removed

    async def _publish(self, rating: TranscriptRating) -> None:
        if self.events is None:
            return
        await self.events.publish(
            rating.owner_id,
            "rating_status",
            {"id": rating.id, "status": rating.status, "error_message": rating.error_message},
        )
