from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.feedback import FeedbackReport, FeedbackRequest
from models.transcript_rating import InterviewContext, TranscriptMessage, TranscriptRating, UserProfileSnapshot
from services.document_store import InMemoryDocumentStore
from services.errors import AccessDeniedError, ExpiredError, IllegalTransitionError, RateLimitError
from services.expiry_sweeper import ExpirySweeper
from services.repository import Repository
from services.rating_service import TranscriptRatingMachine, build_rating_request


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 5, 2, 12, 0, tzinfo=timezone.utc)

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


class FakeAnalyzer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    async def analyze_transcript(self, request: FeedbackRequest) -> FeedbackReport:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FeedbackReport(overall_rating=6.0, weaknesses=["Short answers"])


MESSAGES = [
    TranscriptMessage(sender="ai", text="What do you want to study?"),
    TranscriptMessage(sender="user", text="Marine biology, because of my summer at the aquarium."),
]
CONTEXT = InterviewContext(
    difficulty="beginner",
    interview_type="behavioral",
    user_profile=UserProfileSnapshot(name="Sam", grade=11, target_major="Biology"),
)


def _machine(analyzer: FakeAnalyzer | None = None) -> tuple[TranscriptRatingMachine, FakeClock]:
    clock = FakeClock()
    machine = TranscriptRatingMachine(
        repository=Repository(InMemoryDocumentStore(), "transcript_ratings", TranscriptRating, clock=clock),
        analyzer=analyzer or FakeAnalyzer(),
        clock=clock,
    )
    return machine, clock


@pytest.mark.asyncio
async def test_rating_expires_after_a_day() -> None:
    machine, clock = _machine()
    rating = await machine.create("user-1", MESSAGES, CONTEXT)

    assert rating.status == "pending"
    assert rating.expires_at == clock.now + timedelta(hours=24)

    clock.advance(hours=23)
    assert (await machine.get_rating(rating.id, "user-1")).id == rating.id

    clock.advance(hours=2)
    # still stored, but no longer readable before the sweep runs
    with pytest.raises(ExpiredError):
        await machine.get_rating(rating.id, "user-1")
    assert await machine.repository.get(rating.id) is not None


@pytest.mark.asyncio
async def test_generate_rating_is_cached() -> None:
    analyzer = FakeAnalyzer()
    machine, clock = _machine(analyzer)
    rating = await machine.create("user-1", MESSAGES, CONTEXT)

    rated = await machine.generate_rating(rating.id, "user-1")
    again = await machine.generate_rating(rating.id, "user-1")

    assert rated.status == "rated"
    assert rated.ai_rating.overall_rating == 6.0
    assert rated.rating_generated_at == clock.now
    assert again.version == rated.version
    assert analyzer.calls == 1


@pytest.mark.asyncio
async def test_failed_rating_can_be_retried() -> None:
    analyzer = FakeAnalyzer(error=RateLimitError("429", status_code=429))
    machine, _ = _machine(analyzer)
    rating = await machine.create("user-1", MESSAGES, CONTEXT)

    with pytest.raises(RateLimitError):
        await machine.generate_rating(rating.id, "user-1")

    failed = await machine.get_rating(rating.id, "user-1")
    assert failed.status == "error"
    assert failed.error_message == RateLimitError.user_message

    analyzer.error = None
    rated = await machine.generate_rating(rating.id, "user-1")
    assert rated.status == "rated"
    assert rated.error_message is None


@pytest.mark.asyncio
async def test_expired_rating_cannot_be_generated() -> None:
    analyzer = FakeAnalyzer()
    machine, clock = _machine(analyzer)
    rating = await machine.create("user-1", MESSAGES, CONTEXT)
    clock.advance(hours=25)

    with pytest.raises(ExpiredError):
        await machine.generate_rating(rating.id, "user-1")
    assert analyzer.calls == 0


@pytest.mark.asyncio
async def test_expired_is_terminal() -> None:
    machine, _ = _machine()
    rating = await machine.create("user-1", MESSAGES, CONTEXT)

    expired = await machine.mark_expired(rating.id)
    assert expired.status == "expired"
    with pytest.raises(IllegalTransitionError):
        await machine.mark_expired(rating.id)
    with pytest.raises(ExpiredError):
        await machine.generate_rating(rating.id, "user-1")


@pytest.mark.asyncio
async def test_owner_scoping_and_listing() -> None:
    machine, clock = _machine()
    first = await machine.create("user-1", MESSAGES, CONTEXT)
    clock.advance(minutes=5)
    second = await machine.create("user-1", MESSAGES, CONTEXT)
    await machine.create("user-2", MESSAGES, CONTEXT)

    with pytest.raises(AccessDeniedError):
        await machine.get_rating(first.id, "user-2")

    assert [r.id for r in await machine.list_for_owner("user-1")] == [second.id, first.id]
    assert len(await machine.find_pending()) == 3
    assert len(await machine.find_pending("user-2")) == 1


@pytest.mark.asyncio
async def test_cleanup_and_sweeper_remove_expired() -> None:
    machine, clock = _machine()
    old = await machine.create("user-1", MESSAGES, CONTEXT)
    clock.advance(hours=20)
    fresh = await machine.create("user-1", MESSAGES, CONTEXT)
    clock.advance(hours=5)

    sweeper = ExpirySweeper(machine)
    assert await sweeper.run_once() == 1
    assert await machine.repository.get(old.id) is None
    assert await machine.repository.get(fresh.id) is not None

    await machine.mark_expired(fresh.id)
    assert await machine.cleanup_expired() == 1


def test_rating_request_carries_context_without_name() -> None:
    rating = TranscriptRating(owner_id="user-1", messages=MESSAGES, interview_context=CONTEXT)
    request = build_rating_request(rating)

    assert request.user_major == "Biology"
    assert request.difficulty == "beginner"
    assert "name" not in request.user_profile
    assert request.lines_for("user") == [MESSAGES[1].text]
