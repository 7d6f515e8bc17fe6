from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from api.deps import get_interview_lifecycle, get_owner_id
from api.errors import to_http_error
from models.interview import InterviewDifficulty, InterviewType
from services.errors import CoachError
from services.interview_lifecycle import InterviewLifecycle


router = APIRouter(prefix="/interviews", tags=["interviews"])


class QuestionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = Field(min_length=1, max_length=1000)
    category: str | None = None
    expected_duration_seconds: int | None = None
    hints: list[str] = Field(default_factory=list)
    follow_ups: list[str] = Field(default_factory=list)


class InterviewCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interview_type: InterviewType = "behavioral"
    difficulty: InterviewDifficulty = "intermediate"
    duration_minutes: int = 30
    custom_prompt: str | None = None
    tags: list[str] = Field(default_factory=list)
    questions: list[QuestionRequest] = Field(default_factory=list)


class CompleteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: float | None = None


class CancelRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reason: str | None = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_interview(
    payload: InterviewCreateRequest,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.create(owner_id, **payload.model_dump())
    except CoachError as err:
        raise to_http_error(err) from err
    return interview.model_dump(mode="json")


@router.get("/{interview_id}", status_code=status.HTTP_200_OK)
async def get_interview(
    interview_id: str,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.get(interview_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    payload = interview.model_dump(mode="json")
    payload["is_expired"] = interview.is_expired()
    return payload


@router.post("/{interview_id}/start", status_code=status.HTTP_200_OK)
async def start_interview(
    interview_id: str,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.start(interview_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return interview.model_dump(mode="json")


@router.post("/{interview_id}/complete", status_code=status.HTTP_200_OK)
async def complete_interview(
    interview_id: str,
    payload: CompleteRequest,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.complete(interview_id, owner_id, score=payload.score)
    except CoachError as err:
        raise to_http_error(err) from err
    return interview.model_dump(mode="json")


@router.post("/{interview_id}/cancel", status_code=status.HTTP_200_OK)
async def cancel_interview(
    interview_id: str,
    payload: CancelRequest,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.cancel(interview_id, owner_id, reason=payload.reason)
    except CoachError as err:
        raise to_http_error(err) from err
    return interview.model_dump(mode="json")


@router.post("/{interview_id}/questions", status_code=status.HTTP_201_CREATED)
async def add_question(
    interview_id: str,
    payload: QuestionRequest,
    owner_id: str = Depends(get_owner_id),
    lifecycle: InterviewLifecycle = Depends(get_interview_lifecycle),
) -> dict:
    try:
        interview = await lifecycle.add_question(interview_id, owner_id, **payload.model_dump(exclude_none=True))
    except CoachError as err:
        raise to_http_error(err) from err
    return interview.model_dump(mode="json")
