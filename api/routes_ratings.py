from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from api.deps import get_owner_id, get_rating_machine
from api.errors import to_http_error
from models.transcript_rating import InterviewContext, TranscriptMessage
from services.errors import CoachError
from services.rating_service import TranscriptRatingMachine


router = APIRouter(prefix="/ratings", tags=["ratings"])


class RatingCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[TranscriptMessage] = Field(min_length=1)
    interview_context: InterviewContext


def _rating_payload(rating) -> dict:
    return rating.model_dump(mode="json", exclude={"messages"}) | {"message_count": len(rating.messages)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_rating(
    payload: RatingCreateRequest,
    owner_id: str = Depends(get_owner_id),
    ratings: TranscriptRatingMachine = Depends(get_rating_machine),
) -> dict:
    rating = await ratings.create(owner_id, payload.messages, payload.interview_context)
    return _rating_payload(rating)


@router.post("/cleanup", status_code=status.HTTP_200_OK)
async def cleanup_ratings(
    owner_id: str = Depends(get_owner_id),
    ratings: TranscriptRatingMachine = Depends(get_rating_machine),
) -> dict:
    removed = await ratings.cleanup_expired()
    return {"removed": removed}


@router.post("/{rating_id}/generate", status_code=status.HTTP_200_OK)
async def generate_rating(
    rating_id: str,
    owner_id: str = Depends(get_owner_id),
    ratings: TranscriptRatingMachine = Depends(get_rating_machine),
) -> dict:
    try:
        rating = await ratings.generate_rating(rating_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _rating_payload(rating)


@router.get("/{rating_id}", status_code=status.HTTP_200_OK)
async def get_rating(
    rating_id: str,
    owner_id: str = Depends(get_owner_id),
    ratings: TranscriptRatingMachine = Depends(get_rating_machine),
) -> dict:
    try:
        rating = await ratings.get_rating(rating_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return _rating_payload(rating)
