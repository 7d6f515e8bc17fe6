from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


ProcessingStatus = Literal["pending", "processing", "completed", "failed"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class StoredDocument(BaseModel):
    """Common envelope for every persisted entity.

    ``owner_id`` is frozen: it is fixed at creation and assignment raises.
    ``version`` is managed by the document store and used for
    compare-and-swap saves.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(min_length=1, frozen=True)
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_owned_by(self, owner_id: str) -> bool:
        return self.owner_id == owner_id
