from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

from models.base import StoredDocument, utc_now
from services.document_store import DocumentStore
from services.errors import AccessDeniedError, NotFoundError, StaleWriteError


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=StoredDocument)

UPDATE_ATTEMPTS = 3


class Repository(Generic[M]):
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        model: type[M],
        label: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.collection = collection
        self.model = model
        self.label = label or model.__name__
        self.clock = clock

    async def get(self, doc_id: str) -> M | None:
        payload = await self.store.find_by_id(self.collection, doc_id)
        return self.model.model_validate(payload) if payload is not None else None

    async def require(self, doc_id: str) -> M:
        entity = await self.get(doc_id)
        if entity is None:
            raise NotFoundError(f"{self.label} '{doc_id}' not found")
        return entity

    async def require_owned(self, doc_id: str, owner_id: str) -> M:
        entity = await self.require(doc_id)
        if not entity.is_owned_by(owner_id):
            raise AccessDeniedError(f"{self.label} '{doc_id}' does not belong to '{owner_id}'")
        return entity

    async def save(self, entity: M) -> M:
        entity.updated_at = self.clock()
        stored = await self.store.save(self.collection, entity.model_dump(mode="json"))
        entity.version = stored["version"]
        return entity

    async def update(self, doc_id: str, mutate: Callable[[M], None]) -> M:
        """Read-modify-write with compare-and-swap.

        ``mutate`` runs against the freshest copy on every attempt, so any
        state-machine check inside it is re-evaluated after a conflict.
        """
        attempt = 0
        while True:
            attempt += 1
            entity = await self.require(doc_id)
            mutate(entity)
            try:
                return await self.save(entity)
            except StaleWriteError:
                if attempt >= UPDATE_ATTEMPTS:
                    raise
                logger.info("Concurrent write on %s '%s', retrying update", self.label, doc_id)

    async def find(self, predicate: Callable[[M], bool] | None = None) -> list[M]:
        entities = [self.model.model_validate(doc) for doc in await self.store.find(self.collection)]
        if predicate is None:
            return entities
        return [e for e in entities if predicate(e)]

    async def find_owned(self, owner_id: str, predicate: Callable[[M], bool] | None = None) -> list[M]:
        return await self.find(lambda e: e.owner_id == owner_id and (predicate is None or predicate(e)))

    async def delete(self, doc_id: str) -> bool:
        return await self.store.delete_many(self.collection, lambda doc: doc.get("id") == doc_id) > 0

    async def delete_many(self, predicate: Callable[[M], bool]) -> int:
        return await self.store.delete_many(
            self.collection, lambda doc: predicate(self.model.model_validate(doc))
        )

    async def count(self, predicate: Callable[[M], bool] | None = None) -> int:
        if predicate is None:
            return await self.store.count_documents(self.collection)
        return await self.store.count_documents(
            self.collection, lambda doc: predicate(self.model.model_validate(doc))
        )
