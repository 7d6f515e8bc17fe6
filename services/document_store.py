from __future__ import annotations

import copy
import json
import re
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from services.errors import StaleWriteError


Document = dict[str, Any]
Predicate = Callable[[Document], bool]

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class DocumentStore(Protocol):
    async def find_by_id(self, collection: str, doc_id: str) -> Document | None: ...

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]: ...

    async def save(self, collection: str, document: Document) -> Document: ...

    async def delete_many(self, collection: str, predicate: Predicate) -> int: ...

    async def count_documents(self, collection: str, predicate: Predicate | None = None) -> int: ...


def _check_version(collection: str, current: Document | None, document: Document) -> int:
    expected = int(document.get("version", 0))
    if current is None:
        if expected != 0:
            raise StaleWriteError(
                f"{collection} document '{document['id']}' was removed before this write"
            )
        return 1
    stored = int(current.get("version", 0))
    if stored != expected:
        raise StaleWriteError(
            f"{collection} document '{document['id']}' is at version {stored}, write expected {expected}"
        )
    return stored + 1


class InMemoryDocumentStore:
    """Process-local store; each save is a compare-and-swap on ``version``."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = defaultdict(dict)

    async def find_by_id(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        docs = self._collections[collection].values()
        return [copy.deepcopy(d) for d in docs if predicate is None or predicate(d)]

    async def save(self, collection: str, document: Document) -> Document:
        docs = self._collections[collection]
        new_version = _check_version(collection, docs.get(document["id"]), document)
        stored = copy.deepcopy(document)
        stored["version"] = new_version
        docs[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        docs = self._collections[collection]
        doomed = [doc_id for doc_id, doc in docs.items() if predicate(doc)]
        for doc_id in doomed:
            del docs[doc_id]
        return len(doomed)

    async def count_documents(self, collection: str, predicate: Predicate | None = None) -> int:
        docs = self._collections[collection].values()
        return sum(1 for d in docs if predicate is None or predicate(d))


class JsonFileDocumentStore:
    """One JSON file per document under ``<data_dir>/<collection>/<id>.json``."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _collection_dir(self, collection: str) -> Path:
        if not _SAFE_NAME.match(collection):
            raise ValueError(f"Invalid collection name '{collection}'")
        path = self.data_dir / collection
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _document_file(self, collection: str, doc_id: str) -> Path:
        if not _SAFE_NAME.match(doc_id):
            raise ValueError(f"Invalid document id '{doc_id}'")
        return self._collection_dir(collection) / f"{doc_id}.json"

    def _read(self, path: Path) -> Document:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _iter_documents(self, collection: str):
        for path in sorted(self._collection_dir(collection).glob("*.json")):
            yield path, self._read(path)

    async def find_by_id(self, collection: str, doc_id: str) -> Document | None:
        path = self._document_file(collection, doc_id)
        if not path.exists():
            return None
        return self._read(path)

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        return [doc for _, doc in self._iter_documents(collection) if predicate is None or predicate(doc)]

    async def save(self, collection: str, document: Document) -> Document:
        path = self._document_file(collection, document["id"])
        current = self._read(path) if path.exists() else None
        stored = dict(document)
        stored["version"] = _check_version(collection, current, document)

        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(stored, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)
        return stored

    async def delete_many(self, collection: str, predicate: Predicate) -> int:
        removed = 0
        for path, doc in list(self._iter_documents(collection)):
            if predicate(doc):
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    async def count_documents(self, collection: str, predicate: Predicate | None = None) -> int:
        return sum(1 for _, doc in self._iter_documents(collection) if predicate is None or predicate(doc))
