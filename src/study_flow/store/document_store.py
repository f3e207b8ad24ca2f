"""Hierarchical document store interface and in-process implementation."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, Field

Path = tuple[str, ...]


class StoredDocument(BaseModel):
    id: str
    data: dict[str, Any] = Field(default_factory=dict)


def collection_path(segments: Sequence[str]) -> Path:
    path = _clean(segments)
    if len(path) % 2 != 1:
        raise ValueError(f"Collection paths need an odd number of segments, got {'/'.join(path)!r}.")
    return path


def document_path(segments: Sequence[str]) -> Path:
    path = _clean(segments)
    if len(path) % 2 != 0:
        raise ValueError(f"Document paths need an even number of segments, got {'/'.join(path)!r}.")
    return path


def _clean(segments: Sequence[str]) -> Path:
    if isinstance(segments, str):
        segments = segments.split("/")
    path = tuple(str(segment).strip("/") for segment in segments)
    if not path or any(not segment for segment in path):
        raise ValueError(f"Empty path segment in {segments!r}.")
    return path


class DocumentStore:
    """JSON-like records under collection/document paths."""

    async def add(self, collection: Sequence[str], data: Mapping[str, Any]) -> str:
        raise NotImplementedError("DocumentStore.add must be implemented by subclasses.")

    async def get(self, document: Sequence[str]) -> dict[str, Any] | None:
        raise NotImplementedError("DocumentStore.get must be implemented by subclasses.")

    async def set(self, document: Sequence[str], data: Mapping[str, Any], *, merge: bool = False) -> None:
        raise NotImplementedError("DocumentStore.set must be implemented by subclasses.")

    async def delete(self, document: Sequence[str]) -> None:
        raise NotImplementedError("DocumentStore.delete must be implemented by subclasses.")

    async def list(
        self,
        collection: Sequence[str],
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        raise NotImplementedError("DocumentStore.list must be implemented by subclasses.")

    def timestamp(self) -> Any:
        """Value stored for "written at" fields."""
        return datetime.now(timezone.utc)


class MemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._documents: dict[Path, dict[str, Any]] = {}

    async def add(self, collection: Sequence[str], data: Mapping[str, Any]) -> str:
        parent = collection_path(collection)
        doc_id = uuid.uuid4().hex[:20]
        self._documents[parent + (doc_id,)] = copy.deepcopy(dict(data))
        return doc_id

    async def get(self, document: Sequence[str]) -> dict[str, Any] | None:
        stored = self._documents.get(document_path(document))
        return copy.deepcopy(stored) if stored is not None else None

    async def set(self, document: Sequence[str], data: Mapping[str, Any], *, merge: bool = False) -> None:
        path = document_path(document)
        incoming = copy.deepcopy(dict(data))
        existing = self._documents.get(path)
        if merge and existing is not None:
            self._documents[path] = deep_merge(existing, incoming)
        else:
            self._documents[path] = incoming

    async def delete(self, document: Sequence[str]) -> None:
        self._documents.pop(document_path(document), None)

    async def list(
        self,
        collection: Sequence[str],
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        parent = collection_path(collection)
        docs = [
            StoredDocument(id=path[-1], data=copy.deepcopy(data))
            for path, data in self._documents.items()
            if len(path) == len(parent) + 1 and path[: len(parent)] == parent
        ]
        if order_by is not None:
            # Documents without the field are left out, as with an ordered query.
            docs = [doc for doc in docs if doc.data.get(order_by) is not None]
            docs.sort(key=lambda doc: doc.data[order_by], reverse=descending)
        return docs


def deep_merge(base: dict[str, Any], update: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged
