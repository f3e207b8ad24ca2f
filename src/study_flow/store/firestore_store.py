"""Cloud Firestore backed document store."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from google.api_core.exceptions import GoogleAPIError
from google.cloud import firestore

from study_flow.errors import ExternalServiceError
from study_flow.store.document_store import DocumentStore, StoredDocument, collection_path, document_path

logger = logging.getLogger(__name__)


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client: Optional[firestore.AsyncClient] = None, *, project: Optional[str] = None) -> None:
        self._client = client if client is not None else firestore.AsyncClient(project=project)

    async def add(self, collection: Sequence[str], data: Mapping[str, Any]) -> str:
        path = collection_path(collection)
        try:
            _update_time, doc_ref = await self._client.collection(*path).add(dict(data))
        except GoogleAPIError as exc:
            raise ExternalServiceError(f"Failed to add document under {'/'.join(path)}: {exc}") from exc
        return doc_ref.id

    async def get(self, document: Sequence[str]) -> dict[str, Any] | None:
        path = document_path(document)
        try:
            snapshot = await self._client.document(*path).get()
        except GoogleAPIError as exc:
            raise ExternalServiceError(f"Failed to read {'/'.join(path)}: {exc}") from exc
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def set(self, document: Sequence[str], data: Mapping[str, Any], *, merge: bool = False) -> None:
        path = document_path(document)
        try:
            await self._client.document(*path).set(dict(data), merge=merge)
        except GoogleAPIError as exc:
            raise ExternalServiceError(f"Failed to write {'/'.join(path)}: {exc}") from exc

    async def delete(self, document: Sequence[str]) -> None:
        path = document_path(document)
        try:
            await self._client.document(*path).delete()
        except GoogleAPIError as exc:
            raise ExternalServiceError(f"Failed to delete {'/'.join(path)}: {exc}") from exc

    async def list(
        self,
        collection: Sequence[str],
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        path = collection_path(collection)
        query: Any = self._client.collection(*path)
        if order_by is not None:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        docs: list[StoredDocument] = []
        try:
            async for snapshot in query.stream():
                docs.append(StoredDocument(id=snapshot.id, data=snapshot.to_dict() or {}))
        except GoogleAPIError as exc:
            raise ExternalServiceError(f"Failed to list {'/'.join(path)}: {exc}") from exc
        return docs

    def timestamp(self) -> Any:
        return firestore.SERVER_TIMESTAMP
