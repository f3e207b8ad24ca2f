from typing import Any, AsyncIterator

import pytest
from google.api_core.exceptions import ServiceUnavailable
from google.cloud import firestore

from study_flow.errors import ExternalServiceError
from study_flow.store import MemoryDocumentStore, StoredDocument
from study_flow.store.document_store import collection_path, deep_merge, document_path
from study_flow.store.firestore_store import FirestoreDocumentStore


def test_path_parity_is_checked() -> None:
    assert collection_path("users/u1/settings") == ("users", "u1", "settings")
    assert document_path(["users", "u1"]) == ("users", "u1")
    with pytest.raises(ValueError):
        collection_path(["users", "u1"])
    with pytest.raises(ValueError):
        document_path("users")
    with pytest.raises(ValueError):
        document_path(["users", ""])


def test_deep_merge_keeps_untouched_nested_keys() -> None:
    merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})

    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}


@pytest.mark.anyio
async def test_memory_store_crud() -> None:
    store = MemoryDocumentStore()

    doc_id = await store.add(["courses"], {"title": "Math"})
    assert await store.get(["courses", doc_id]) == {"title": "Math"}

    await store.set(["courses", doc_id], {"level": "Beginner"}, merge=True)
    assert await store.get(["courses", doc_id]) == {"title": "Math", "level": "Beginner"}

    await store.set(["courses", doc_id], {"title": "Art"})
    assert await store.get(["courses", doc_id]) == {"title": "Art"}

    await store.delete(["courses", doc_id])
    assert await store.get(["courses", doc_id]) is None


@pytest.mark.anyio
async def test_memory_store_returns_copies() -> None:
    store = MemoryDocumentStore()
    data = {"tags": ["a"]}
    await store.set(["docs", "d1"], data)

    data["tags"].append("b")
    fetched = await store.get(["docs", "d1"])
    assert fetched == {"tags": ["a"]}
    assert fetched is not None
    fetched["tags"].append("c")
    assert await store.get(["docs", "d1"]) == {"tags": ["a"]}


@pytest.mark.anyio
async def test_memory_store_list_direct_children_and_ordering() -> None:
    store = MemoryDocumentStore()
    await store.set(["courses", "c1", "modules", "m1", "gameAssessments", "a"], {"generatedAt": 2})
    await store.set(["courses", "c1", "modules", "m1", "gameAssessments", "b"], {"generatedAt": 3})
    await store.set(["courses", "c1", "modules", "m1", "gameAssessments", "c"], {"title": "unordered"})
    await store.set(["courses", "c1", "modules", "m2", "gameAssessments", "z"], {"generatedAt": 1})

    collection = ["courses", "c1", "modules", "m1", "gameAssessments"]
    unordered = await store.list(collection)
    ordered = await store.list(collection, order_by="generatedAt", descending=True)

    assert sorted(doc.id for doc in unordered) == ["a", "b", "c"]
    assert [doc.id for doc in ordered] == ["b", "a"]
    assert ordered[0] == StoredDocument(id="b", data={"generatedAt": 3})


class FakeDocRef:
    def __init__(self, doc_id: str) -> None:
        self.id = doc_id


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict[str, Any] | None) -> None:
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return self._data


class FakeDocument:
    def __init__(self, client: "FakeFirestoreClient", path: tuple[str, ...]) -> None:
        self.client = client
        self.path = path

    async def get(self) -> FakeSnapshot:
        self.client.maybe_fail()
        return FakeSnapshot(self.path[-1], self.client.docs.get(self.path))

    async def set(self, data: dict[str, Any], merge: bool = False) -> None:
        self.client.maybe_fail()
        self.client.writes.append((self.path, data, merge))
        self.client.docs[self.path] = data

    async def delete(self) -> None:
        self.client.maybe_fail()
        self.client.docs.pop(self.path, None)


class FakeCollection:
    def __init__(self, client: "FakeFirestoreClient", path: tuple[str, ...]) -> None:
        self.client = client
        self.path = path
        self.ordering: tuple[str, str] | None = None

    async def add(self, data: dict[str, Any]) -> tuple[Any, FakeDocRef]:
        self.client.maybe_fail()
        doc_id = f"doc{len(self.client.docs) + 1}"
        self.client.docs[self.path + (doc_id,)] = data
        return None, FakeDocRef(doc_id)

    def order_by(self, field_path: str, direction: str) -> "FakeCollection":
        self.ordering = (field_path, direction)
        self.client.orderings.append(self.ordering)
        return self

    async def stream(self) -> AsyncIterator[FakeSnapshot]:
        self.client.maybe_fail()
        for path, data in self.client.docs.items():
            if path[:-1] == self.path:
                yield FakeSnapshot(path[-1], data)


class FakeFirestoreClient:
    def __init__(self) -> None:
        self.docs: dict[tuple[str, ...], dict[str, Any]] = {}
        self.writes: list[tuple[tuple[str, ...], dict[str, Any], bool]] = []
        self.orderings: list[tuple[str, str]] = []
        self.fail = False

    def maybe_fail(self) -> None:
        if self.fail:
            raise ServiceUnavailable("firestore is down")

    def collection(self, *path: str) -> FakeCollection:
        return FakeCollection(self, path)

    def document(self, *path: str) -> FakeDocument:
        return FakeDocument(self, path)


def _firestore_store(client: FakeFirestoreClient) -> FirestoreDocumentStore:
    return FirestoreDocumentStore(client)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_firestore_store_delegates_to_client() -> None:
    client = FakeFirestoreClient()
    store = _firestore_store(client)

    doc_id = await store.add("users/u1/audioNavLogs", {"command": "go home"})
    await store.set(["users", "u1", "settings", "audioNav"], {"isEnabled": False}, merge=True)

    assert await store.get(["users", "u1", "audioNavLogs", doc_id]) == {"command": "go home"}
    assert await store.get(["users", "u1", "settings", "missing"]) is None
    assert client.writes == [(("users", "u1", "settings", "audioNav"), {"isEnabled": False}, True)]

    await store.delete(["users", "u1", "audioNavLogs", doc_id])
    assert await store.get(["users", "u1", "audioNavLogs", doc_id]) is None


@pytest.mark.anyio
async def test_firestore_store_list_orders_query() -> None:
    client = FakeFirestoreClient()
    client.docs[("courses", "c1", "modules", "m1", "gameAssessments", "g1")] = {"title": "Quiz"}
    store = _firestore_store(client)

    docs = await store.list(["courses", "c1", "modules", "m1", "gameAssessments"], order_by="generatedAt", descending=True)

    assert docs == [StoredDocument(id="g1", data={"title": "Quiz"})]
    assert client.orderings == [("generatedAt", firestore.Query.DESCENDING)]


@pytest.mark.anyio
async def test_firestore_errors_become_external_service_errors() -> None:
    client = FakeFirestoreClient()
    client.fail = True
    store = _firestore_store(client)

    with pytest.raises(ExternalServiceError):
        await store.get(["users", "u1"])
    with pytest.raises(ExternalServiceError):
        await store.add(["users"], {})
    with pytest.raises(ExternalServiceError):
        await store.list(["users"])


def test_firestore_timestamp_is_server_sentinel() -> None:
    assert _firestore_store(FakeFirestoreClient()).timestamp() is firestore.SERVER_TIMESTAMP
