"""Document store backends."""

from study_flow.store.document_store import DocumentStore
from study_flow.store.document_store import MemoryDocumentStore
from study_flow.store.document_store import StoredDocument

__all__ = ["DocumentStore", "MemoryDocumentStore", "StoredDocument"]
