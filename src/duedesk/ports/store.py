"""Keyed document store interface."""

from typing import Any, Protocol

# (field, op, value) with op one of "==", "!=", "<", "<=", ">", ">=", "in"
Filter = tuple[str, str, Any]


class DocumentStore(Protocol):
    """Documents addressable by collection + id."""

    def new_id(self, collection: str) -> str:
        """Allocate a fresh document id without writing anything."""
        ...

    def get(self, collection: str, doc_id: str) -> dict | None:
        """Return a document, or None if absent."""
        ...

    def get_many(self, collection: str, doc_ids: list[str]) -> dict[str, dict]:
        """Return the documents that exist, keyed by id."""
        ...

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document."""
        ...

    def merge(self, collection: str, doc_id: str, patch: dict) -> None:
        """Create or shallow-merge fields into a document."""
        ...

    def update(self, collection: str, doc_id: str, patch: dict) -> None:
        """Shallow-merge fields into an existing document. Raises NotFound."""
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""
        ...

    def add(self, collection: str, data: dict) -> str:
        """Insert a document under an auto id and return the id."""
        ...

    def query(self, collection: str, filters: list[Filter] | None = None) -> list[tuple[str, dict]]:
        """Return (id, document) pairs matching every filter."""
        ...

    def batch_update(self, collection: str, patches: dict[str, dict]) -> None:
        """Apply several updates in one write. At most `batch_limit` entries."""
        ...
