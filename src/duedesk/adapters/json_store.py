"""File-based document store adapter."""

import json
import logging
import os
import uuid
from pathlib import Path

from duedesk.core.errors import InvalidInput, NotFound
from duedesk.ports.store import Filter

logger = logging.getLogger(__name__)

_OPS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


class JsonFileStore:
    """
    JSON file document store.

    Implements DocumentStore protocol. Each collection is one JSON file
    mapping document id to document. Writes go through a temp file and an
    atomic rename.
    """

    def __init__(self, data_dir: Path | str, batch_limit: int = 350):
        self.data_dir = Path(data_dir).expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.batch_limit = batch_limit

    def _path_for(self, collection: str) -> Path:
        """Get the file path for a collection."""
        return self.data_dir / f"{collection}.json"

    def _load(self, collection: str) -> dict[str, dict]:
        path = self._path_for(collection)
        if not path.exists():
            return {}
        return json.loads(path.read_text() or "{}")

    def _save(self, collection: str, docs: dict[str, dict]) -> None:
        path = self._path_for(collection)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(docs, indent=2, sort_keys=True, default=str))
        os.replace(tmp, path)

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    def get(self, collection: str, doc_id: str) -> dict | None:
        return self._load(collection).get(doc_id)

    def get_many(self, collection: str, doc_ids: list[str]) -> dict[str, dict]:
        docs = self._load(collection)
        return {i: docs[i] for i in doc_ids if i in docs}

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self._load(collection)
        docs[doc_id] = dict(data)
        self._save(collection, docs)

    def merge(self, collection: str, doc_id: str, patch: dict) -> None:
        docs = self._load(collection)
        docs.setdefault(doc_id, {}).update(patch)
        self._save(collection, docs)

    def update(self, collection: str, doc_id: str, patch: dict) -> None:
        docs = self._load(collection)
        if doc_id not in docs:
            raise NotFound(f"{collection}/{doc_id} not found")
        docs[doc_id].update(patch)
        self._save(collection, docs)

    def delete(self, collection: str, doc_id: str) -> None:
        docs = self._load(collection)
        if docs.pop(doc_id, None) is not None:
            self._save(collection, docs)

    def add(self, collection: str, data: dict) -> str:
        doc_id = self.new_id(collection)
        self.set(collection, doc_id, data)
        return doc_id

    def query(self, collection: str, filters: list[Filter] | None = None) -> list[tuple[str, dict]]:
        results = []
        for doc_id, doc in self._load(collection).items():
            if all(_OPS[op](doc.get(name), value) for name, op, value in filters or []):
                results.append((doc_id, doc))
        return results

    def batch_update(self, collection: str, patches: dict[str, dict]) -> None:
        if len(patches) > self.batch_limit:
            raise InvalidInput(f"Batch of {len(patches)} exceeds limit {self.batch_limit}")
        docs = self._load(collection)
        missing = [i for i in patches if i not in docs]
        if missing:
            raise NotFound(f"{collection}: {', '.join(missing)} not found")
        for doc_id, patch in patches.items():
            docs[doc_id].update(patch)
        self._save(collection, docs)
        logger.debug(f"Batch updated {len(patches)} {collection} documents")
