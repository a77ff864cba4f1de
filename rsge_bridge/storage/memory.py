"""
In-memory document store for local development and tests.

Implements the same interface as rsge_bridge.storage.firestore so the API can
run without Firebase credentials. Documents live in a dict per collection and
watchers are called synchronously after every write.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from rsge_bridge.errors import StorageError, utc_timestamp

logger = logging.getLogger(__name__)

Watcher = Callable[[Optional[Dict[str, Any]]], None]


class MemoryDocumentStore:
    def __init__(self) -> None:
        # collection -> doc_id -> data
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # (collection, doc_id) -> {token: callback}
        self._watchers: Dict[Tuple[str, str], Dict[str, Watcher]] = {}

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _notify(self, collection: str, doc_id: str) -> None:
        watchers = self._watchers.get((collection, doc_id))
        if not watchers:
            return
        snapshot = self.get(collection, doc_id)
        for callback in list(watchers.values()):
            callback(snapshot)

    # --- Documents ------------------------------------------------------------

    def server_timestamp(self) -> str:
        return utc_timestamp()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)
        self._notify(collection, doc_id)

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise StorageError(f"Document not found: {collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(updates))
        self._notify(collection, doc_id)

    def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)
        self._notify(collection, doc_id)

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """All documents of a collection as dicts carrying their `id`."""
        docs = [{"id": doc_id, **copy.deepcopy(data)} for doc_id, data in self._collection(collection).items()]
        if order_by:
            # Firestore leaves out documents that lack the ordering field
            docs = [d for d in docs if d.get(order_by) is not None]
            docs.sort(key=lambda d: d[order_by])
        return docs

    # --- Listeners ------------------------------------------------------------

    def watch(
        self,
        collection: str,
        doc_id: str,
        callback: Watcher,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        """Call `callback` now and after every change; returns an unsubscribe function."""
        key = (collection, doc_id)
        token = uuid.uuid4().hex
        self._watchers.setdefault(key, {})[token] = callback
        try:
            callback(self.get(collection, doc_id))
        except Exception as e:
            if on_error is None:
                raise
            on_error(e)

        def _unsubscribe() -> None:
            self._watchers.get(key, {}).pop(token, None)

        return _unsubscribe

    def ping(self) -> bool:
        return True
