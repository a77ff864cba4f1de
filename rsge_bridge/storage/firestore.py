"""
Firestore-backed document store for production when STORAGE_BACKEND=firestore.
Implements the same interface as rsge_bridge.storage.memory (in-memory stub).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from rsge_bridge.errors import StorageError

logger = logging.getLogger(__name__)


def _initialize_app(credentials_path: Optional[str], project_id: Optional[str]) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {"projectId": project_id} if project_id else None
    if credentials_path:
        cred = credentials.Certificate(credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    logger.info("Initializing Firebase app (project=%s)", project_id or "<default>")
    return firebase_admin.initialize_app(cred, options)


class FirestoreDocumentStore:
    """
    Thin wrapper over the Firestore client. Use when STORAGE_BACKEND=firestore.
    """

    def __init__(self, credentials_path: Optional[str] = None, project_id: Optional[str] = None, client: Any = None) -> None:
        if client is None:
            app = _initialize_app(credentials_path, project_id)
            client = firestore.client(app)
        self._db = client

    def _doc(self, collection: str, doc_id: str):
        return self._db.collection(collection).document(doc_id)

    def server_timestamp(self) -> Any:
        return firestore.SERVER_TIMESTAMP

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snap = self._doc(collection, doc_id).get()
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._doc(collection, doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> None:
        try:
            self._doc(collection, doc_id).update(updates)
        except Exception as e:
            raise StorageError(f"Failed to update {collection}/{doc_id}: {e}") from e

    def delete(self, collection: str, doc_id: str) -> None:
        self._doc(collection, doc_id).delete()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        _, ref = self._db.collection(collection).add(data)
        return ref.id

    def list(self, collection: str, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self._db.collection(collection)
        if order_by:
            query = query.order_by(order_by)
        docs: List[Dict[str, Any]] = []
        for snap in query.stream():
            d = snap.to_dict() or {}
            docs.append({"id": snap.id, **d})
        return docs

    def watch(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Optional[Dict[str, Any]]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        def _on_snapshot(doc_snapshots, changes, read_time) -> None:
            try:
                snap = doc_snapshots[0] if doc_snapshots else None
                callback(snap.to_dict() if snap is not None and snap.exists else None)
            except Exception as e:
                if on_error is None:
                    logger.error("Listener for %s/%s failed: %s", collection, doc_id, e, exc_info=True)
                else:
                    on_error(e)

        watch = self._doc(collection, doc_id).on_snapshot(_on_snapshot)
        return watch.unsubscribe

    def ping(self) -> bool:
        try:
            next(iter(self._db.collections()), None)
            return True
        except Exception:
            return False
