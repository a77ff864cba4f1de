"""
Storage backends: a document store (in-memory or Firestore) and a response
cache (in-memory or Redis), chosen from settings the same way at every call
site.
"""

from __future__ import annotations

import logging

from rsge_bridge.config import StorageConfig

logger = logging.getLogger(__name__)


def create_document_store(config: StorageConfig):
    if config.backend == "firestore":
        from rsge_bridge.storage.firestore import FirestoreDocumentStore

        logger.info("Using Firestore document store")
        return FirestoreDocumentStore(
            credentials_path=config.firebase_credentials,
            project_id=config.firebase_project_id,
        )

    from rsge_bridge.storage.memory import MemoryDocumentStore

    logger.info("Using in-memory document store")
    return MemoryDocumentStore()


def create_response_cache(config: StorageConfig):
    if config.redis_url:
        from rsge_bridge.storage.cache_redis import RedisResponseCache

        return RedisResponseCache(url=config.redis_url, default_ttl=config.cache_ttl)

    from rsge_bridge.storage.cache import ResponseCache

    return ResponseCache(default_ttl=config.cache_ttl)
