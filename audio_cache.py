"""
Audio blob cache for the audio proxy.

Voice messages live in Firebase Storage; fetching them through the backend
and keeping a copy for AUDIO_CACHE_TTL_DAYS keeps the storage download quota
in check. Entries are keyed by source URL.
"""

import logging
import time
from typing import Any, Dict, Optional

import config

logger = logging.getLogger("dearly.audio_cache")

COLLECTION = "audio_cache"


class AudioCache:
    def __init__(self, collection, ttl_days: int = config.AUDIO_CACHE_TTL_DAYS, clock=time.time):
        self.collection = collection
        self.ttl_seconds = ttl_days * 24 * 60 * 60
        self.clock = clock

    def get(self, url: str) -> Optional[Dict[str, Any]]:
        entry = self.collection.find_one({"_id": url})
        if entry is None:
            return None
        if self.clock() - entry.get("timestamp", 0) > self.ttl_seconds:
            logger.info("Audio cache entry expired: %s", url[:50])
            self.collection.delete_one({"_id": url})
            return None
        return entry

    def put(self, url: str, content: bytes, content_type: str) -> None:
        self.collection.replace_one(
            {"_id": url},
            {
                "_id": url,
                "content": content,
                "contentType": content_type,
                "size": len(content),
                "timestamp": self.clock(),
            },
            upsert=True,
        )

    def purge_expired(self) -> int:
        cutoff = self.clock() - self.ttl_seconds
        return self.collection.delete_many({"timestamp": {"$lt": cutoff}}).deleted_count
