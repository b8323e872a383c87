import asyncio
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

CACHE_TTL = 60  # seconds a tile stays available for a server pull


class TileCache:
    """
    Short-lived map of content hash -> raw tile bytes.
    Entries live until the server consumes them or the TTL expires.
    Must only be touched from the event loop thread.
    """

    def __init__(self, ttl: float = CACHE_TTL, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.ttl = ttl
        self._loop = loop
        self._entries: Dict[str, bytes] = {}
        self._evictions: Dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def put(self, content_hash: str, data: bytes):
        """Stores data and (re)starts its eviction timer."""
        self._entries[content_hash] = data
        timer = self._evictions.pop(content_hash, None)
        if timer:
            timer.cancel()
        self._evictions[content_hash] = self._get_loop().call_later(
            self.ttl, self._expire, content_hash)

    def take(self, content_hash: str) -> Optional[bytes]:
        """Returns cached bytes without removing them."""
        return self._entries.get(content_hash)

    def delete(self, content_hash: str):
        self._entries.pop(content_hash, None)
        timer = self._evictions.pop(content_hash, None)
        if timer:
            timer.cancel()

    def clear(self):
        for timer in self._evictions.values():
            timer.cancel()
        self._evictions.clear()
        self._entries.clear()

    def _expire(self, content_hash: str):
        self._evictions.pop(content_hash, None)
        if self._entries.pop(content_hash, None) is not None:
            logger.debug(f"Tile {content_hash[:8]} expired from cache")

    def __contains__(self, content_hash: str) -> bool:
        return content_hash in self._entries

    def __len__(self) -> int:
        return len(self._entries)
