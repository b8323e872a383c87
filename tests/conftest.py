"""
Shared fixtures for the tile sync tests.

FakeWebSocket stands in for aiohttp's client websocket: inbound frames are
queued with feed(), outbound frames are recorded.
"""

import asyncio
import json
import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from core.tile_cache import TileCache  # noqa: E402
from network.sync_session import SyncSession  # noqa: E402
from storage.fullsync_lock import FullSyncLock  # noqa: E402
from storage.tile_store import TileStore  # noqa: E402

MAP_ID = "a" * 64


class FakeWebSocket:
    def __init__(self):
        self.sent_text = []
        self.sent_bytes = []
        self.closed = False
        self._inbox = asyncio.Queue()

    def feed(self, payload):
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=text))

    async def send_str(self, text):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent_text.append(text)

    async def send_bytes(self, data):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent_bytes.append(data)

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(None)

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._inbox.get()
        if msg is None:
            raise StopAsyncIteration
        return msg

    @property
    def sent_messages(self):
        return [json.loads(t) for t in self.sent_text]

    def sent_of_type(self, msg_type):
        return [m for m in self.sent_messages if m.get("type") == msg_type]


def fake_http_factory(ws=None, error=None):
    """Returns a session factory whose ws_connect yields ws or raises error."""
    http = MagicMock()
    if error is not None:
        http.ws_connect = AsyncMock(side_effect=error)
    else:
        http.ws_connect = AsyncMock(return_value=ws)
    http.close = AsyncMock()
    return MagicMock(return_value=http), http


async def until(predicate, timeout=2.0):
    """Polls predicate on the loop until it holds or timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def tile_dir(tmp_path):
    path = tmp_path / "map"
    path.mkdir()
    (path / "mt_1_2").write_bytes(b"tile-one")
    (path / "mt_3_4").write_bytes(b"tile-two")
    (path / "readme.txt").write_text("not a tile")
    return path


@pytest.fixture
def make_session(tile_dir, tmp_path):
    """Builds a SyncSession over tile_dir with a mock watcher."""

    def _make(ws=None, error=None, reconnect_delay=5, cache_ttl=60, sample_only=False):
        factory, http = fake_http_factory(ws, error)
        watcher = MagicMock()
        watcher.running = False
        session = SyncSession(
            uplink="ws://map.test:8080",
            map_id=MAP_ID,
            map_name="test-map",
            store=TileStore(str(tile_dir), MAP_ID),
            cache=TileCache(ttl=cache_ttl),
            lock=FullSyncLock(str(tmp_path / "fullSync.lock")),
            watcher=watcher,
            reconnect_delay=reconnect_delay,
            session_factory=factory,
            sample_only=sample_only,
        )
        session.fake_http = http
        return session

    return _make
