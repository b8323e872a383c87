import asyncio
import enum
import logging
from typing import Callable, Optional

import aiohttp

from core.tile_cache import TileCache
from core.tiles import TileInfo, TileNameError
from network import messages
from network.messages import ProtocolError
from storage.fullsync_lock import FullSyncLock
from storage.tile_store import TileStore

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 5  # seconds

TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"


class AuthenticationRejected(Exception):
    """The server does not know our map id. Retrying cannot help."""


class SyncSession:
    """
    Websocket session with the map server.

    Connects, authenticates with the hashed map id, runs the one-time full sync
    and then forwards single tile announces. Lost connections are retried after
    a fixed delay through a single reconnect slot.
    """

    def __init__(self, uplink: str, map_id: str, map_name: str, store: TileStore,
                 cache: TileCache, lock: FullSyncLock, watcher,
                 reconnect_delay: float = RECONNECT_DELAY,
                 session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
                 sample_only: bool = False):
        self.uplink = uplink
        self.map_id = map_id
        self.map_name = map_name
        self.store = store
        self.cache = cache
        self.lock = lock
        self.watcher = watcher
        self.reconnect_delay = reconnect_delay
        self.session_factory = session_factory
        self.sample_only = sample_only

        self.state = SessionState.DISCONNECTED
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._finished: Optional[asyncio.Future] = None
        self._closed = False

    # --- Lifecycle ---

    def start(self):
        self._loop = asyncio.get_running_loop()
        if self._finished is None:
            self._finished = self._loop.create_future()
        self._connect()

    async def wait_closed(self):
        """Returns after close(); raises AuthenticationRejected if the server refused us."""
        await self._finished

    async def close(self):
        self._closed = True
        self._cancel_reconnect()

        ws = self._ws
        task = self._connect_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()
        if self._http is not None:
            await self._http.close()
            self._http = None

        self.state = SessionState.DISCONNECTED
        if self._finished and not self._finished.done():
            self._finished.set_result(None)

    # --- Connection ---

    def _connect(self):
        self._connect_task = self._loop.create_task(self._run_connection())

    async def _run_connection(self):
        self.state = SessionState.CONNECTING
        logger.info(f"Connecting to map server on {self.uplink}")
        try:
            if self._http is None:
                self._http = self.session_factory()
            self._ws = await self._http.ws_connect(self.uplink)
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Connection to {self.uplink} failed: {e}")
            self._on_disconnect()
            return

        try:
            await self._on_open()
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"Websocket error: {self._ws.exception()}")
                    break
                if self._closed:
                    break
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Connection to map server lost: {e}")
        except Exception:
            logger.exception("Unexpected error in map server session, reconnecting")
        finally:
            ws, self._ws = self._ws, None
            if ws is not None and not ws.closed:
                await ws.close()

        if not self._closed:
            logger.info(
                f"Connection to map server closed, reconnect in {self.reconnect_delay} seconds")
            self._on_disconnect()

    def _on_disconnect(self):
        self.state = SessionState.DISCONNECTED
        if not self._closed:
            self.schedule_reconnect()

    def schedule_reconnect(self):
        """Arms the single reconnect slot, pushing back its deadline if already armed."""
        self._cancel_reconnect()
        self._reconnect_timer = self._loop.call_later(self.reconnect_delay, self._reconnect)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def _reconnect(self):
        self._reconnect_timer = None
        if not self._closed:
            self._connect()

    def _cancel_reconnect(self):
        if self._reconnect_timer:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    async def _on_open(self):
        self.state = SessionState.AWAITING_AUTH
        await self._send_text(messages.auth_request(self.map_id))

    # --- Inbound ---

    async def handle_text(self, text: str):
        try:
            msg = messages.parse_message(text)
        except ProtocolError as e:
            logger.warning(f"Ignoring frame from server: {e}")
            return

        msg_type = msg.get("type")
        if msg_type == messages.AUTH:
            await self._handle_auth(msg)
        elif msg_type == messages.TILE_RESPONSE:
            await self._handle_tile_response(msg)

    async def _handle_auth(self, msg: dict):
        if self.state != SessionState.AWAITING_AUTH:
            logger.debug(f"Unexpected auth reply in state {self.state.value}")
            return

        if not msg.get("ok"):
            logger.error(f"Your map id <{self.map_name}> could not be authenticated")
            self._closed = True
            self.state = SessionState.DISCONNECTED
            self._cancel_reconnect()
            if self._ws is not None:
                await self._ws.close()
            if self._finished and not self._finished.done():
                self._finished.set_exception(AuthenticationRejected(self.map_name))
            return

        self.state = SessionState.AUTHENTICATED
        logger.info("Authenticated with map server")
        if not self.watcher.running:
            self.watcher.start()

        if self.sample_only:
            await self.send_test_sample()
        else:
            await self.full_sync()

    async def _handle_tile_response(self, msg: dict):
        if self.state != SessionState.AUTHENTICATED:
            return

        tile_hash = msg.get("hash")
        if not isinstance(tile_hash, str):
            logger.warning(f"Ignoring tile response with invalid hash {tile_hash!r}")
            return
        logger.debug(f"tile <{tile_hash}> response <{msg.get('ok')}>")
        try:
            data = self.cache.take(tile_hash)
            if msg.get("ok") and data is not None:
                await self._ws.send_bytes(data)
        finally:
            self.cache.delete(tile_hash)

    # --- Outbound ---

    async def _send_text(self, text: str):
        if self._ws is None:
            raise ConnectionResetError("Not connected to map server")
        await self._ws.send_str(text)

    async def _announce(self, tile: TileInfo, data: bytes):
        self.cache.put(tile.content_hash, data)
        await self._send_text(messages.tile_info(tile))

    async def full_sync(self) -> bool:
        """
        Announces every tile once per installation.
        Returns True only when the pass completed and the lock was written.
        """
        if self.lock.is_locked():
            return False

        try:
            tiles = self.store.list_tiles()
            logger.info(f"Found {len(tiles)} map tiles for full sync")
            for file_name in tiles:
                try:
                    tile, data = self.store.read_tile(file_name)
                except TileNameError as e:
                    logger.warning(f"Skipping {file_name}: {e}")
                    continue
                await self._announce(tile, data)
            self.lock.acquire()
        except TRANSPORT_ERRORS as e:
            logger.error(f"Full sync aborted: {e}")
            return False

        logger.info(f"Full sync completed, {len(tiles)} tiles announced")
        return True

    async def announce_tile_change(self, file_name: str):
        """Announces a single tile after its changes settled."""
        if self.state != SessionState.AUTHENTICATED:
            logger.debug(f"Not authenticated, dropping change on {file_name}")
            return

        try:
            tile, data = self.store.read_tile(file_name)
        except (OSError, TileNameError) as e:
            logger.error(f"Could not read changed tile {file_name}: {e}")
            return

        logger.debug(f"tile for {tile.x} {tile.y} changed {tile.content_hash}")
        try:
            await self._announce(tile, data)
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Could not announce {file_name}: {e}")

    async def send_test_sample(self):
        """Announces only the first tile found, to check the server end to end."""
        try:
            tiles = self.store.list_tiles()
            logger.info(f"Found {len(tiles)} map tiles")
            if not tiles:
                return
            tile, data = self.store.read_tile(tiles[0])
            await self._announce(tile, data)
        except (TileNameError, *TRANSPORT_ERRORS) as e:
            logger.error(f"Sample announce failed: {e}")
