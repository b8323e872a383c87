import asyncio
import logging

from tilesync.config import Config
from core.debounce import ChangeDebouncer
from core.hashing import ContentAddresser
from core.tile_cache import TileCache
from network.sync_session import SyncSession
from storage.fullsync_lock import FullSyncLock
from storage.tile_store import TileStore
from storage.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Wires watcher -> debouncer -> session and owns their lifecycle.
    Built once by the entry point and passed to whoever needs it.
    """

    def __init__(self, config: Config, sample_only: bool = False, session_factory=None):
        self.config = config
        self.map_id = ContentAddresser.map_id(config.map.id)

        self.cache = TileCache(ttl=config.sync.cache_ttl)
        self.store = TileStore(config.tile_dir, self.map_id)
        self.lock = FullSyncLock(config.lock_path)
        self.debouncer = ChangeDebouncer(
            self._on_tile_settled, window=config.sync.debounce_seconds)
        self.watcher = DirectoryWatcher(config.tile_dir, self._on_fs_event)

        session_kwargs = {}
        if session_factory is not None:
            session_kwargs["session_factory"] = session_factory
        self.session = SyncSession(
            uplink=config.websocket.uplink,
            map_id=self.map_id,
            map_name=config.map.id,
            store=self.store,
            cache=self.cache,
            lock=self.lock,
            watcher=self.watcher,
            reconnect_delay=config.sync.reconnect_delay,
            sample_only=sample_only,
            **session_kwargs
        )
        self._tasks = set()
        self._destroyed = False

    def start(self):
        logger.info(f"Syncing {self.config.tile_dir} as map {self.map_id[:8]}")
        self.session.start()

    async def run(self):
        """Runs until destroy() or until the server rejects the map id."""
        self.start()
        await self.session.wait_closed()

    def _on_fs_event(self, event_type: str, file_name: str):
        self.debouncer.on_raw_event(file_name, event_type)

    def _on_tile_settled(self, file_name: str):
        task = asyncio.get_running_loop().create_task(
            self.session.announce_tile_change(file_name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def destroy(self):
        if self._destroyed:
            return
        self._destroyed = True

        self.watcher.stop()
        self.debouncer.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.session.close()
        self.cache.clear()
        logger.info("Sync agent stopped")
