import asyncio
import logging
import os
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class _ForwardingHandler(FileSystemEventHandler):
    """Runs on the observer thread; hands every file event to the event loop."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in ("created", "modified", "moved"):
            return
        path = event.dest_path if event.event_type == "moved" else event.src_path
        self.watcher.dispatch(event.event_type, os.path.basename(os.fsdecode(path)))


class DirectoryWatcher:
    """
    Non-recursive watch on the tile directory.
    Callbacks are delivered on the loop thread as (event_type, file_name).
    """

    def __init__(self, path: str, on_event: Callable[[str, str], None],
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.path = path
        self.on_event = on_event
        self._loop = loop
        self.observer = None

    @property
    def running(self) -> bool:
        return self.observer is not None

    def start(self):
        if self.observer:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        observer = Observer()
        observer.schedule(_ForwardingHandler(self), self.path, recursive=False)
        observer.start()
        self.observer = observer
        logger.info(f"Watching {self.path} for tile changes")

    def dispatch(self, event_type: str, file_name: str):
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._deliver, event_type, file_name)

    def _deliver(self, event_type: str, file_name: str):
        # Events racing with stop() are dropped
        if self.observer:
            self.on_event(event_type, file_name)

    def stop(self):
        if not self.observer:
            return
        observer, self.observer = self.observer, None
        observer.stop()
        observer.join()
        logger.info(f"Stopped watching {self.path}")
