import asyncio
import logging
from typing import Callable, Dict, List, Optional

from core.tiles import TILE_PREFIX, is_tile_file

logger = logging.getLogger(__name__)

DEBOUNCE_WINDOW = 2.0  # quiet period in seconds before a change settles


class ChangeDebouncer:
    """
    Coalesces bursts of raw filesystem events into one settle callback per file.
    A new event for a pending file pushes its deadline back instead of stacking
    a second timer.
    """

    def __init__(self, on_settle: Callable[[str], None], window: float = DEBOUNCE_WINDOW,
                 prefix: str = TILE_PREFIX, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.on_settle = on_settle
        self.window = window
        self.prefix = prefix
        self._loop = loop
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def on_raw_event(self, file_name: str, event_type: str = None):
        if not is_tile_file(file_name, self.prefix):
            return

        timer = self._timers.pop(file_name, None)
        if timer:
            timer.cancel()
        else:
            logger.debug(f"Change on {file_name} ({event_type}), waiting {self.window}s")
        self._timers[file_name] = self._get_loop().call_later(
            self.window, self._fire, file_name)

    def _fire(self, file_name: str):
        self._timers.pop(file_name, None)
        self.on_settle(file_name)

    def pending(self) -> List[str]:
        return list(self._timers)

    def deadline(self, file_name: str) -> Optional[float]:
        """Loop time at which the pending timer for file_name fires."""
        timer = self._timers.get(file_name)
        return timer.when() if timer else None

    def cancel_all(self):
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
