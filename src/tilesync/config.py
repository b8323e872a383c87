import json
import os
from dataclasses import dataclass, field

from core.debounce import DEBOUNCE_WINDOW
from core.tile_cache import CACHE_TTL
from network.sync_session import RECONNECT_DELAY

# src/tilesync/config.py -> installation root
INSTALL_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DEFAULT_CONFIG_PATH = os.path.join(INSTALL_ROOT, "config", "config.json")


class ConfigError(Exception):
    pass


@dataclass
class AppConfig:
    title: str = "tilesync"


@dataclass
class LogConfig:
    info: bool = True
    debug: bool = False


@dataclass
class MapConfig:
    rawroot: str = ""  # Folder holding the map folders
    id: str = ""  # Map folder name, also the identifier hashed into the map id


@dataclass
class WebsocketConfig:
    uplink: str = ""


@dataclass
class SyncConfig:
    lock_file: str = "fullSync.lock"
    debounce_seconds: float = DEBOUNCE_WINDOW
    cache_ttl: float = CACHE_TTL
    reconnect_delay: float = RECONNECT_DELAY


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    log: LogConfig = field(default_factory=LogConfig)
    map: MapConfig = field(default_factory=MapConfig)
    websocket: WebsocketConfig = field(default_factory=WebsocketConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    root: str = INSTALL_ROOT

    @property
    def tile_dir(self) -> str:
        return os.path.join(self.map.rawroot, self.map.id)

    @property
    def lock_path(self) -> str:
        # Relative lock files live in the installation root, wherever the config file is
        return os.path.join(self.root, self.sync.lock_file)

    def validate(self):
        missing = [name for name, value in (
            ("map.rawroot", self.map.rawroot),
            ("map.id", self.map.id),
            ("websocket.uplink", self.websocket.uplink),
        ) if not value]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")


_SECTIONS = {
    "app": AppConfig,
    "log": LogConfig,
    "map": MapConfig,
    "websocket": WebsocketConfig,
    "sync": SyncConfig,
}


def load_config(path: str = None) -> Config:
    """
    Loads the JSON config file. A missing default file yields defaults so that
    everything can still be given on the command line.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    raw = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Could not read config {config_path}: {e}")
    elif path:
        raise ConfigError(f"Config file {path} not found")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config {config_path} must contain a JSON object")

    sections = {}
    for name, cls in _SECTIONS.items():
        values = raw.get(name) or {}
        try:
            sections[name] = cls(**values)
        except TypeError as e:
            raise ConfigError(f"Invalid section '{name}' in {config_path}: {e}")

    return Config(**sections)


def apply_overrides(config: Config, args) -> Config:
    """Applies command line flags on top of the loaded file."""
    if getattr(args, "uplink", None):
        config.websocket.uplink = args.uplink
    if getattr(args, "map_root", None):
        config.map.rawroot = args.map_root
    if getattr(args, "map_id", None):
        config.map.id = args.map_id
    if getattr(args, "lock_file", None):
        config.sync.lock_file = args.lock_file
    if getattr(args, "debug", False):
        config.log.debug = True
        config.log.info = True
    if getattr(args, "quiet", False):
        config.log.debug = False
        config.log.info = False
    return config
