import argparse
import asyncio
import logging
import os
import sys

from tilesync.config import ConfigError, apply_overrides, load_config
from core.hashing import ContentAddresser
from network.sync_session import AuthenticationRejected
from tilesync.orchestrator import SyncOrchestrator
from storage.fullsync_lock import FullSyncLock
from storage.tile_store import TileStore

logger = logging.getLogger("tilesync")


def setup_logging(config):
    if config.log.debug:
        level = logging.DEBUG
    elif config.log.info:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


async def _run(config, sample_only=False):
    orchestrator = SyncOrchestrator(config, sample_only=sample_only)
    try:
        await orchestrator.run()
    finally:
        await orchestrator.destroy()


def run_agent(config, sample_only=False):
    """Starts the sync agent and blocks until it stops."""
    logger.info(f"Starting {config.app.title}")
    if not os.path.isdir(config.tile_dir):
        logger.error(f"Map folder {config.tile_dir} does not exist")
        sys.exit(1)

    try:
        asyncio.run(_run(config, sample_only=sample_only))
    except AuthenticationRejected:
        # Wrong or unknown map id, retrying cannot succeed
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Agent stopped.")


def show_status(config):
    """Prints what the agent would sync."""
    map_id = ContentAddresser.map_id(config.map.id)
    lock = FullSyncLock(config.lock_path)
    print(f"Map:        {config.map.id}")
    print(f"Map id:     {map_id}")
    print(f"Tile dir:   {config.tile_dir}")
    print(f"Uplink:     {config.websocket.uplink}")
    try:
        tiles = TileStore(config.tile_dir, map_id).list_tiles()
        print(f"Tiles:      {len(tiles)}")
    except OSError as e:
        print(f"Tiles:      unreadable ({e})")
    state = "done" if lock.is_locked() else "pending"
    print(f"Full sync:  {state} ({lock.path})")


def build_parser():
    parser = argparse.ArgumentParser(description="Map tile sync agent")
    parser.add_argument("--config", help="Path to config.json (default: config/config.json)")
    parser.add_argument("--uplink", help="Websocket uplink, e.g. ws://localhost:8080")
    parser.add_argument("--map-root", help="Folder containing the map folders")
    parser.add_argument("--map-id", help="Map folder name")
    parser.add_argument("--lock-file", help="Full sync lock file, relative to the install root")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", action="store_true", help="Only log errors and warnings")

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    subparsers.add_parser("run", help="Sync tiles to the server (default)")
    subparsers.add_parser(
        "sample", help="Announce a single tile after auth instead of the full sync")
    subparsers.add_parser("status", help="Show map id, tile count and full sync state")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
        config.validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    if args.command == "status":
        show_status(config)
    elif args.command == "sample":
        run_agent(config, sample_only=True)
    else:
        run_agent(config)


if __name__ == "__main__":
    main()
