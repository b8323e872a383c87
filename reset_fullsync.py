import sys
import os

# Add src to path
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'src'))

from tilesync.config import ConfigError, load_config
from storage.fullsync_lock import FullSyncLock


def reset_fullsync(config_path=None):
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}")
        return False

    lock = FullSyncLock(config.lock_path)
    if lock.release():
        print(f"Removed {lock.path}. The next successful auth runs a full sync.")
        return True
    print(f"No lock file at {lock.path}, nothing to reset.")
    return False


if __name__ == "__main__":
    reset_fullsync(sys.argv[1] if len(sys.argv) > 1 else None)
