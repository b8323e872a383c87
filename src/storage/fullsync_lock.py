import os


class FullSyncLock:
    """
    Presence-only marker meaning a full sync finished once for this installation.
    Nothing in the agent removes it; see reset_fullsync.py.
    """

    def __init__(self, path: str):
        self.path = path

    def is_locked(self) -> bool:
        return os.path.exists(self.path)

    def acquire(self):
        with open(self.path, 'w') as f:
            f.write("true")

    def release(self) -> bool:
        if not os.path.exists(self.path):
            return False
        os.remove(self.path)
        return True
