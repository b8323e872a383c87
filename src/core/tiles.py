from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Tuple

TILE_PREFIX = "mt"


class TileNameError(ValueError):
    pass


def is_tile_file(file_name: str, prefix: str = TILE_PREFIX) -> bool:
    return bool(file_name) and file_name.startswith(prefix)


def parse_coords(file_name: str) -> Tuple[int, int]:
    """
    Extracts grid coordinates from a tile file name like mt_12_-3.
    Parts 2 and 3 of the underscore split are the x and y coordinates.
    """
    parts = file_name.split("_")
    if len(parts) < 3:
        raise TileNameError(f"Tile name {file_name!r} has no coordinates")
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        raise TileNameError(
            f"Tile name {file_name!r} has non-integer coordinates")


def format_timestamp(mtime: float) -> str:
    # Millisecond precision with Z suffix
    dt = datetime.fromtimestamp(mtime, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


@dataclass
class TileInfo:
    map_id: str
    file_name: str
    x: int
    y: int
    content_hash: str
    last_modified_on: float

    def to_wire(self) -> dict:
        return {
            "mapId": self.map_id,
            "fileName": self.file_name,
            "coords": {
                "x": self.x,
                "y": self.y
            },
            "hash": self.content_hash,
            "lastModifiedOn": format_timestamp(self.last_modified_on)
        }
