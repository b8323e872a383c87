import os
from typing import List, Tuple

from core.hashing import ContentAddresser
from core.tiles import TILE_PREFIX, TileInfo, is_tile_file, parse_coords


class TileStore:
    def __init__(self, tile_dir: str, map_id: str, prefix: str = TILE_PREFIX):
        self.tile_dir = tile_dir
        self.map_id = map_id
        self.prefix = prefix

    def list_tiles(self) -> List[str]:
        """Tile file names in directory order."""
        return [f for f in os.listdir(self.tile_dir) if is_tile_file(f, self.prefix)]

    def read_tile(self, file_name: str) -> Tuple[TileInfo, bytes]:
        """Reads a tile from disk and hashes its current content."""
        x, y = parse_coords(file_name)
        path = os.path.join(self.tile_dir, file_name)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Tile {file_name} not found in {self.tile_dir}")

        with open(path, 'rb') as f:
            data = f.read()
        stats = os.stat(path)

        info = TileInfo(
            map_id=self.map_id,
            file_name=file_name,
            x=x,
            y=y,
            content_hash=ContentAddresser.hash(data),
            last_modified_on=stats.st_mtime
        )
        return info, data
