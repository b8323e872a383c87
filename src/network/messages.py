import json

from core.tiles import TileInfo

AUTH = "auth"
TILE_INFO = "map.tile.info"
TILE_RESPONSE = "maptileresponse"


class ProtocolError(ValueError):
    pass


def auth_request(map_id: str) -> str:
    return json.dumps({"type": AUTH, "hash": map_id})


def tile_info(tile: TileInfo) -> str:
    return json.dumps({"type": TILE_INFO, "data": tile.to_wire()})


def parse_message(text: str) -> dict:
    """Decodes a text frame from the server."""
    try:
        msg = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"Invalid JSON frame: {e}")
    if not isinstance(msg, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(msg).__name__}")
    return msg
