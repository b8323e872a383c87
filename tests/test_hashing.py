import hashlib

from core.hashing import ContentAddresser


def test_hash_is_sha256_hex():
    assert ContentAddresser.hash(b"tile") == hashlib.sha256(b"tile").hexdigest()


def test_hash_is_stable_across_calls():
    data = bytes(range(256)) * 4
    assert ContentAddresser.hash(data) == ContentAddresser.hash(data)


def test_distinct_content_gives_distinct_hashes():
    assert ContentAddresser.hash(b"tile-one") != ContentAddresser.hash(b"tile-two")


def test_map_id_hides_configured_name():
    name = "0-0-0-0-4255_-1110502957_MyWorld-1339424556"
    map_id = ContentAddresser.map_id(name)
    assert map_id == hashlib.sha256(name.encode("utf-8")).hexdigest()
    assert name not in map_id
    assert len(map_id) == 64
