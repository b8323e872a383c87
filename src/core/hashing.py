import hashlib


class ContentAddresser:
    """Derives stable content identifiers."""

    @staticmethod
    def hash(data: bytes) -> str:
        """Returns the SHA-256 hex digest of data."""
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def map_id(identifier: str) -> str:
        """Hashes the configured map identifier so the raw name never goes on the wire."""
        return hashlib.sha256(identifier.encode('utf-8')).hexdigest()
