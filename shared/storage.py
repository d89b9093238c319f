"""
Key-value persistence for session blobs.

Each key is stored as its own JSON file in the config directory. The token
field of a blob is encrypted at rest; everything else is plain JSON so the
file stays inspectable.
"""

from pathlib import Path
from typing import Any, Dict, Optional
import copy
import json
import logging
import threading

from shared.crypto import TokenCipher

logger = logging.getLogger(__name__)

STORAGE_VERSION = "1.0"
_SECRET_FIELD = "token"


class MemoryStorage:
    """In-memory storage with the same interface as SessionStorage."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            blob = self._data.get(key)
            return copy.deepcopy(blob) if blob is not None else None

    def set(self, key: str, blob: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(blob)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SessionStorage:
    """
    File-backed storage of opaque session blobs.

    Writes are last-writer-wins; unreadable or tampered files read as missing.
    """

    def __init__(self, directory: Path, key: Optional[bytes] = None):
        self._dir = Path(directory).expanduser()
        self._cipher = TokenCipher(key)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Load a blob, or None when absent, corrupt or not decryptable."""
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Could not read %s: %s", path, e)
                return None

        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            logger.warning("Invalid session file format at %s, ignoring", path)
            return None

        blob = data["data"]
        if data.get("encrypted") and blob.get(_SECRET_FIELD):
            token = self._cipher.open(blob[_SECRET_FIELD])
            if token is None:
                logger.warning("Stored session under '%s' could not be decrypted, ignoring", key)
                return None
            blob[_SECRET_FIELD] = token
        return blob

    def set(self, key: str, blob: Dict[str, Any]) -> None:
        stored = dict(blob)
        encrypted = False
        if stored.get(_SECRET_FIELD):
            stored[_SECRET_FIELD] = self._cipher.seal(stored[_SECRET_FIELD])
            encrypted = True

        payload = {"version": STORAGE_VERSION, "encrypted": encrypted, "data": stored}
        path = self._path(key)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.debug("Persisted session blob '%s'", key)

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
