"""
Encryption for secrets kept on disk.

Session blobs are persisted with their bearer token encrypted under a key
derived from the machine identity, so a copied config directory does not
leak a usable token.
"""

from pathlib import Path
from typing import Optional
import base64
import getpass
import logging
import socket

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

SESSION_SALT = b'soundspots-session-salt-v1'
KDF_ITERATIONS = 100000
MACHINE_ID_PATHS = ('/etc/machine-id', '/var/lib/dbus/machine-id')


def derive_key(secret: str, salt: bytes = SESSION_SALT) -> bytes:
    """PBKDF2-SHA256 of `secret`, encoded as a Fernet key."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS)
    return base64.urlsafe_b64encode(kdf.derive(secret.encode('utf-8')))


def _machine_identity() -> str:
    for candidate in MACHINE_ID_PATHS:
        try:
            value = Path(candidate).read_text().strip()
        except OSError:
            continue
        if value:
            return value
    return socket.gethostname() or 'unknown-host'


def machine_key() -> bytes:
    """Key bound to this machine and the current OS user."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = 'unknown-user'
    return derive_key(f"{_machine_identity()}:{user}")


class TokenCipher:
    """Fernet wrapper for bearer tokens stored inside session blobs."""

    def __init__(self, key: Optional[bytes] = None):
        self._fernet = Fernet(key or machine_key())

    def seal(self, token: str) -> str:
        return self._fernet.encrypt(token.encode('utf-8')).decode('ascii')

    def open(self, sealed: str) -> Optional[str]:
        """
        Recover a token sealed by `seal`.

        Returns:
            None when the data was sealed under another key or is corrupt
        """
        try:
            return self._fernet.decrypt(sealed.encode('ascii')).decode('utf-8')
        except (InvalidToken, ValueError) as e:
            logger.warning("Could not decrypt stored token: %s", e.__class__.__name__)
            return None
