"""CredentialStore — encrypted token storage bound to a server URL."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from transync.auth.device_flow import Credentials
from transync.config import CREDENTIALS_FILE, STATE_DIR

logger = logging.getLogger(__name__)

_KEY_FILE = "credentials.key"


def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/").lower()


class CredentialStore:
    """Persist the device-flow token encrypted with Fernet.

    The token is only handed back for the server it was issued to; after
    pointing the client at another server the user has to log in again.

    Parameters
    ----------
    root:
        Directory holding the ``.transync`` folder.
    key:
        Explicit Fernet key.  Generated and kept next to the credentials
        file when omitted.
    """

    def __init__(self, root: str | Path, key: bytes | None = None) -> None:
        self._dir = Path(root) / STATE_DIR
        self.path = self._dir / CREDENTIALS_FILE
        self._key_path = self._dir / _KEY_FILE
        self._key = key

    def save(self, credentials: Credentials, server_url: str) -> None:
        """Encrypt and write *credentials* for *server_url*."""
        fernet = Fernet(self._load_or_create_key())
        payload = {
            "server": _normalize_url(server_url),
            "username": credentials.username,
            "token": fernet.encrypt(credentials.token.encode("utf-8")).decode("ascii"),
        }
        self._dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("Saved credentials for %s", credentials.username or "<unknown>")

    def load(self, server_url: str) -> Credentials | None:
        """Return the stored credentials if they were issued by *server_url*."""
        data = self._read()
        if not data or not data.get("token"):
            return None
        if data.get("server") != _normalize_url(server_url):
            logger.info("Stored token belongs to %s, ignoring", data.get("server"))
            return None

        key = self._key or self._read_key()
        if key is None:
            return None
        try:
            token = Fernet(key).decrypt(data["token"].encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError):
            logger.warning("Stored token could not be decrypted, ignoring")
            return None
        return Credentials(username=data.get("username", ""), token=token)

    def clear(self) -> None:
        """Forget the stored token (logout)."""
        if self.path.is_file():
            self.path.unlink()
            logger.info("Cleared stored credentials")

    # -- Internals ------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.debug("Unreadable credentials file %s", self.path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def _read_key(self) -> bytes | None:
        if not self._key_path.is_file():
            return None
        return self._key_path.read_bytes().strip()

    def _load_or_create_key(self) -> bytes:
        if self._key is not None:
            return self._key
        key = self._read_key()
        if key is None:
            key = Fernet.generate_key()
            self._dir.mkdir(parents=True, exist_ok=True)
            self._key_path.write_bytes(key)
        self._key = key
        return key
