"""
Administrator / user key material.

Keys are single-line text files in the data root:

    administrator.key       the administrator secret (last non-empty line wins)
    user.key                the user secret, optional
    administrator.activated empty marker: the administrator key has been used

A missing key means "no restriction" for that role. When no administrator key
exists at startup one is generated and persisted, and the first-run alert is
armed until a request resolves as administrator.

Key-file I/O failures are logged and leave the in-memory state as it was.
"""

import hashlib
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

ADMINISTRATOR_KEY_FILE = "administrator.key"
ADMINISTRATOR_ACTIVATED_FILE = "administrator.activated"
USER_KEY_FILE = "user.key"

ROLE_ADMIN = "admin"
ROLE_USER = "user"


def generate_key(clock: Callable[[], int] = time.time_ns) -> str:
    """Hex MD5 of a high-resolution timestamp, or the raw hex timestamp when
    MD5 is unavailable (e.g. FIPS-restricted OpenSSL builds)."""
    stamp = format(clock(), "x")
    try:
        digest = hashlib.md5(stamp.encode("ascii"))
    except (ValueError, AttributeError):
        logger.warning("MD5 unavailable, using the raw timestamp as administrator key")
        return stamp
    return digest.hexdigest()


def _read_last_line(path: Path) -> Optional[str]:
    lines = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
    lines = [line for line in lines if line]
    return lines[-1] if lines else None


class KeyStore:
    """
    Process-wide key state.

    Written only at startup and by ``rotate_administrator_key``; the single
    runtime flip is ``activate``, which is idempotent and safe to race.
    """

    def __init__(self, data_root: Path) -> None:
        self.data_root = data_root
        self.administrator_key: Optional[str] = None
        self.user_key: Optional[str] = None
        self._alert = False
        self._lock = threading.Lock()

    @property
    def administrator_key_path(self) -> Path:
        return self.data_root / ADMINISTRATOR_KEY_FILE

    @property
    def activated_path(self) -> Path:
        return self.data_root / ADMINISTRATOR_ACTIVATED_FILE

    @property
    def user_key_path(self) -> Path:
        return self.data_root / USER_KEY_FILE

    @classmethod
    def load(cls, data_root: Path) -> "KeyStore":
        """Read keys from ``data_root``, generating an administrator key if none exists."""
        store = cls(data_root)
        store.read()
        if store.administrator_key is None:
            store.create_administrator_key()
        return store

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def read(self) -> None:
        try:
            if self.administrator_key_path.exists():
                key = _read_last_line(self.administrator_key_path)
                if key is not None:
                    self.administrator_key = key
                    self._alert = not self.activated_path.exists()
        except OSError as e:
            logger.error(f"Could not read administrator key: {e}")

        try:
            if self.user_key_path.exists():
                key = _read_last_line(self.user_key_path)
                if key is not None:
                    self.user_key = key
        except OSError as e:
            logger.error(f"Could not read user key: {e}")

        logger.info(
            f"Keys loaded from {self.data_root}: "
            f"administrator={'yes' if self.administrator_key else 'no'}, "
            f"user={'yes' if self.user_key else 'no'}"
        )

    def _write_administrator_key(self, key: str) -> bool:
        try:
            self.administrator_key_path.write_text(key + "\n", encoding="utf-8")
            self.activated_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not write administrator key: {e}")
            return False
        return True

    def create_administrator_key(self) -> str:
        """Generate, persist and arm the first-run alert.

        The generated key is kept even when it cannot be persisted: the
        administrator key is never left unset after startup.
        """
        key = generate_key()
        with self._lock:
            self.administrator_key = key
            self._alert = True
        self._write_administrator_key(key)
        logger.info(f"Created administrator key: '{key}'.")
        return key

    def rotate_administrator_key(self) -> Optional[str]:
        """Replace the administrator key. Returns the new key, or None (old key kept)
        when it could not be written."""
        key = generate_key()
        if not self._write_administrator_key(key):
            return None
        with self._lock:
            self.administrator_key = key
            self._alert = True
        logger.info("Administrator key rotated; first-run alert re-armed.")
        return key

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_administrator(self, key: Optional[str]) -> bool:
        return self.administrator_key is None or self.administrator_key == key

    def is_user(self, key: Optional[str]) -> bool:
        return self.user_key is None or self.user_key == key

    def role(self, key: Optional[str]) -> str:
        return ROLE_ADMIN if self.is_administrator(key) else ROLE_USER

    # ------------------------------------------------------------------
    # First-run alert
    # ------------------------------------------------------------------

    @property
    def alert_armed(self) -> bool:
        return self._alert

    def activate(self, key: Optional[str]) -> bool:
        """Disarm the first-run alert if ``key`` is the administrator key.

        Returns True only for the call that actually disarmed it.
        """
        if not self._alert or not self.is_administrator(key):
            return False
        with self._lock:
            if not self._alert:
                return False
            self._alert = False
        try:
            self.activated_path.touch(exist_ok=True)
        except OSError as e:
            logger.error(f"Can't create file '{self.activated_path}': {e}")
        logger.info("Administrator key activated.")
        return True
