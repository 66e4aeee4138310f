"""
Encrypted, best-effort local persistence.

Each SecureStore is one Fernet-encrypted JSON blob on disk. Writes never
raise: save() and delete() return False when durability is degraded so
callers can surface a warning, and load() returns None on any failure.
"""

import json
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .config import log


def _load_or_create_key(key_file):
    key_file = Path(key_file)
    if key_file.exists():
        return key_file.read_bytes().strip()
    key_file.parent.mkdir(parents=True, exist_ok=True)
    key = Fernet.generate_key()
    key_file.write_bytes(key)
    try:
        os.chmod(key_file, 0o600)
    except OSError:
        pass
    return key


class SecureStore:
    """A single encrypted JSON document at `path`, keyed by `key_file`."""

    def __init__(self, path, key_file):
        self.path = Path(path)
        self.key_file = Path(key_file)
        self._fernet = None

    def _cipher(self):
        if self._fernet is None:
            self._fernet = Fernet(_load_or_create_key(self.key_file))
        return self._fernet

    def save(self, document) -> bool:
        try:
            token = self._cipher().encrypt(json.dumps(document).encode("utf-8"))
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_bytes(token)
            os.replace(tmp, self.path)
            return True
        except (OSError, ValueError, TypeError) as e:
            log.warning("Could not persist %s: %s", self.path.name, e)
            return False

    def load(self):
        if not self.path.exists():
            return None
        try:
            raw = self._cipher().decrypt(self.path.read_bytes())
            return json.loads(raw.decode("utf-8"))
        except InvalidToken:
            log.warning("Stored %s could not be decrypted, ignoring it", self.path.name)
        except (OSError, ValueError) as e:
            log.warning("Could not read %s: %s", self.path.name, e)
        return None

    def delete(self) -> bool:
        try:
            self.path.unlink(missing_ok=True)
            return True
        except OSError as e:
            log.warning("Could not delete %s: %s", self.path.name, e)
            return False
