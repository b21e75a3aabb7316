import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from wagpt.config import AUTH_DIR, logger
from wagpt.events import CredentialsUpdate

CREDS_FILE = "creds.json"
KEYS_DIR = "keys"

AuthState = Dict[str, Any]


class CredentialStoreError(RuntimeError):
    """Raised when the auth directory cannot be read or written."""


def fix_file_name(name: str) -> str:
    """Make a key id safe to use as a file name."""
    return name.replace("/", "__").replace(":", "-")


class MultiFileCredentialStore:
    """
    Keeps WhatsApp session auth state in a directory of JSON files.

    creds.json holds the account credentials; each signal key lives in
    keys/<type>/<id>.json so a single key update only rewrites one file.
    """

    def __init__(self, folder: str = AUTH_DIR):
        self.folder = Path(folder)
        self.creds: Optional[Dict[str, Any]] = None

    def _ensure_folder(self) -> None:
        if self.folder.exists() and not self.folder.is_dir():
            raise CredentialStoreError(
                f"found something that is not a directory at {self.folder}, "
                "either delete it or specify a different location"
            )
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CredentialStoreError(f"cannot create {self.folder}: {e}") from e

    def _read_json(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"cannot read {path}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _key_path(self, key_type: str, key_id: str) -> Path:
        return self.folder / KEYS_DIR / fix_file_name(key_type) / f"{fix_file_name(key_id)}.json"

    def load(self) -> AuthState:
        """
        Load the auth state. creds is None when the session was never paired.
        """
        self._ensure_folder()

        creds_path = self.folder / CREDS_FILE
        self.creds = self._read_json(creds_path) if creds_path.exists() else None

        keys: Dict[str, Dict[str, Any]] = {}
        keys_root = self.folder / KEYS_DIR
        if keys_root.is_dir():
            for type_dir in sorted(keys_root.iterdir()):
                if not type_dir.is_dir():
                    continue
                for key_file in sorted(type_dir.glob("*.json")):
                    entry = self._read_json(key_file)
                    try:
                        key_id, value = entry["id"], entry["value"]
                    except (KeyError, TypeError) as e:
                        raise CredentialStoreError(
                            f"invalid key file {key_file}: missing {e}"
                        ) from e
                    keys.setdefault(type_dir.name, {})[key_id] = value

        logger.info(
            "Loaded auth state from %s (paired=%s, key types=%d)",
            self.folder,
            self.creds is not None,
            len(keys),
        )
        return {"creds": self.creds, "keys": keys}

    def save(self, update: CredentialsUpdate) -> None:
        """
        Persist a credentials update. Creds are merged into what is held;
        a key value of None removes that key.
        """
        try:
            self._ensure_folder()

            if update.creds:
                merged = dict(self.creds or {})
                merged.update(update.creds)
                self._write_json(self.folder / CREDS_FILE, merged)
                self.creds = merged

            for key_type, entries in update.keys.items():
                for key_id, value in entries.items():
                    path = self._key_path(key_type, key_id)
                    if value is None:
                        if path.exists():
                            path.unlink()
                    else:
                        self._write_json(path, {"id": key_id, "value": value})
        except OSError as e:
            raise CredentialStoreError(f"cannot save auth state: {e}") from e
