from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

log = logging.getLogger(__name__)


# =========================================================
# KEYS
# =========================================================

def streak_key(player_id: str) -> str:
    return f"streak:{player_id}"


def clues_key(day_key: str) -> str:
    return f"clues:{day_key}"


def clue_authors_key(day_key: str) -> str:
    return f"clues:{day_key}:authors"


# =========================================================
# PORT
# =========================================================

class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def keys(self) -> List[str]:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store. Values are JSON round-tripped like the file store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def keys(self) -> List[str]:
        return list(self._data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    Whole-document JSON store on disk.

    Guarantees:
      - Atomic writes (tmp file + replace)
      - Corrupt files are moved aside and treated as empty
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    # -----------------------------------------------------
    # Atomic helpers
    # -----------------------------------------------------

    def _atomic_write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp.replace(self.path)

    def _backup_corrupt(self) -> None:
        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        backup = self.path.with_suffix(self.path.suffix + f".corrupt-{ts}.bak")
        self.path.rename(backup)
        log.warning("Corrupt store %s moved to %s", self.path, backup)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            self._backup_corrupt()
            return {}

        return data if isinstance(data, dict) else {}

    # -----------------------------------------------------
    # Public API
    # -----------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._atomic_write(data)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._atomic_write(data)
