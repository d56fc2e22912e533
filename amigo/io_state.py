import logging
from pathlib import Path
from typing import Dict, Optional

from .errors import MalformedStoredData, PersistenceUnavailable

logger = logging.getLogger(__name__)


class DurableMedium:
    """Best-effort string key/value storage the profile store writes through."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryMedium(DurableMedium):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def clear(self) -> None:
        self.data.clear()


class JsonFileMedium(DurableMedium):
    """One ``<key>.json`` file per key under ``root_dir``."""

    def __init__(self, root_dir):
        self.root = Path(root_dir).expanduser()

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedStoredData(key, f"{path} is not UTF-8 text") from exc
        except OSError as exc:
            raise PersistenceUnavailable(f"cannot read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(value)
            tmp.replace(path)
        except OSError as exc:
            raise PersistenceUnavailable(f"cannot write {path}: {exc}") from exc

    def clear(self) -> None:
        if not self.root.exists():
            return
        try:
            for pattern in ("*.json", "*.json.tmp"):
                for p in self.root.glob(pattern):
                    p.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceUnavailable(f"cannot clear {self.root}: {exc}") from exc
        logger.debug("cleared %s", self.root)
