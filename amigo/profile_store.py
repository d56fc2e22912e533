import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set

from .errors import MalformedStoredData, PersistenceUnavailable
from .io_state import DurableMedium
from .ledger import ProgressLedger
from .models import (
    SUPPORTED_LANGUAGES,
    JournalEntry,
    MoodEntry,
    Profile,
    ReflectionEntry,
    StoryEntry,
    entries_newest_first,
)

logger = logging.getLogger(__name__)

MISSION_TASK = "daily-mission"

Observer = Callable[[str], None]


@dataclass(frozen=True)
class StoreKey:
    name: str
    default: Callable[[], Any]
    parse: Callable[[Any], Any]  # decoded JSON -> value, raises ValueError/TypeError/KeyError
    dump: Callable[[Any], Any]  # value -> JSON-able


# ---- per-key parsers

def _optional_str(raw: Any) -> Optional[str]:
    if raw is not None and not isinstance(raw, str):
        raise TypeError(f"expected string or null, got {type(raw).__name__}")
    return raw


def _birth_info(raw: Any):
    if raw is None or isinstance(raw, str):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    raise TypeError(f"expected age or date, got {type(raw).__name__}")


def _language(raw: Any) -> Optional[str]:
    if raw is not None and raw not in SUPPORTED_LANGUAGES:
        raise ValueError(f"unsupported language {raw!r}")
    return raw


def _active_tasks(raw: Any) -> Dict[str, Optional[str]]:
    if not isinstance(raw, dict):
        raise TypeError("active tasks must be an object")
    tasks = {MISSION_TASK: None}
    for k, v in raw.items():
        tasks[str(k)] = _optional_str(v)
    return tasks


def _progress(raw: Any) -> Dict[str, int]:
    if not isinstance(raw, dict):
        raise TypeError("progress must be an object")
    out = {}
    for k, v in raw.items():
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise ValueError(f"bad counter {k}={v!r}")
        out[str(k)] = v
    return out


def _history(entry_cls):
    def parse(raw: Any):
        if not isinstance(raw, list):
            raise TypeError("history must be a list")
        for item in raw:
            if not isinstance(item, dict):
                raise TypeError(f"history entry must be an object, got {type(item).__name__}")
        return tuple(entry_cls.from_dict(item) for item in raw)
    return parse


def _dump_history(entries) -> List[dict]:
    return [e.to_dict() for e in entries]


def _identity(value: Any) -> Any:
    return value


KEYS: Dict[str, StoreKey] = {
    k.name: k
    for k in (
        StoreKey("userName", lambda: None, _optional_str, _identity),
        StoreKey("birthInfo", lambda: None, _birth_info, _identity),
        StoreKey("language", lambda: None, _language, _identity),
        StoreKey("activeTasks", lambda: {MISSION_TASK: None}, _active_tasks, dict),
        StoreKey("moodHistory", tuple, _history(MoodEntry), _dump_history),
        StoreKey("reflections", tuple, _history(ReflectionEntry), _dump_history),
        StoreKey("stories", tuple, _history(StoryEntry), _dump_history),
        StoreKey("progress", dict, _progress, dict),
    )
}


class ProfileStore:
    """
    Single source of truth for durable data.

    Reads are served from an in-memory snapshot. Writes update the snapshot
    synchronously and are persisted to the medium on the next event-loop
    iteration (or immediately when no loop is running). A medium failure puts
    that key into memory-only mode; nothing here raises on storage trouble.
    """

    def __init__(self, medium: DurableMedium):
        self.medium = medium
        self._snapshot: Dict[str, Any] = {name: spec.default() for name, spec in KEYS.items()}
        self._raw: Dict[str, str] = {}
        self._pending: Set[str] = set()
        self._degraded: Set[str] = set()
        self._observers: List[Observer] = []
        self.malformed_keys: Set[str] = set()
        self.ledger = ProgressLedger(on_change=self._ledger_changed)

    # ---- lifecycle
    def initialize(self) -> None:
        self.malformed_keys.clear()
        for name, spec in KEYS.items():
            try:
                raw = self.medium.get(name)
            except PersistenceUnavailable as exc:
                logger.warning("storage unavailable for %s, using memory only: %s", name, exc)
                self._degraded.add(name)
                self._snapshot[name] = spec.default()
                continue
            except MalformedStoredData as exc:
                logger.warning("unreadable stored value reset to default: %s", exc)
                self.malformed_keys.add(name)
                self._snapshot[name] = spec.default()
                continue

            if raw is None:
                self._snapshot[name] = spec.default()
                continue

            try:
                self._snapshot[name] = self._parse(spec, raw)
            except MalformedStoredData as exc:
                logger.warning("malformed stored value reset to default: %s", exc)
                self.malformed_keys.add(name)
                self._snapshot[name] = spec.default()

        self.ledger.load(self._snapshot["progress"])
        logger.debug("profile store initialized (malformed=%s)", sorted(self.malformed_keys))

    def reset_all(self) -> None:
        self._pending.clear()
        self._raw.clear()
        self._snapshot = {name: spec.default() for name, spec in KEYS.items()}
        self.ledger.reset_all(notify=False)
        try:
            self.medium.clear()
        except PersistenceUnavailable as exc:
            logger.warning("could not clear storage: %s", exc)
            self._degraded.update(KEYS)
        else:
            self._degraded.clear()
        self.malformed_keys.clear()
        for name in KEYS:
            self._notify(name)

    # ---- read / write
    def read(self, key: str) -> Any:
        return self._snapshot[self._spec(key).name]

    def write(self, key: str, value: Any) -> None:
        spec = self._spec(key)
        raw = json.dumps(spec.dump(value), ensure_ascii=False)
        self._snapshot[key] = value
        self._raw[key] = raw
        if key == "progress":
            self.ledger.load(value)
        self._notify(key)
        self._schedule_persist(key)

    def flush(self) -> None:
        for key in sorted(self._pending):
            self._persist(key)

    @property
    def persistence_degraded(self) -> bool:
        return bool(self._degraded)

    def is_degraded(self, key: str) -> bool:
        return key in self._degraded

    # ---- observers
    def subscribe(self, callback: Observer) -> Callable[[], None]:
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    # ---- derived views and helpers used by the screens
    def profile(self, today: Optional[date] = None) -> Profile:
        return Profile(
            user_name=self.read("userName"),
            birth_info=self.read("birthInfo"),
            language=self.read("language"),
            today=today,
        )

    def active_task(self, category: str = MISSION_TASK) -> Optional[str]:
        return self.read("activeTasks").get(category)

    def set_active_task(self, category: str, value: Optional[str]) -> None:
        tasks = dict(self.read("activeTasks"))
        tasks[category] = value
        self.write("activeTasks", tasks)

    def add_mood(self, entry: MoodEntry) -> None:
        self._prepend("moodHistory", entry)

    def add_reflection(self, entry: ReflectionEntry) -> None:
        self._prepend("reflections", entry)

    def add_story(self, entry: StoryEntry) -> None:
        self._prepend("stories", entry)

    def journal(self) -> List[JournalEntry]:
        return entries_newest_first(self.read("moodHistory"), self.read("reflections"), self.read("stories"))

    # ---- internals
    def _prepend(self, key: str, entry) -> None:
        self.write(key, (entry,) + tuple(self.read(key)))

    def _spec(self, key: str) -> StoreKey:
        try:
            return KEYS[key]
        except KeyError:
            raise KeyError(f"unknown store key {key!r}") from None

    def _parse(self, spec: StoreKey, raw: str) -> Any:
        try:
            return spec.parse(json.loads(raw))
        except (ValueError, TypeError, KeyError) as exc:
            # json.JSONDecodeError is a ValueError
            raise MalformedStoredData(spec.name, str(exc)) from exc

    def _ledger_changed(self, ledger: ProgressLedger) -> None:
        self.write("progress", ledger.snapshot())

    def _schedule_persist(self, key: str) -> None:
        if key in self._degraded:
            return
        self._pending.add(key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._persist(key)
            return
        loop.call_soon(self._persist, key)

    def _persist(self, key: str) -> None:
        if key not in self._pending:
            # already flushed, or dropped by reset_all
            return
        self._pending.discard(key)
        if key in self._degraded:
            return
        try:
            self.medium.set(key, self._raw[key])
        except PersistenceUnavailable as exc:
            logger.warning("persistence degraded for %s, keeping it in memory: %s", key, exc)
            self._degraded.add(key)

    def _notify(self, key: str) -> None:
        for callback in list(self._observers):
            try:
                callback(key)
            except Exception:
                logger.exception("store observer failed for %s", key)
