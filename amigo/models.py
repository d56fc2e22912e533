from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Literal, Optional, Tuple, Union


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


class Mood(str, Enum):
    # declaration order is the canonical order used to break ties
    HAPPY = "Happy"
    SAD = "Sad"
    ANGRY = "Angry"
    WORRIED = "Worried"
    TIRED = "Tired"


MOOD_ORDER: Dict[Mood, int] = {m: i for i, m in enumerate(Mood)}

MOOD_EMOJIS: Dict[Mood, str] = {
    Mood.HAPPY: "😊",
    Mood.SAD: "😢",
    Mood.ANGRY: "😠",
    Mood.WORRIED: "😟",
    Mood.TIRED: "😴",
}

POINTS_PER_ACTIVITY = 10
MISSION_POINTS = 15
PRACTICE_POINTS = 20

SUPPORTED_LANGUAGES = ("en", "mk", "tr")
LANGUAGE_NAMES = {"en": "English", "mk": "Macedonian", "tr": "Turkish"}

AgeGroup = Literal["7-9", "10-12", "12+"]
BirthInfo = Union[str, int, None]


def _stored_date(payload: dict) -> str:
    value = payload["date"]
    if not isinstance(value, str):
        raise TypeError(f"date must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class MoodEntry:
    moods: Tuple[Mood, ...]
    note: str = ""
    date: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        # a tag set: duplicates collapse, canonical order
        unique = sorted({Mood(m) for m in self.moods}, key=MOOD_ORDER.__getitem__)
        object.__setattr__(self, "moods", tuple(unique))

    def to_dict(self) -> dict:
        return {"moods": [m.value for m in self.moods], "note": self.note, "date": self.date}

    @classmethod
    def from_dict(cls, payload: dict) -> "MoodEntry":
        moods = payload.get("moods")
        if moods is None and "mood" in payload:
            # older records stored a single mood
            moods = [payload["mood"]]
        if not isinstance(moods, list) or not moods:
            raise ValueError("mood entry without moods")
        return cls(moods=tuple(Mood(m) for m in moods), note=str(payload.get("note", "")), date=_stored_date(payload))


@dataclass(frozen=True)
class ReflectionEntry:
    prompt: str
    text: str
    date: str = field(default_factory=utc_now_iso)
    category: str = "general"

    def to_dict(self) -> dict:
        return {"prompt": self.prompt, "text": self.text, "date": self.date, "category": self.category}

    @classmethod
    def from_dict(cls, payload: dict) -> "ReflectionEntry":
        return cls(
            prompt=str(payload["prompt"]),
            text=str(payload["text"]),
            date=_stored_date(payload),
            category=str(payload.get("category", "general")),
        )


@dataclass(frozen=True)
class StoryEntry:
    title: str
    content: Tuple[str, ...]
    date: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {"title": self.title, "content": list(self.content), "date": self.date}

    @classmethod
    def from_dict(cls, payload: dict) -> "StoryEntry":
        content = payload["content"]
        if not isinstance(content, list):
            raise ValueError("story content must be a list of paragraphs")
        return cls(title=str(payload["title"]), content=tuple(str(c) for c in content), date=_stored_date(payload))


JournalEntry = Union[MoodEntry, ReflectionEntry, StoryEntry]


@dataclass(frozen=True)
class Turn:
    role: Literal["ai", "user"]
    text: str


_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def age_from_birth_info(birth_info: BirthInfo, today: Optional[date] = None) -> Optional[int]:
    """Accepts a raw age (``11`` or ``"11"``) or an ISO birth date."""
    if birth_info is None or isinstance(birth_info, bool):
        return None
    if isinstance(birth_info, int):
        return birth_info if birth_info >= 0 else None

    raw = str(birth_info).strip()
    if raw.isdecimal():
        return int(raw)

    m = _ISO_DATE.match(raw)
    if not m:
        return None
    try:
        born = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None

    today = today or date.today()
    years = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    return years if years >= 0 else None


def age_group(age: Optional[int]) -> Optional[AgeGroup]:
    if age is None:
        return None
    if age <= 9:
        return "7-9"
    if age <= 12:
        return "10-12"
    return "12+"


@dataclass(frozen=True)
class Profile:
    user_name: Optional[str] = None
    birth_info: BirthInfo = None
    language: Optional[str] = None
    today: Optional[date] = field(default=None, compare=False, repr=False)

    @property
    def age(self) -> Optional[int]:
        return age_from_birth_info(self.birth_info, today=self.today)

    @property
    def age_group(self) -> Optional[AgeGroup]:
        return age_group(self.age)


def entries_newest_first(*histories: Iterable[JournalEntry]) -> list:
    combined = [e for history in histories for e in history]
    return sorted(combined, key=lambda e: e.date, reverse=True)
