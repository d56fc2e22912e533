from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set

from .errors import TranslationMissing
from .models import SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent / "locales"

LocaleLoader = Callable[[str], Awaitable[Mapping[str, Any]]]


class Lookup(NamedTuple):
    found: bool
    value: Any = None


NOT_FOUND = Lookup(False)


def lookup_path(dictionary: Optional[Mapping[str, Any]], dotted_key: str) -> Lookup:
    current: Any = dictionary
    if current is None:
        return NOT_FOUND
    for part in dotted_key.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return NOT_FOUND
        current = current[part]
    return Lookup(True, current)


_CYRILLIC = re.compile(r"[Ѐ-ӿ]")
_TURKISH = re.compile(r"[ğĞşŞıİ]")


def detect_language(text: str) -> Optional[str]:
    """Best guess from the script of ``text``; ``None`` when nothing stands out."""
    if not text:
        return None
    if _CYRILLIC.search(text):
        return "mk"
    if _TURKISH.search(text):
        return "tr"
    return None


class FileLocaleLoader:
    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else LOCALES_DIR

    async def __call__(self, language: str) -> Mapping[str, Any]:
        return await asyncio.to_thread(self._read, language)

    def _read(self, language: str) -> Mapping[str, Any]:
        path = self.directory / f"{language}.json"
        if not path.exists():
            raise TranslationMissing(f"no dictionary for {language!r} at {path}")
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)


class TranslationResolver:
    """
    Resolves dotted keys ("practice.title") against the active language.

    Lookup order: active language, default language, ``fallback``, the key
    itself. Dictionaries that are not loaded yet count as misses.
    """

    def __init__(
        self,
        loader: Optional[LocaleLoader] = None,
        default_language: str = "en",
        language_source: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.loader = loader or FileLocaleLoader()
        self.default_language = default_language
        self.language_source = language_source
        self._language: Optional[str] = None
        self._dictionaries: Dict[str, Mapping[str, Any]] = {}
        self._loading: Set[str] = set()
        self._failed: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ---- language
    @property
    def language(self) -> str:
        lang = self.language_source() if self.language_source else self._language
        return lang or self.default_language

    def set_language(self, language: Optional[str]) -> None:
        self._language = language

    def is_loaded(self, language: str) -> bool:
        return language in self._dictionaries

    async def activate(self, language: Optional[str] = None) -> bool:
        language = language or self.language
        if language in self._dictionaries:
            self._loading.discard(language)
            return True
        if language not in SUPPORTED_LANGUAGES:
            logger.warning("unsupported language %r", language)
            return False

        self._loading.add(language)
        try:
            dictionary = await self.loader(language)
        except (OSError, ValueError, TranslationMissing) as exc:
            logger.warning("could not load %s dictionary: %s", language, exc)
            self._failed.add(language)
            return False
        finally:
            self._loading.discard(language)

        if not isinstance(dictionary, Mapping):
            logger.warning("%s dictionary is not a mapping, ignoring it", language)
            self._failed.add(language)
            return False
        self._dictionaries[language] = dictionary
        self._failed.discard(language)
        logger.debug("loaded %s dictionary", language)
        return True

    # ---- lookups
    def lookup(self, key: str, language: Optional[str] = None, accept: Optional[Callable[[Any], bool]] = None) -> Lookup:
        """First hit for ``key`` whose value passes ``accept`` (strings by default)."""
        accept = accept or _is_text
        language = language or self.language
        for lang in dict.fromkeys((language, self.default_language)):
            dictionary = self._dictionaries.get(lang)
            if dictionary is None:
                self._schedule_load(lang)
                continue
            hit = lookup_path(dictionary, key)
            if hit.found and accept(hit.value):
                return hit
        return NOT_FOUND

    def resolve(self, key: str, fallback: Optional[str] = None, *, language: Optional[str] = None, **params: Any) -> str:
        hit = self.lookup(key, language)
        if hit.found:
            text = hit.value
        else:
            text = fallback if fallback is not None else key
        return _fill(text, params) if params else text

    def resolve_list(
        self, key: str, fallback: Sequence[str] = (), *, language: Optional[str] = None
    ) -> List[str]:
        """Like ``resolve`` for non-empty string lists such as prompt pools."""
        hit = self.lookup(key, language, accept=_is_text_list)
        return list(hit.value if hit.found else fallback)

    def require(self, key: str, language: Optional[str] = None) -> str:
        hit = self.lookup(key, language)
        if not hit.found:
            raise TranslationMissing(key)
        return hit.value

    def _schedule_load(self, language: str) -> None:
        # failed languages are only retried through an explicit activate()
        if language in self._loading or language in self._failed or language not in SUPPORTED_LANGUAGES:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._loading.add(language)
        task = loop.create_task(self.activate(language))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _is_text(value: Any) -> bool:
    return isinstance(value, str)


def _is_text_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, str) for v in value)


def _fill(text: str, params: Mapping[str, Any]) -> str:
    # "{name}" placeholders only, so stray braces in translations are left alone
    for name, value in params.items():
        text = text.replace("{" + name + "}", str(value))
    return text
