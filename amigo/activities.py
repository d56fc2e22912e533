from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from .errors import GenerationRequestFailed
from .i18n import TranslationResolver
from .llm import GenerationRequest, LLMClient
from .models import MISSION_POINTS, POINTS_PER_ACTIVITY, Mood, MoodEntry, Profile, ReflectionEntry
from .profile_store import MISSION_TASK, ProfileStore
from .prompting import PromptBuilder

logger = logging.getLogger(__name__)

MISSION_THEMES = (
    "greeting someone",
    "eye contact",
    "helping",
    "sharing a smile",
    "joining a group",
    "giving a compliment",
)

DEFAULT_REFLECTION_PROMPT = "What was the best part of your day?"


class MissionBoard:
    """Daily hero missions; a pending mission survives reloads until completed."""

    def __init__(
        self,
        store: ProfileStore,
        llm: LLMClient,
        translator: TranslationResolver,
        prompts: Optional[PromptBuilder] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.llm = llm
        self.translator = translator
        self.prompts = prompts or PromptBuilder()
        self.rng = rng or random.Random()

    async def current(self, force_refresh: bool = False) -> str:
        pending = self.store.active_task(MISSION_TASK)
        if pending and not force_refresh:
            return pending

        profile = self.store.profile()
        language = profile.language or self.translator.default_language
        theme = self.rng.choice(MISSION_THEMES)
        request = GenerationRequest(
            system_instruction="You create tiny, safe social missions for children.",
            new_message=self.prompts.mission(profile, language, theme),
            temperature=1.0,
        )
        try:
            result = await self.llm.generate(request)
            mission = result.text.strip()
        except GenerationRequestFailed as exc:
            logger.warning("mission generation failed: %s", exc)
            mission = ""
        if not mission:
            mission = self.translator.resolve("missions.fallback", "Give someone a high-five today!", language=language)

        self.store.set_active_task(MISSION_TASK, mission)
        return mission

    def complete(self) -> int:
        if not self.store.active_task(MISSION_TASK):
            return 0
        credited = self.store.ledger.add("missions", MISSION_POINTS)
        self.store.set_active_task(MISSION_TASK, None)
        return credited


async def calm_thought(
    llm: LLMClient,
    translator: TranslationResolver,
    profile: Profile,
    prompts: Optional[PromptBuilder] = None,
) -> str:
    prompts = prompts or PromptBuilder()
    language = profile.language or translator.default_language
    request = GenerationRequest(
        system_instruction="You write short calming sentences for children.",
        new_message=prompts.calm_thought(profile, language),
        temperature=0.7,
    )
    try:
        text = (await llm.generate(request)).text.strip()
    except GenerationRequestFailed as exc:
        logger.warning("calm thought generation failed: %s", exc)
        text = ""
    return text or translator.resolve("chill.fallback_thought", "Focus on the present moment.", language=language)


def log_mood(store: ProfileStore, moods: Iterable[Mood], note: str = "") -> Optional[MoodEntry]:
    moods = tuple(moods)
    if not moods:
        return None
    entry = MoodEntry(moods=moods, note=note.strip())
    store.add_mood(entry)
    store.ledger.add("mood-check", POINTS_PER_ACTIVITY)
    return entry


async def buddy_support(
    llm: LLMClient,
    translator: TranslationResolver,
    profile: Profile,
    entry: MoodEntry,
    prompts: Optional[PromptBuilder] = None,
) -> str:
    prompts = prompts or PromptBuilder()
    language = profile.language or translator.default_language
    request = GenerationRequest(
        system_instruction="You are Buddy, a warm and supportive friend.",
        new_message=prompts.buddy_support(profile, language, [m.value for m in entry.moods], entry.note),
    )
    try:
        text = (await llm.generate(request)).text.strip()
    except GenerationRequestFailed as exc:
        logger.warning("buddy support generation failed: %s", exc)
        text = ""
    return text or translator.resolve(
        "mood_check_screen.buddy_fallback",
        "Thank you for telling me how you feel. Checking in with yourself takes courage.",
        language=language,
    )


def reflection_prompt(
    translator: TranslationResolver,
    rng: Optional[random.Random] = None,
    language: Optional[str] = None,
) -> str:
    prompts = translator.resolve_list("reflections_screen.prompts", (DEFAULT_REFLECTION_PROMPT,), language=language)
    return (rng or random).choice(prompts)


def save_reflection(store: ProfileStore, prompt: str, text: str) -> Optional[ReflectionEntry]:
    """Journal a free-text answer to ``prompt``; blank answers are dropped."""
    if not text.strip():
        return None
    entry = ReflectionEntry(prompt=prompt, text=text.strip())
    store.add_reflection(entry)
    return entry
