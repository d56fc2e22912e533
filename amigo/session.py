from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .errors import GenerationRequestFailed
from .i18n import TranslationResolver
from .ledger import ProgressLedger
from .llm import GenerationRequest, GenerationResult, LLMClient
from .models import PRACTICE_POINTS, Profile, ReflectionEntry, Turn
from .prompting import PromptBuilder
from .safety import SafetyScanner

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_OPENING = "awaiting_opening"
    ACTIVE_TURN = "active_turn"
    SAFETY_HOLD = "safety_hold"
    COMPLETED = "completed"
    ABORTED = "aborted"


class SubmitStatus(str, Enum):
    ACCEPTED = "accepted"  # reply appended; check session.state for hold/completion
    FAILED = "failed"  # filler line appended, user may retry
    IN_PROGRESS = "in_progress"
    NOT_ACTIVE = "not_active"
    EMPTY = "empty"
    STALE = "stale"  # session ended while the request was in flight


@dataclass(frozen=True)
class Scenario:
    title: str
    prompt: str
    category: str = "friendship"
    icon: str = "🌟"


DEFAULT_SCENARIOS = (
    Scenario(
        "Joining a group",
        "You are a kid sitting with your friends at lunch. The user wants to join your table but feels shy.",
        "friendship",
        "👫",
    ),
    Scenario(
        "Different plans",
        "You are the user's best friend and you want to play a different game than they do this afternoon.",
        "conflict",
        "⚡",
    ),
    Scenario(
        "Asking for help",
        "You are a teacher after class. The user did not understand the homework and wants to ask you about it.",
        "school",
        "🏫",
    ),
    Scenario(
        "Group chat joke",
        "You are a classmate who posted a joke in the class group chat. The user felt left out by it and wants to tell you.",
        "digital",
        "💻",
    ),
)


@dataclass
class SessionConfig:
    completion_turns: int = 3
    reward_category: str = "practice"
    reward_amount: int = PRACTICE_POINTS
    allow_degraded_start: bool = True
    temperature: float = 0.8


@dataclass
class ConversationSession:
    scenario: Scenario
    language: str
    system_instruction: str = ""
    opening_message: str = ""
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    transcript: List[Turn] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    turn_count: int = 0
    in_flight: bool = False
    degraded_start: bool = False
    safety_marker: Optional[str] = None
    _rewarded: bool = field(default=False, init=False, repr=False)

    @property
    def rewarded(self) -> bool:
        return self._rewarded

    def mark_rewarded(self) -> bool:
        """One-way switch. Returns True only for the call that flipped it."""
        if self._rewarded:
            return False
        self._rewarded = True
        return True

    @property
    def safety_message(self) -> Optional[str]:
        if self.state is not SessionState.SAFETY_HOLD:
            return None
        for turn in reversed(self.transcript):
            if turn.role == "ai":
                return turn.text
        return None


class ConversationEngine:
    """
    Runs practice roleplay sessions against the generation client.

    The engine is the single registry of the active session. Responses are
    applied only while their session is still the active one, so replies that
    arrive after ``end()`` or a new ``start()`` are dropped.
    """

    def __init__(
        self,
        llm: LLMClient,
        ledger: ProgressLedger,
        translator: TranslationResolver,
        prompts: Optional[PromptBuilder] = None,
        scanner: Optional[SafetyScanner] = None,
        profile_source: Optional[Callable[[], Profile]] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.llm = llm
        self.ledger = ledger
        self.translator = translator
        self.prompts = prompts or PromptBuilder()
        self.scanner = scanner or SafetyScanner(default_language=translator.default_language)
        self.profile_source = profile_source or Profile
        self.config = config or SessionConfig()
        self._active: Optional[ConversationSession] = None

    @property
    def session(self) -> Optional[ConversationSession]:
        return self._active

    def is_current(self, session: ConversationSession) -> bool:
        return self._active is not None and self._active.session_id == session.session_id

    # ---- lifecycle
    async def start(self, scenario: Scenario) -> ConversationSession:
        if self._active is not None:
            logger.debug("replacing session %s", self._active.session_id)
            self.end()

        profile = self.profile_source()
        language = profile.language or self.translator.default_language
        system, opening = self.prompts.roleplay(scenario.prompt, profile, language)

        session = ConversationSession(scenario, language, system_instruction=system, opening_message=opening)
        session.state = SessionState.AWAITING_OPENING
        session.in_flight = True
        self._active = session
        logger.debug("session %s awaiting opening for %r", session.session_id, scenario.title)

        request = GenerationRequest(
            system_instruction=system,
            new_message=opening,
            temperature=self.config.temperature,
        )
        result = await self._generate(session, request)

        if not self.is_current(session):
            logger.debug("dropping opening for abandoned session %s", session.session_id)
            return session

        if result is None:
            if not self.config.allow_degraded_start:
                session.state = SessionState.ABORTED
                return session
            session.degraded_start = True
            text = self.translator.resolve(
                "practice.fallback_opening",
                "Hey {name}, what's up?",
                language=language,
                name=profile.user_name or "friend",
            )
        else:
            text = result.text

        session.transcript.append(Turn("ai", text))
        session.state = SessionState.ACTIVE_TURN
        self._scan(session, text)
        return session

    async def submit_user_turn(self, text: str) -> SubmitStatus:
        session = self._active
        if session is None or session.state is not SessionState.ACTIVE_TURN:
            return SubmitStatus.NOT_ACTIVE
        if session.in_flight:
            return SubmitStatus.IN_PROGRESS
        text = (text or "").strip()
        if not text:
            return SubmitStatus.EMPTY

        # the model saw the opening message as the first user turn
        prior = [Turn("user", session.opening_message)] + list(session.transcript)
        session.transcript.append(Turn("user", text))
        session.in_flight = True

        request = GenerationRequest(
            system_instruction=session.system_instruction,
            new_message=text,
            prior_turns=prior,
            temperature=self.config.temperature,
        )
        result = await self._generate(session, request)

        if not self.is_current(session) or session.state is not SessionState.ACTIVE_TURN:
            logger.debug("dropping reply for abandoned session %s", session.session_id)
            return SubmitStatus.STALE

        if result is None:
            filler = self.translator.resolve(
                "practice.filler",
                "Sorry, I got a bit lost there. Can you say that again?",
                language=session.language,
            )
            session.transcript.append(Turn("ai", filler))
            return SubmitStatus.FAILED

        session.transcript.append(Turn("ai", result.text))
        if self._scan(session, result.text):
            return SubmitStatus.ACCEPTED

        session.turn_count += 1
        self.check_completion(session)
        return SubmitStatus.ACCEPTED

    def check_completion(self, session: Optional[ConversationSession] = None) -> bool:
        """Credit the reward once the threshold is reached; safe to call repeatedly."""
        session = session or self._active
        if session is None or session.state not in (SessionState.ACTIVE_TURN, SessionState.COMPLETED):
            return False
        if session.turn_count < self.config.completion_turns:
            return False

        session.state = SessionState.COMPLETED
        if not session.mark_rewarded():
            return False
        self.ledger.add(self.config.reward_category, self.config.reward_amount)
        logger.info(
            "session %s completed after %d turns, +%d %s",
            session.session_id,
            session.turn_count,
            self.config.reward_amount,
            self.config.reward_category,
        )
        return True

    def end(self) -> None:
        session = self._active
        self._active = None
        if session is None:
            return
        session.state = SessionState.IDLE
        session.transcript.clear()
        logger.debug("session %s ended", session.session_id)

    def to_reflection(self, session: Optional[ConversationSession] = None) -> Optional[ReflectionEntry]:
        """Journal entry for a transcript; call before ``end()`` to keep it."""
        session = session or self._active
        if session is None or not session.transcript:
            return None
        name = self.profile_source().user_name or "Me"
        lines = [f"{'Amigo' if t.role == 'ai' else name}: {t.text}" for t in session.transcript]
        prompt = self.translator.resolve(
            "practice.reflection_prompt",
            "Practice: {title}",
            language=session.language,
            title=session.scenario.title,
        )
        return ReflectionEntry(prompt=prompt, text="\n".join(lines), category="practice")

    # ---- internals
    async def _generate(self, session: ConversationSession, request: GenerationRequest) -> Optional[GenerationResult]:
        try:
            return await self.llm.generate(request)
        except GenerationRequestFailed as exc:
            logger.warning("generation failed in session %s: %s", session.session_id, exc)
            return None
        finally:
            session.in_flight = False

    def _scan(self, session: ConversationSession, text: str) -> bool:
        marker = self.scanner.scan(text, session.language)
        if marker is None:
            return False
        session.state = SessionState.SAFETY_HOLD
        session.safety_marker = marker
        logger.warning("session %s on safety hold (marker %r)", session.session_id, marker)
        return True
