import logging
from typing import List, Optional

from openai import OpenAIError

from .activities import MissionBoard
from .config import AppConfig, load_config
from .decoder import SocialDecoder
from .i18n import TranslationResolver, detect_language
from .io_state import DurableMedium, JsonFileMedium
from .llm import LLMClient, LLMConfig
from .moods import MoodSlice, aggregate_moods
from .profile_store import ProfileStore
from .prompting import PromptBuilder
from .safety import SafetyScanner
from .session import ConversationEngine, SessionConfig

logger = logging.getLogger(__name__)


class AmigoApp:
    """
    Application state manager shared by every screen.
    Screens subscribe to ``store`` for re-renders and call the components below.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        medium: Optional[DurableMedium] = None,
        llm_client: Optional[LLMClient] = None,
    ):
        self.config = config or load_config()
        self.store = ProfileStore(medium or JsonFileMedium(self.config.data_dir))
        self.translator = TranslationResolver(
            default_language=self.config.default_language,
            language_source=lambda: self.store.read("language"),
        )
        self.prompts = PromptBuilder()
        self.llm = llm_client or self._default_llm()

        self.sessions = ConversationEngine(
            self.llm,
            self.store.ledger,
            self.translator,
            prompts=self.prompts,
            scanner=SafetyScanner(default_language=self.config.default_language),
            profile_source=self.store.profile,
            config=SessionConfig(completion_turns=self.config.practice_turns, temperature=self.config.temperature),
        )
        self.decoder = SocialDecoder(self.llm, self.translator, self.prompts, profile_source=self.store.profile)
        self.missions = MissionBoard(self.store, self.llm, self.translator, self.prompts)

    async def start(self) -> None:
        self.store.initialize()
        await self.translator.activate(self.translator.default_language)
        await self.translator.activate()

    def reset_app(self) -> None:
        """The "delete my data" action. Safe to call any number of times."""
        self.sessions.end()
        self.store.reset_all()
        logger.info("profile reset")

    async def note_user_text(self, text: str) -> Optional[str]:
        """Switch the active language when ``text`` is clearly written in another one."""
        detected = detect_language(text)
        if detected is None or detected == self.translator.language:
            return None
        self.store.write("language", detected)
        await self.translator.activate(detected)
        logger.debug("language switched to %s", detected)
        return detected

    def mood_chart(self) -> List[MoodSlice]:
        return aggregate_moods(self.store.read("moodHistory"))

    def _default_llm(self) -> LLMClient:
        if not self.config.api_key_present:
            logger.warning("OPENAI_API_KEY not set, AI features running on scripted fallbacks")
            return LLMClient.unavailable("OPENAI_API_KEY not set")
        llm_config = LLMConfig(
            model=self.config.model,
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_output_tokens,
            timeout=self.config.request_timeout,
        )
        try:
            return LLMClient.openai(llm_config)
        except OpenAIError as exc:
            logger.warning("AI features running on scripted fallbacks: %s", exc)
            return LLMClient.unavailable(str(exc))
