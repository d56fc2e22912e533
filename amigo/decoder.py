from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from .errors import GenerationRequestFailed
from .i18n import TranslationResolver
from .llm import GenerationRequest, LLMClient
from .models import Profile
from .prompting import PromptBuilder

logger = logging.getLogger(__name__)


class Insight(BaseModel):
    label: str
    text: str
    icon: str = "💡"


class DecoderResult(BaseModel):
    insights: List[Insight] = Field(min_length=1)
    victory: str


class SocialDecoder:
    """One-shot "what is going on here?" analysis with a structured reply."""

    def __init__(
        self,
        llm: LLMClient,
        translator: TranslationResolver,
        prompts: Optional[PromptBuilder] = None,
        profile_source: Optional[Callable[[], Profile]] = None,
    ):
        self.llm = llm
        self.translator = translator
        self.prompts = prompts or PromptBuilder()
        self.profile_source = profile_source or Profile
        self.busy = False

    async def decode(self, description: str) -> Optional[DecoderResult]:
        description = (description or "").strip()
        if not description or self.busy:
            return None

        profile = self.profile_source()
        language = profile.language or self.translator.default_language
        request = GenerationRequest(
            system_instruction=self.prompts.decoder(profile, language),
            new_message=f'Analyze for {profile.user_name or "me"}: "{description}"',
            response_schema=DecoderResult,
        )

        self.busy = True
        try:
            result = await self.llm.generate(request)
        except GenerationRequestFailed as exc:
            logger.warning("decoder request failed: %s", exc)
            return None
        finally:
            self.busy = False
        return result.payload

    def retry_message(self) -> str:
        return self.translator.resolve("decoder.retry", "Please try again in a moment.")
