# amigo/llm.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from .errors import GenerationRequestFailed
from .models import Turn

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    model: str = "gpt-4.1-mini"
    temperature: float = 0.8
    max_output_tokens: int = 400
    timeout: Optional[float] = 30.0


@dataclass
class GenerationRequest:
    system_instruction: str
    new_message: str
    prior_turns: Sequence[Turn] = field(default_factory=list)
    response_schema: Optional[Type[BaseModel]] = None
    temperature: Optional[float] = None


@dataclass
class GenerationResult:
    text: str
    payload: Optional[BaseModel] = None


class LLMClient:
    """
    Base class: the core calls ``await client.generate(request)``.

    Subclasses implement ``_complete`` and may raise anything; ``generate``
    turns every transport error, timeout or schema mismatch into
    ``GenerationRequestFailed``.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        try:
            if self.timeout:
                text = await asyncio.wait_for(self._complete(request), self.timeout)
            else:
                text = await self._complete(request)
        except GenerationRequestFailed:
            raise
        except Exception as exc:
            raise GenerationRequestFailed(f"{type(exc).__name__}: {exc}") from exc

        if request.response_schema is None:
            return GenerationResult(text=text)
        try:
            payload = request.response_schema.model_validate_json(text)
        except ValidationError as exc:
            raise GenerationRequestFailed(f"response did not match {request.response_schema.__name__}: {exc}") from exc
        return GenerationResult(text=text, payload=payload)

    async def _complete(self, request: GenerationRequest) -> str:
        raise NotImplementedError

    @staticmethod
    def dummy() -> "LLMClient":
        return _DummyLLM()

    @staticmethod
    def unavailable(reason: str = "no generation backend configured") -> "LLMClient":
        return _UnavailableLLM(reason)

    @staticmethod
    def openai(config: Optional[LLMConfig] = None) -> "LLMClient":
        return OpenAILLMClient(config=config or LLMConfig())


class _DummyLLM(LLMClient):
    async def _complete(self, request: GenerationRequest) -> str:
        return "Hey! 👋 (dummy reply; plug in a real LLMClient)"


class _UnavailableLLM(LLMClient):
    def __init__(self, reason: str):
        super().__init__()
        self.reason = reason

    async def _complete(self, request: GenerationRequest) -> str:
        raise GenerationRequestFailed(self.reason)


def to_openai_input(request: GenerationRequest) -> List[Dict[str, Any]]:
    items = [
        {"role": "assistant" if t.role == "ai" else "user", "content": t.text}
        for t in request.prior_turns
    ]
    items.append({"role": "user", "content": request.new_message})
    return items


class OpenAILLMClient(LLMClient):
    def __init__(self, config: LLMConfig):
        super().__init__(timeout=config.timeout)
        self.config = config
        self.client = AsyncOpenAI(timeout=config.timeout)  # reads OPENAI_API_KEY

    async def _complete(self, request: GenerationRequest) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "instructions": request.system_instruction,
            "input": to_openai_input(request),
            "temperature": request.temperature if request.temperature is not None else self.config.temperature,
            "max_output_tokens": self.config.max_output_tokens,
        }
        if request.response_schema is not None:
            kwargs["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": request.response_schema.__name__,
                    "schema": request.response_schema.model_json_schema(),
                    "strict": False,
                }
            }

        logger.debug("generation request (%d prior turns)", len(request.prior_turns))
        resp = await self.client.responses.create(**kwargs)
        text = getattr(resp, "output_text", None)
        if not text:
            raise GenerationRequestFailed(f"OpenAI response had no output_text. Raw: {resp}")
        return text.strip()
