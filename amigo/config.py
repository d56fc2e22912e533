from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import SUPPORTED_LANGUAGES

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class AppConfig:
    data_dir: Path = Path("~/.amigo").expanduser()
    model: str = "gpt-4.1-mini"
    temperature: float = 0.8
    max_output_tokens: int = 400
    request_timeout: float = 30.0
    default_language: str = "en"
    practice_turns: int = 3
    log_level: str = "INFO"
    api_key_present: bool = False


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the config from the environment (after loading ``.env``)."""
    if env is None:
        load_dotenv()  # loads OPENAI_API_KEY and AMIGO_* from .env
        env = os.environ

    defaults = AppConfig()
    language = env.get("AMIGO_DEFAULT_LANGUAGE", defaults.default_language)
    if language not in SUPPORTED_LANGUAGES:
        language = defaults.default_language

    turns = _int(env.get("AMIGO_PRACTICE_TURNS"), defaults.practice_turns)
    return AppConfig(
        data_dir=Path(env.get("AMIGO_DATA_DIR") or defaults.data_dir).expanduser(),
        model=env.get("AMIGO_MODEL") or defaults.model,
        temperature=_float(env.get("AMIGO_TEMPERATURE"), defaults.temperature),
        max_output_tokens=_int(env.get("AMIGO_MAX_OUTPUT_TOKENS"), defaults.max_output_tokens),
        request_timeout=_float(env.get("AMIGO_REQUEST_TIMEOUT"), defaults.request_timeout),
        default_language=language,
        practice_turns=turns if turns > 0 else defaults.practice_turns,
        log_level=(env.get("AMIGO_LOG_LEVEL") or defaults.log_level).upper(),
        api_key_present=bool(env.get("OPENAI_API_KEY")),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
