"""User settings: config.json under CONFIG_DIR, overridden by environment variables."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

from inbox_cleaner import constants

logger = logging.getLogger(__name__)

ENV_API_KEY = "ANTHROPIC_API_KEY"
ENV_AI_MODEL = "INBOX_CLEANER_AI_MODEL"
ENV_RATE_LIMIT = "INBOX_CLEANER_RATE_LIMIT"


@dataclass
class Settings:
    anthropic_api_key: str | None = None
    ai_model: str = constants.DEFAULT_AI_MODEL
    rate_limit_per_second: float = constants.RATE_LIMIT_PER_SECOND

    @property
    def has_ai_key(self) -> bool:
        return bool(self.anthropic_api_key)


def _read_config_file() -> dict:
    path = constants.CONFIG_FILE_PATH
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")
    return raw


def _write_config_file(raw: dict) -> None:
    constants.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    constants.CONFIG_FILE_PATH.write_text(json.dumps(raw, indent=2))


def load_settings() -> Settings:
    """Build Settings from config.json, then environment variables."""
    raw = _read_config_file()
    settings = Settings(
        anthropic_api_key=raw.get("anthropic_api_key") or None,
        ai_model=raw.get("ai_model") or constants.DEFAULT_AI_MODEL,
        rate_limit_per_second=float(raw.get("rate_limit_per_second", constants.RATE_LIMIT_PER_SECOND)),
    )

    if os.environ.get(ENV_API_KEY):
        settings.anthropic_api_key = os.environ[ENV_API_KEY]
    if os.environ.get(ENV_AI_MODEL):
        settings.ai_model = os.environ[ENV_AI_MODEL]
    if os.environ.get(ENV_RATE_LIMIT):
        try:
            settings.rate_limit_per_second = float(os.environ[ENV_RATE_LIMIT])
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", ENV_RATE_LIMIT, os.environ[ENV_RATE_LIMIT])

    if settings.rate_limit_per_second <= 0:
        raise ValueError("rate_limit_per_second must be positive")
    return settings


def save_api_key(api_key: str | None) -> None:
    """Store (or with None, remove) the AI key in config.json."""
    raw = _read_config_file()
    if api_key:
        raw["anthropic_api_key"] = api_key
    else:
        raw.pop("anthropic_api_key", None)
    _write_config_file(raw)
