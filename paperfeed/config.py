from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from paperfeed.constants import (
    EMBEDDING_DEFAULT_MODEL,
    EMBEDDING_DEFAULT_URL,
    LLM_DEFAULT_MODEL,
)

CONFIG_DIR = Path.home() / ".config" / "paperfeed"
CONFIG_FILE = CONFIG_DIR / "config.json"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return json.load(f)
    except Exception:
        return {}


def save_config(key: str, value: str):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment and the config file."""

    anthropic_api_key: Optional[str] = None
    llm_model: str = LLM_DEFAULT_MODEL
    embedding_url: str = EMBEDDING_DEFAULT_URL
    embedding_api_key: Optional[str] = None
    embedding_model: str = EMBEDDING_DEFAULT_MODEL
    store_dir: Optional[str] = None
    log_level: str = "INFO"

    @property
    def store_configured(self) -> bool:
        return bool(self.store_dir)


def _pick(env_name: str, file_key: str, file_config: dict, default=None):
    value = os.environ.get(env_name)
    if value:
        return value
    value = file_config.get(file_key)
    if value:
        return value
    return default


def load_settings() -> Settings:
    """Environment variables win over ~/.config/paperfeed/config.json."""
    file_config = load_config()
    return Settings(
        anthropic_api_key=_pick("ANTHROPIC_API_KEY", "anthropic_api_key", file_config),
        llm_model=_pick(
            "PAPERFEED_LLM_MODEL", "llm_model", file_config, LLM_DEFAULT_MODEL
        ),
        embedding_url=_pick(
            "PAPERFEED_EMBEDDING_URL", "embedding_url", file_config, EMBEDDING_DEFAULT_URL
        ),
        embedding_api_key=_pick(
            "PAPERFEED_EMBEDDING_API_KEY", "embedding_api_key", file_config
        ),
        embedding_model=_pick(
            "PAPERFEED_EMBEDDING_MODEL",
            "embedding_model",
            file_config,
            EMBEDDING_DEFAULT_MODEL,
        ),
        store_dir=_pick("PAPERFEED_STORE_DIR", "store_dir", file_config),
        log_level=_pick("PAPERFEED_LOG_LEVEL", "log_level", file_config, "INFO"),
    )
