"""Application settings: defaults, then an optional JSON file, then environment.

JSON file (path from DM_CONFIG_FILE), any subset of:

    {
      "narrator":    {"provider_url", "api_key", "provider_format", "model",
                      "max_tokens", "timeout"},
      "illustrator": {"provider_url", "api_key", "model", "size", "timeout"},
      "narrative_timeout": 90,
      "image_timeout": 60,
      "demo": false
    }

Environment variables override the file; see _ENV_KEYS. Empty variables are
treated as unset.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NarratorConnection(BaseModel):
    provider_url: str
    api_key: str = ""
    provider_format: Literal["koboldcpp", "openai"] = "koboldcpp"
    model: str = ""
    max_tokens: int = 800
    timeout: float = 120.0


class IllustratorConnection(BaseModel):
    provider_url: str
    api_key: str = ""
    model: str = ""
    size: str = "1024x1024"
    timeout: float = 120.0


class Settings(BaseModel):
    narrator: NarratorConnection
    illustrator: IllustratorConnection
    narrative_timeout: float | None = None
    image_timeout: float | None = None
    demo: bool = False


_CONFIG_DEFAULTS: dict[str, Any] = {
    "narrator": {
        "provider_url": "http://localhost:5001",
        "api_key": "",
        "provider_format": "koboldcpp",
        "model": "",
        "max_tokens": 800,
        "timeout": 120.0,
    },
    "illustrator": {
        "provider_url": "http://localhost:8080",
        "api_key": "",
        "model": "",
        "size": "1024x1024",
        "timeout": 120.0,
    },
    "narrative_timeout": None,
    "image_timeout": None,
    "demo": False,
}

# env var -> (section or None for top level, key)
_ENV_KEYS: dict[str, tuple[str | None, str]] = {
    "DM_NARRATOR_URL": ("narrator", "provider_url"),
    "DM_NARRATOR_API_KEY": ("narrator", "api_key"),
    "DM_NARRATOR_FORMAT": ("narrator", "provider_format"),
    "DM_NARRATOR_MODEL": ("narrator", "model"),
    "DM_NARRATOR_MAX_TOKENS": ("narrator", "max_tokens"),
    "DM_IMAGE_URL": ("illustrator", "provider_url"),
    "DM_IMAGE_API_KEY": ("illustrator", "api_key"),
    "DM_IMAGE_MODEL": ("illustrator", "model"),
    "DM_IMAGE_SIZE": ("illustrator", "size"),
    "DM_NARRATIVE_TIMEOUT": (None, "narrative_timeout"),
    "DM_IMAGE_TIMEOUT": (None, "image_timeout"),
    "DM_DEMO": (None, "demo"),
}


def _defaults() -> dict[str, Any]:
    return json.loads(json.dumps(_CONFIG_DEFAULTS))


def _merge(config: dict[str, Any], stored: Mapping[str, Any]) -> None:
    for key, value in stored.items():
        if key not in config:
            logger.debug("ignoring unknown config key %r", key)
            continue
        if isinstance(config[key], dict):
            if isinstance(value, dict):
                config[key].update(value)
        else:
            config[key] = value


def get_settings(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from defaults, the JSON file, and the environment."""
    env = os.environ if environ is None else environ
    config = _defaults()

    if config_file is None and env.get("DM_CONFIG_FILE"):
        config_file = Path(env["DM_CONFIG_FILE"])
    if config_file is not None:
        if config_file.is_file():
            _merge(config, json.loads(config_file.read_text()))
        else:
            logger.warning("config file %s not found, using defaults", config_file)

    for var, (section, key) in _ENV_KEYS.items():
        value = env.get(var, "")
        if not value:
            continue
        if section is None:
            config[key] = value
        else:
            config[section][key] = value

    return Settings.model_validate(config)
