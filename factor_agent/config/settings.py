"""
Configuration loader — YAML file + environment variable overrides.
"""

from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Optional

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"

# env var → (dot key, converter)
ENV_MAPPINGS = {
    "FACTOR_LLM_PROVIDER": ("llm.provider", str),
    "FACTOR_LLM_MODEL": ("llm.model", str),
    "FACTOR_LLM_TEMPERATURE": ("llm.temperature", float),
    "OLLAMA_BASE_URL": ("providers.ollama.base_url", str),
    "OPENAI_API_KEY": ("providers.openai.api_key", str),
    "OPENAI_BASE_URL": ("providers.openai.base_url", str),
    "ANTHROPIC_API_KEY": ("providers.anthropic.api_key", str),
    "FACTOR_MAX_CONTEXT_TOKENS": ("context.max_context_tokens", int),
    "FACTOR_LOG_LEVEL": ("logging.level", str),
}


class Config:
    """Configuration container with dot-access and env var support."""

    def __init__(self, data: dict):
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        keys = key.split(".")
        value = self._data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        keys = key.split(".")
        d = self._data
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    @property
    def raw(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        return f"Config(sections={sorted(self._data)})"


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with env var overrides.

    Priority (highest to lowest):
    1. Environment variables (see ENV_MAPPINGS)
    2. User config file (if provided)
    3. Default config

    Raises:
        FileNotFoundError: config_path given but missing
        ValueError: an env override cannot be converted (e.g. a
            non-numeric FACTOR_LLM_TEMPERATURE)
    """
    with open(DEFAULT_CONFIG_PATH) as f:
        data = yaml.safe_load(f) or {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(path) as f:
            user_data = yaml.safe_load(f) or {}
        data = _deep_merge(data, user_data)

    config = Config(data)
    for env_key, (config_key, convert) in ENV_MAPPINGS.items():
        env_val = os.getenv(env_key)
        if env_val is None:
            continue
        try:
            config.set(config_key, convert(env_val))
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_key}: {env_val!r}") from e

    return config


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay dict into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
