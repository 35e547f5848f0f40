from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from streamcal.errors import ConfigError
from streamcal.models import AppConfig


ENV_OVERRIDES = {
    "TWITCH_BROADCASTER_ID": ("twitch", "broadcaster_id"),
    "TWITCH_CHANNEL_URL": ("twitch", "channel_url"),
    "DISCORD_GUILD_ID": ("discord", "guild_id"),
    "DISCORD_BOT_TOKEN": ("discord", "bot_token"),
    "DISCORD_BOT_ID": ("discord", "bot_id"),
    "STREAMCAL_INTERVAL_SECONDS": ("sync", "interval_seconds"),
    "STREAMCAL_LOG_LEVEL": ("logging", "level"),
}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name, "").strip()
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


class ConfigManager:
    """Reads the YAML config file and layers environment variables over it."""

    def __init__(
        self,
        config_path: str | os.PathLike[str],
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ

    def _read_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse {self.config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping at the top level")
        return data

    def load(self) -> AppConfig:
        merged = _deep_merge(self._read_file(), _env_overrides(self.environ))
        try:
            return AppConfig.from_dict(merged)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc

    def masked(self, config: AppConfig | None = None) -> dict[str, Any]:
        data = (config or self.load()).to_dict()
        if data.get("discord", {}).get("bot_token"):
            data["discord"]["bot_token"] = "***"
        return data
