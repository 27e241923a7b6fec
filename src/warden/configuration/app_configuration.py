from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from warden.configuration.ai_settings import AISettings
from warden.configuration.moderation_settings import ModerationSettings
from warden.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_SERVER_RULES: List[str] = [
    "Respect others: No hate speech, harassment, doxing, or shaming.",
    "Keep it clean: No threatening language, and no adult themes.",
    "No trolling or inciting drama: Keep interactions constructive.",
]

DEFAULT_TRIAGE_PREAMBLE = (
    "You are a Discord moderator, able to see the latest messages between Discord users in a channel.\n"
    "There are both minors and adults in the chat."
)


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    the AI and moderation sections through :class:`AISettings` and
    :class:`ModerationSettings`. Reads take an fcntl shared lock.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache and return the new mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached mapping. Callers should not mutate it."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def server_rules(self) -> List[str]:
        """Rules the triage policy may cite, one string per rule."""
        value = self._data.get("server_rules")
        if isinstance(value, str):
            value = [line.lstrip("- ").strip() for line in value.splitlines()]
        if isinstance(value, list):
            rules = [str(rule).strip() for rule in value if str(rule).strip()]
            if rules:
                return rules
        return list(DEFAULT_SERVER_RULES)

    @property
    def triage_preamble(self) -> str:
        value = self._data.get("triage_preamble")
        return str(value).strip() if value else DEFAULT_TRIAGE_PREAMBLE

    @property
    def ai_settings(self) -> AISettings:
        settings = self._data.get("ai_settings", {})
        if not isinstance(settings, dict):
            settings = {}
        return AISettings(settings)

    @property
    def moderation(self) -> ModerationSettings:
        settings = self._data.get("moderation", {})
        if not isinstance(settings, dict):
            settings = {}
        return ModerationSettings(settings)


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
