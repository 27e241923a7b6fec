import os
from typing import Any, Dict

DEFAULT_TRIAGE_MODEL = "gpt-4o-mini"
DEFAULT_CLASSIFIER_MODEL = "omni-moderation-latest"


class AISettings:
    """Typed accessors for the ``ai_settings`` section of the app config.

    The API key may be left out of the YAML file entirely; it then falls back
    to the ``OPENAI_API_KEY`` environment variable.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def api_key(self) -> str | None:
        val = self.data.get("api_key") or os.getenv("OPENAI_API_KEY")
        return str(val) if val else None

    @property
    def base_url(self) -> str | None:
        val = self.data.get("base_url")
        return str(val) if val else None

    @property
    def triage_model(self) -> str:
        return str(self.data.get("triage_model") or DEFAULT_TRIAGE_MODEL)

    @property
    def classifier_model(self) -> str:
        return str(self.data.get("classifier_model") or DEFAULT_CLASSIFIER_MODEL)
