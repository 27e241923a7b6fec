"""First-pass detection of problematic messages with the OpenAI moderation endpoint.

The classifier is cheap and over-eager: anything it flags becomes
an incident that the triage policy then examines in context.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence
import unicodedata

import discord
from openai import AsyncOpenAI

from warden.ai.errors import ClassifierError
from warden.configuration.ai_settings import AISettings
from warden.util.logger import get_logger

logger = get_logger("classifier")

VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv", ".avi")


def is_video_attachment(attachment: discord.Attachment) -> bool:
    content_type = (attachment.content_type or "").lower()
    if content_type.startswith("video/"):
        return True
    filename = (attachment.filename or "").lower()
    return filename.endswith(VIDEO_EXTENSIONS)


class IncidentClassifier:
    """Wraps ``moderations.create`` and reduces its result to flagged category names."""

    def __init__(self, client: AsyncOpenAI, settings: AISettings) -> None:
        self._client = client
        self._model = settings.classifier_model

    def build_input(self, content: str, attachments: Sequence[discord.Attachment]) -> List[Dict[str, Any]]:
        """Text plus at most the first attachment, skipped when it is a video."""
        payload: List[Dict[str, Any]] = [
            {"type": "text", "text": unicodedata.normalize("NFKD", content)},
        ]
        if attachments:
            first = attachments[0]
            if not is_video_attachment(first):
                payload.append({"type": "image_url", "image_url": {"url": first.url}})
        return payload

    async def classify(self, content: str, attachments: Sequence[discord.Attachment] = ()) -> str | bool:
        """
        Return ``False`` when nothing is flagged, otherwise the flagged
        category names joined with ``", "``. Self-harm categories are never
        reported; they are not a moderation matter for this bot.

        Raises:
            ClassifierError: If the endpoint returned no result.
        """
        response = await self._client.moderations.create(
            model=self._model,
            input=self.build_input(content, attachments),
        )
        if not response.results:
            raise ClassifierError("Moderation endpoint returned no results")

        categories = response.results[0].categories.model_dump(by_alias=True)
        flagged = [
            name
            for name, triggered in categories.items()
            if triggered and "self-harm" not in name and "self_harm" not in name
        ]
        if not flagged:
            return False

        logger.debug("[CLASSIFIER] Flagged categories: %s", flagged)
        return ", ".join(flagged)
