"""Triage of flagged incidents with an OpenAI-compatible chat model.

Triage runs in two structured-output steps:

1. **Rule assessment**: which server rule (if any) the latest message breaks,
   whether it targets one member or everybody, and what to tell people.
2. **Devil's advocate**: a second opinion asked to argue the message is fine;
   it can overturn the first step.

The result is reduced to a :data:`TriageOutcome` variant. Anything the model
returns that cannot be mapped onto one raises :class:`TriageError`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import jsonschema
from jsonschema import ValidationError
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam

from warden.ai.errors import TriageError
from warden.configuration.ai_settings import AISettings
from warden.datatypes.incident_datatypes import (
    Incident,
    TriageGroup,
    TriageIgnore,
    TriageOutcome,
    TriageVictim,
)
from warden.util.logger import get_logger

logger = get_logger("triage")

EVERYBODY = "everybody"


def build_rule_schema(rules: List[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "broken_rule": {
                "anyOf": [{"type": "string", "enum": rules}, {"type": "null"}],
            },
            "reason": {"type": "string"},
            "victim": {
                "type": "string",
                "description": f'The numeric ID of the member the message targets, or "{EVERYBODY}".',
            },
            "delete_message": {
                "type": "boolean",
                "description": "Should the message be deleted immediately?",
            },
            "caution": {
                "type": ["string", "null"],
                "description": "A private message to the offender explaining what they did wrong.",
            },
            "notification": {
                "type": ["string", "null"],
                "description": (
                    "If the message is deleted, one sentence that replaces it in the chat, e.g. "
                    "\"I removed [offender]'s message as it expressed hostility toward others.\""
                ),
            },
        },
        "required": ["broken_rule", "reason", "victim", "delete_message", "caution", "notification"],
        "additionalProperties": False,
    }


DEVILS_ADVOCATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "thoughts": {"type": "string"},
        "continue_intervention": {"type": "boolean"},
    },
    "required": ["thoughts", "continue_intervention"],
    "additionalProperties": False,
}


class TriagePolicy:
    """Decides what, if anything, to do about an incident."""

    def __init__(
        self,
        client: AsyncOpenAI,
        settings: AISettings,
        *,
        rules: List[str],
        preamble: str,
    ) -> None:
        self._client = client
        self._model = settings.triage_model
        self._rules = rules
        self._preamble = preamble

    def conversation(self, incident: Incident) -> str:
        # The latest message is repeated so smaller models do not lose track of it
        return f"{incident.context}\n\nLatest message by {incident.offender_id}:\n{incident.content}"

    async def triage(self, incident: Incident) -> TriageOutcome:
        conversation = self.conversation(incident)
        rules_text = "\n".join(f"- {rule}" for rule in self._rules)

        assessment = await self._ask(
            "rule_assessment",
            build_rule_schema(self._rules),
            (
                f"{self._preamble}\n"
                f"The Discord server has these rules:\n{rules_text}\n\n"
                "The very last message has been flagged by an automatic system for these suspected issues:\n"
                f"{incident.categories}\n\n"
                f"Determine if the user who sent the last message ({incident.offender_id}) is violating any of these rules, "
                "and whether the message is directed at a specific user (a victim)."
            ),
            conversation,
        )
        reason = assessment["reason"]
        rule = assessment["broken_rule"]
        if not rule:
            return TriageIgnore(reason=reason)

        second_opinion = await self._ask(
            "devils_advocate",
            DEVILS_ADVOCATE_SCHEMA,
            (
                f"{self._preamble}\n\n"
                f"Another moderator has flagged a message for breaking this rule:\n{rule}\n\n"
                "Play devil's advocate and explain if the message, in context, is actually alright."
            ),
            conversation,
        )
        thoughts = second_opinion["thoughts"]
        if not second_opinion["continue_intervention"]:
            return TriageIgnore(reason=f"{reason}\nBut then the devil's advocate concluded: {thoughts}")

        reasoning = f"{reason}\nDevil's advocate said: {thoughts}"
        victim = assessment["victim"].strip()
        if victim.lower() == EVERYBODY:
            return TriageGroup(
                rule=rule,
                delete=assessment["delete_message"],
                reasoning=reasoning,
                caution=_optional_str(assessment, "caution"),
                notification=_optional_str(assessment, "notification"),
            )
        return TriageVictim(rule=rule, victim_id=victim, reasoning=reasoning)

    async def _ask(self, name: str, schema: Dict[str, Any], system: str, user: str) -> Dict[str, Any]:
        messages: List[ChatCompletionMessageParam] = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": name, "strict": True, "schema": schema},
            },
        )
        if not response.choices or response.choices[0].message is None:
            raise TriageError(f"No {name} response from model")

        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise TriageError(f"Model refused to answer: {message.refusal}")

        try:
            data = json.loads(message.content or "{}")
        except json.JSONDecodeError as exc:
            raise TriageError(f"Unparseable {name} response: {exc}") from exc
        try:
            jsonschema.validate(instance=data, schema=schema)
        except ValidationError as exc:
            raise TriageError(f"{name} response does not match its schema: {exc.message}") from exc

        logger.debug("[TRIAGE] %s -> %s", name, data)
        return data


def _optional_str(data: Dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if not isinstance(value, str):
        return None
    return value.strip() or None
