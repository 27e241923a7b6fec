"""
Wiring of the moderation services shared by the cogs.

All collaborators are built once at startup and handed to each cog's
``setup`` function.
"""

from __future__ import annotations

from dataclasses import dataclass

import discord
from openai import AsyncOpenAI

from warden.ai.classifier import IncidentClassifier
from warden.ai.triage import TriagePolicy
from warden.configuration.app_configuration import AppConfig
from warden.configuration.moderation_settings import ModerationSettings
from warden.moderation.audit_log import AuditLog
from warden.moderation.duty_cycle import DutyCycle
from warden.moderation.incident_lifecycle import IncidentLifecycle
from warden.moderation.repeat_offense import RepeatOffenseMatcher


@dataclass
class ModerationServices:
    settings: ModerationSettings
    audit_log: AuditLog
    classifier: IncidentClassifier
    matcher: RepeatOffenseMatcher
    lifecycle: IncidentLifecycle
    duty_cycle: DutyCycle


def build_services(bot: discord.Client, config: AppConfig, client: AsyncOpenAI) -> ModerationServices:
    settings = config.moderation
    ai_settings = config.ai_settings

    audit_log = AuditLog(bot, settings)
    matcher = RepeatOffenseMatcher(bot, audit_log, settings)
    triage_policy = TriagePolicy(
        client,
        ai_settings,
        rules=config.server_rules,
        preamble=config.triage_preamble,
    )
    lifecycle = IncidentLifecycle(bot, triage_policy, matcher, audit_log, settings)
    return ModerationServices(
        settings=settings,
        audit_log=audit_log,
        classifier=IncidentClassifier(client, ai_settings),
        matcher=matcher,
        lifecycle=lifecycle,
        duty_cycle=DutyCycle(bot, lifecycle, audit_log, settings),
    )
