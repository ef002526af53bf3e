"""Seed the trigger and action registries."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TYPE_CHECKING

from .session import async_session_factory, init_db

if TYPE_CHECKING:
    from ..repositories import Repositories

logger = logging.getLogger(__name__)

_LEAD_SOURCE_PROPERTIES = [
    {"name": "table_name", "value": "lead_sources"},
    {"name": "change_type", "value": ["INSERT", "UPDATE", "DELETE"]},
]

_LEAD_SOURCE_SAMPLE = {
    "operation": "UPDATE",
    "table": "lead_sources",
    "before": {"id": "ls_1", "name": "Email Marketing Campaign", "is_active": False},
    "after": {"id": "ls_1", "name": "Email Marketing Campaign", "is_active": True},
    "changedFields": ["is_active"],
    "source": "debezium",
}

_LEAD_SOURCE_VARIABLES = {
    "operation": "INSERT, UPDATE or DELETE",
    "after": "Row after the change",
    "before": "Row before the change",
    "changedFields": "Columns whose value changed",
}

TRIGGERS: list[dict[str, Any]] = [
    {
        "key": "lead_sources_db_change",
        "name": "Lead Source Changed",
        "description": "Fires when a row in lead_sources is inserted, updated or deleted",
        "category": "database",
        "event_source": "debezium",
        "properties_schema": _LEAD_SOURCE_PROPERTIES,
        "sample_payload": _LEAD_SOURCE_SAMPLE,
        "available_variables": _LEAD_SOURCE_VARIABLES,
    },
    {
        # Key derived by the change-capture consumer for the lead_sources topic
        "key": "lead_sources_table_change",
        "name": "Lead Sources Table Change",
        "description": "Change-capture stream of the lead_sources table",
        "category": "database",
        "event_source": "debezium",
        "properties_schema": _LEAD_SOURCE_PROPERTIES,
        "sample_payload": _LEAD_SOURCE_SAMPLE,
        "available_variables": _LEAD_SOURCE_VARIABLES,
    },
    {
        "key": "incoming_webhook",
        "name": "Incoming Webhook",
        "description": "Generic inbound HTTP call",
        "category": "webhook",
        "event_source": "webhook",
        "webhook_config": {"methods": ["POST", "PUT"]},
    },
    {
        "key": "manual_trigger",
        "name": "Manual Trigger",
        "description": "Started by a user or an API call",
        "category": "manual",
        "event_source": "manual",
    },
]

ACTIONS: list[dict[str, Any]] = [
    {
        "key": "task_management",
        "name": "Task Management",
        "display_name": "Manage Tasks",
        "description": "Create, update, delete, get or list tasks",
        "category": "task_management",
        "group": "crm",
        "execution_type": "internal_function",
        "operation_schema": {"operations": ["create", "update", "delete", "get", "list"]},
        "properties_schema": [
            {"name": "operation", "type": "string", "required": True},
            {"name": "title", "type": "string"},
            {"name": "description", "type": "string"},
            {"name": "dueDateDynamic", "type": "string"},
            {"name": "priority", "type": "string"},
            {"name": "entityId", "type": "string"},
        ],
    },
    {
        "key": "send_email",
        "name": "Send Email",
        "description": "Send an email notification",
        "category": "communication",
        "group": "notifications",
        "execution_type": "internal_function",
        "properties_schema": [
            {"name": "to", "type": "string", "required": True},
            {"name": "subject", "type": "string"},
            {"name": "body", "type": "string"},
        ],
    },
    {
        "key": "send_sms",
        "name": "Send SMS",
        "description": "Send a text message",
        "category": "communication",
        "group": "notifications",
        "execution_type": "internal_function",
        "properties_schema": [
            {"name": "to", "type": "string", "required": True},
            {"name": "message", "type": "string"},
        ],
    },
    {
        "key": "slack_notification",
        "name": "Slack Notification",
        "description": "Post a message to a Slack channel",
        "category": "communication",
        "group": "notifications",
        "execution_type": "internal_function",
        "properties_schema": [
            {"name": "channel", "type": "string", "required": True},
            {"name": "message", "type": "string"},
        ],
    },
    {
        "key": "http_request",
        "name": "HTTP Request",
        "description": "Call an external HTTP API",
        "category": "integration",
        "group": "integrations",
        "execution_type": "external_api",
        "properties_schema": [
            {"name": "url", "type": "string", "required": True},
            {"name": "method", "type": "string"},
            {"name": "headers", "type": "object"},
            {"name": "body", "type": "object"},
        ],
    },
]


async def seed_registries(repositories: Repositories) -> dict[str, int]:
    """Insert missing registry entries. Existing keys are left untouched."""
    added = {"triggers": 0, "actions": 0}

    for entry in TRIGGERS:
        if await repositories.triggers.find_one(key=entry["key"]) is None:
            await repositories.triggers.create(**entry)
            added["triggers"] += 1

    for entry in ACTIONS:
        if await repositories.actions.find_one(key=entry["key"]) is None:
            await repositories.actions.create(**entry)
            added["actions"] += 1

    logger.info(f"Seeded {added['triggers']} triggers and {added['actions']} actions")
    return added


async def seed_database() -> None:
    """Create tables and seed the configured database."""
    from ..repositories import Repositories

    await init_db()
    await seed_registries(Repositories.sql(async_session_factory))


def main() -> None:
    """Run the seed script."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_database())


if __name__ == "__main__":
    main()
