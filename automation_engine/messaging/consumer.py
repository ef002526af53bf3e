"""Event ingestion: bus messages to canonical events to trigger processing."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING
from urllib.parse import urlparse

from ..engine.event_canonicalizer import (
    EventCanonicalizer,
    topic_for_table,
    trigger_key_for_topic,
)
from ..engine.trigger_matcher import get_property_value
from ..engine.types import EventSource, TriggerProcessResult, WorkflowContext
from .bus import Message, MessageBus

if TYPE_CHECKING:
    from ..engine.execution_engine import ExecutionEngine
    from ..repositories import Repositories

logger = logging.getLogger(__name__)


class EventIngestor:
    """Feeds change-capture and webhook messages into the execution engine.

    Handlers never raise, so one bad message cannot stop a topic's consumer.
    """

    def __init__(
        self,
        bus: MessageBus,
        engine: ExecutionEngine,
        canonicalizer: EventCanonicalizer,
        repositories: Repositories,
        *,
        cdc_topic_prefix: str = "dbserver1",
        cdc_schema: str = "public",
        trigger_key_template: str = "{table}_table_change",
        webhook_topic: str = "workflow.webhooks",
        webhook_trigger_header: str = "x-webhook-trigger",
    ) -> None:
        self._bus = bus
        self._engine = engine
        self._canonicalizer = canonicalizer
        self._repositories = repositories
        self._cdc_topic_prefix = cdc_topic_prefix
        self._cdc_schema = cdc_schema
        self._trigger_key_template = trigger_key_template
        self._webhook_topic = webhook_topic
        self._webhook_trigger_header = webhook_trigger_header.lower()
        self.processed = 0
        self.dropped = 0

    async def topics(self) -> list[str]:
        """CDC topics for every active change-capture trigger, plus the webhook topic."""
        triggers = await self._repositories.triggers.find(
            event_source=EventSource.DEBEZIUM.value, is_active=True
        )
        topics = []
        for trigger in triggers:
            table = get_property_value(trigger.properties_schema, "table_name", "table")
            if table:
                topic = topic_for_table(table, self._cdc_topic_prefix, self._cdc_schema)
                if topic not in topics:
                    topics.append(topic)
        topics.append(self._webhook_topic)
        return topics

    async def start(self) -> list[str]:
        topics = await self.topics()
        for topic in topics:
            if topic == self._webhook_topic:
                self._bus.subscribe(topic, self.handle_webhook_message)
            else:
                self._bus.subscribe(topic, self.handle_cdc_message)
        await self._bus.start_consuming()
        logger.info(f"Event ingestion listening on: {', '.join(topics)}")
        return topics

    async def handle_cdc_message(self, message: Message) -> TriggerProcessResult | None:
        try:
            event = self._canonicalizer.from_debezium(message.payload, topic=message.topic)
            if event is None:
                self.dropped += 1
                return None
            event.metadata.setdefault("offset", message.offset)
            event.metadata.setdefault("partition", message.partition)

            # The record's own source table wins over the topic name
            if event.table:
                trigger_key = self._trigger_key_template.format(table=event.table)
            else:
                trigger_key = trigger_key_for_topic(message.topic, self._trigger_key_template)
            if not trigger_key:
                logger.warning(f"No trigger key for topic {message.topic}")
                self.dropped += 1
                return None

            result = await self._engine.process_trigger_event(
                trigger_key,
                event,
                WorkflowContext(trigger_event_id=event.id),
            )
            self.processed += 1
            return result
        except Exception:
            logger.exception(f"Failed to ingest change event from {message.topic}@{message.offset}")
            self.dropped += 1
            return None

    async def handle_webhook_message(self, message: Message) -> TriggerProcessResult | None:
        try:
            payload = message.payload if isinstance(message.payload, dict) else {"body": message.payload}
            headers = {str(k).lower(): v for k, v in (payload.get("headers") or {}).items()}
            headers.update({str(k).lower(): v for k, v in message.headers.items()})
            url = payload.get("url") or ""

            trigger_key = self._webhook_trigger_key(payload, headers, url)
            if not trigger_key:
                logger.warning(f"Webhook message {message.offset} has no trigger key, dropping")
                self.dropped += 1
                return None

            event = self._canonicalizer.from_webhook(
                url=url,
                method=payload.get("method") or "POST",
                headers=headers,
                body=payload.get("body"),
                query=payload.get("query"),
                topic=message.topic,
            )
            result = await self._engine.process_trigger_event(
                trigger_key,
                event,
                WorkflowContext(trigger_event_id=event.id),
            )
            self.processed += 1
            return result
        except Exception:
            logger.exception(f"Failed to ingest webhook message {message.offset}")
            self.dropped += 1
            return None

    def _webhook_trigger_key(
        self,
        payload: dict[str, Any],
        headers: dict[str, Any],
        url: str,
    ) -> str | None:
        key = headers.get(self._webhook_trigger_header) or payload.get("triggerKey")
        if key:
            return str(key)
        segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
        return segment or None
