"""
Event canonicalizer.

Normalizes raw change-capture records and webhook calls into one
CanonicalEvent shape so the matcher and the engine never see source formats.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from ..core.exceptions import TransformError
from .types import CanonicalEvent, EventSource, Operation

logger = logging.getLogger(__name__)

OPERATION_CODES: dict[str, Operation] = {
    "c": Operation.INSERT,
    "u": Operation.UPDATE,
    "d": Operation.DELETE,
    "r": Operation.READ,
}


def table_from_topic(topic: str | None) -> str | None:
    """``dbserver1.public.leads`` -> ``leads``."""
    if not topic:
        return None
    return topic.rsplit(".", 1)[-1] or None


def topic_for_table(table: str, prefix: str, schema: str) -> str:
    """Change-capture topic convention: ``<prefix>.<schema>.<table>``."""
    return f"{prefix}.{schema}.{table}"


def trigger_key_for_topic(topic: str, template: str = "{table}_table_change") -> str | None:
    table = table_from_topic(topic)
    return template.format(table=table) if table else None


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _from_epoch_ms(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _decode(payload: Any) -> Any:
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransformError(f"Payload is not valid UTF-8: {e}") from e
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise TransformError(f"Payload is not valid JSON: {e}") from e
    return payload


class EventCanonicalizer:
    """Builds CanonicalEvent instances from CDC and webhook sources."""

    def from_debezium(self, payload: Any, topic: str | None = None) -> CanonicalEvent | None:
        """Canonicalize a change-capture record. Returns None when the event is dropped."""
        try:
            return self.transform_debezium(payload, topic)
        except TransformError as e:
            logger.warning(f"Dropping change event from {topic or 'unknown topic'}: {e.message}")
            return None

    def transform_debezium(self, payload: Any, topic: str | None = None) -> CanonicalEvent:
        """Like ``from_debezium`` but raises TransformError instead of dropping."""
        payload = _decode(payload)
        if not isinstance(payload, dict):
            raise TransformError("Change event payload must be an object", payload)

        # Kafka Connect envelope or bare record
        record = payload["payload"] if isinstance(payload.get("payload"), dict) else payload

        if "op" not in record and self._looks_canonical(record):
            return self._from_canonical(record, topic)

        code = record.get("op")
        operation = OPERATION_CODES.get(code) if isinstance(code, str) else None
        if operation is None:
            raise TransformError(f"Unknown CDC operation code: {code!r}", payload)

        before = record.get("before")
        after = record.get("after")
        for name, image in (("before", before), ("after", after)):
            if image is not None and not isinstance(image, dict):
                raise TransformError(f"CDC '{name}' image must be an object", payload)

        if operation is Operation.INSERT:
            before = None

        source = record.get("source") if isinstance(record.get("source"), dict) else {}
        timestamp = (
            _from_epoch_ms(record.get("ts_ms"))
            or _from_epoch_ms(source.get("ts_ms"))
            or datetime.now(timezone.utc)
        )

        transaction = record.get("transaction")
        metadata = {
            "connector": source.get("name") or source.get("connector"),
            "db": source.get("db"),
            "schema": source.get("schema"),
            "topic": topic,
            "transaction_id": transaction.get("id") if isinstance(transaction, dict) else source.get("txId"),
            "lsn": source.get("lsn"),
            "offset": payload.get("offset"),
            "partition": payload.get("partition"),
        }

        return CanonicalEvent(
            operation=operation.value,
            table=source.get("table") or table_from_topic(topic),
            before=before,
            after=after,
            changed_fields=self.changed_fields(before, after) if operation is Operation.UPDATE else [],
            timestamp=timestamp,
            metadata={k: v for k, v in metadata.items() if v is not None},
            source=EventSource.DEBEZIUM.value,
        )

    def from_webhook(
        self,
        url: str,
        method: str,
        headers: dict[str, Any] | None,
        body: Any,
        query: dict[str, Any] | None = None,
        topic: str | None = None,
        raw_body: bytes | None = None,
    ) -> CanonicalEvent:
        """Wrap a webhook call. Operation stays unset and ``data`` is the body."""
        if isinstance(body, (bytes, bytearray)):
            raw_body = raw_body if raw_body is not None else bytes(body)
            text = body.decode("utf-8", errors="replace")
            try:
                body = json.loads(text) if text else None
            except json.JSONDecodeError:
                body = text

        return CanonicalEvent(
            operation=None,
            table=table_from_topic(topic),
            before=None,
            after=None,
            changed_fields=[],
            timestamp=datetime.now(timezone.utc),
            metadata={"topic": topic} if topic else {},
            source=EventSource.WEBHOOK.value,
            data=body,
            headers={str(k).lower(): str(v) for k, v in (headers or {}).items()},
            url=url,
            method=(method or "POST").upper(),
            query=dict(query or {}),
            raw_body=raw_body,
        )

    @staticmethod
    def changed_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[str]:
        """Keys present on either side whose serialized values differ."""
        before = before or {}
        after = after or {}
        keys = list(dict.fromkeys([*before.keys(), *after.keys()]))
        return [
            key
            for key in keys
            if key not in before
            or key not in after
            or _serialize(before[key]) != _serialize(after[key])
        ]

    @staticmethod
    def flatten_for_filters(event: CanonicalEvent) -> dict[str, Any]:
        """CDC view with ``after_<field>`` / ``before_<field>`` convenience keys."""
        before = event.before or {}
        after = event.after or {}
        flat: dict[str, Any] = {
            "operation_type": event.operation,
            "table_name": event.table,
            "before": before,
            "after": after,
            "changed_fields": list(event.changed_fields),
            "timestamp": event.timestamp.isoformat(),
        }
        for key, value in after.items():
            flat[f"after_{key}"] = value
        for key, value in before.items():
            flat[f"before_{key}"] = value
        return flat

    @staticmethod
    def _looks_canonical(record: dict[str, Any]) -> bool:
        operation = record.get("operation")
        return isinstance(operation, str) and operation.upper() in Operation.__members__

    def _from_canonical(self, record: dict[str, Any], topic: str | None) -> CanonicalEvent:
        event = CanonicalEvent.from_dict(record)
        event.operation = event.operation.upper() if event.operation else None
        if event.table is None:
            event.table = table_from_topic(topic)
        if event.operation == Operation.UPDATE.value and not event.changed_fields:
            event.changed_fields = self.changed_fields(event.before, event.after)
        return event
