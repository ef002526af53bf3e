"""Tests for automation_engine.engine.event_canonicalizer."""

from __future__ import annotations

import json

import pytest

from automation_engine.core.exceptions import TransformError
from automation_engine.engine.event_canonicalizer import (
    EventCanonicalizer,
    table_from_topic,
    topic_for_table,
    trigger_key_for_topic,
)
from automation_engine.engine.types import CanonicalEvent

TOPIC = "dbserver1.public.lead_sources"


def debezium_record(op: str, before=None, after=None, **extra) -> dict:
    return {
        "payload": {
            "op": op,
            "before": before,
            "after": after,
            "ts_ms": 1705320000000,
            "source": {"name": "dbserver1", "db": "crm", "schema": "public", "table": "lead_sources", "lsn": 42},
            **extra,
        }
    }


@pytest.fixture
def canonicalizer() -> EventCanonicalizer:
    return EventCanonicalizer()


class TestTopics:
    def test_table_from_topic(self):
        assert table_from_topic(TOPIC) == "lead_sources"
        assert table_from_topic(None) is None

    def test_topic_for_table(self):
        assert topic_for_table("lead_sources", "dbserver1", "public") == TOPIC

    def test_trigger_key_for_topic(self):
        assert trigger_key_for_topic(TOPIC) == "lead_sources_table_change"


class TestDebezium:
    def test_update(self, canonicalizer):
        record = debezium_record(
            "u",
            before={"id": 1, "is_active": False, "name": "A"},
            after={"id": 1, "is_active": True, "name": "A"},
        )
        event = canonicalizer.from_debezium(record, topic=TOPIC)

        assert event.operation == "UPDATE"
        assert event.table == "lead_sources"
        assert event.changed_fields == ["is_active"]
        assert event.source == "debezium"
        assert event.timestamp.year == 2024
        assert event.metadata["db"] == "crm"
        assert event.metadata["lsn"] == 42
        assert event.id.startswith("event_")

    def test_insert_drops_before_image(self, canonicalizer):
        event = canonicalizer.from_debezium(debezium_record("c", before={"id": 1}, after={"id": 1}))
        assert event.operation == "INSERT"
        assert event.before is None
        assert event.changed_fields == []

    def test_delete_and_snapshot(self, canonicalizer):
        assert canonicalizer.from_debezium(debezium_record("d", before={"id": 1})).operation == "DELETE"
        assert canonicalizer.from_debezium(debezium_record("r", after={"id": 1})).operation == "READ"

    def test_json_bytes_payload(self, canonicalizer):
        raw = json.dumps(debezium_record("u", before={"a": 1}, after={"a": 2})).encode()
        event = canonicalizer.from_debezium(raw, topic=TOPIC)
        assert event.changed_fields == ["a"]

    def test_bare_record_without_envelope(self, canonicalizer):
        event = canonicalizer.from_debezium({"op": "c", "after": {"id": 9}}, topic=TOPIC)
        assert event.table == "lead_sources"
        assert event.after == {"id": 9}

    def test_unknown_op_is_dropped(self, canonicalizer):
        assert canonicalizer.from_debezium(debezium_record("x", after={"id": 1})) is None

    def test_invalid_utf8_is_dropped(self, canonicalizer):
        raw = b'{"op":"c","after":{"a":"\xff"}}'
        assert canonicalizer.from_debezium(raw, topic=TOPIC) is None
        with pytest.raises(TransformError, match="not valid UTF-8"):
            canonicalizer.transform_debezium(raw)

    def test_transform_raises_for_garbage(self, canonicalizer):
        with pytest.raises(TransformError):
            canonicalizer.transform_debezium("not json")
        with pytest.raises(TransformError):
            canonicalizer.transform_debezium([1, 2, 3])

    def test_canonical_passthrough(self, canonicalizer):
        event = canonicalizer.from_debezium(
            {"operation": "update", "before": {"s": "new"}, "after": {"s": "won"}},
            topic=TOPIC,
        )
        assert event.operation == "UPDATE"
        assert event.table == "lead_sources"
        assert event.changed_fields == ["s"]


class TestChangedFields:
    def test_added_removed_and_nested(self):
        before = {"a": 1, "b": {"x": 1}, "gone": True}
        after = {"a": 1, "b": {"x": 2}, "new": None}
        assert EventCanonicalizer.changed_fields(before, after) == ["b", "gone", "new"]

    def test_key_order_does_not_matter_for_nested_values(self):
        assert EventCanonicalizer.changed_fields({"m": {"a": 1, "b": 2}}, {"m": {"b": 2, "a": 1}}) == []


class TestWebhook:
    def test_from_webhook(self, canonicalizer):
        event = canonicalizer.from_webhook(
            url="https://hooks.example.com/webhooks/orders",
            method="post",
            headers={"Content-Type": "application/json", "X-Signature": "abc"},
            body=b'{"order": 7}',
            query={"trigger": "incoming_webhook"},
        )
        assert event.is_webhook
        assert event.method == "POST"
        assert event.data == {"order": 7}
        assert event.raw_body == b'{"order": 7}'
        assert event.headers["x-signature"] == "abc"
        assert event.operation is None

        wire = event.to_dict()
        assert wire["data"] == {"order": 7}
        assert wire["query"] == {"trigger": "incoming_webhook"}

    def test_flatten_for_filters(self):
        event = CanonicalEvent(
            operation="UPDATE",
            table="lead_sources",
            before={"status": "new"},
            after={"status": "won"},
            changed_fields=["status"],
        )
        flat = EventCanonicalizer.flatten_for_filters(event)
        assert flat["after_status"] == "won"
        assert flat["before_status"] == "new"
        assert flat["operation_type"] == "UPDATE"
        assert flat["table_name"] == "lead_sources"


class TestWireShape:
    def test_round_trip_keeps_identity(self):
        event = CanonicalEvent(operation="INSERT", table="t", after={"id": 1}, changed_fields=[])
        copy = CanonicalEvent.from_dict(event.to_dict())
        assert copy.id == event.id
        assert copy.timestamp == event.timestamp
        assert copy.to_dict()["changedFields"] == []

    def test_from_dict_tolerates_bad_fields(self):
        event = CanonicalEvent.from_dict({"operation": "UPDATE", "timestamp": "yesterday", "headers": "x"})
        assert event.headers is None
        assert event.timestamp.tzinfo is not None
