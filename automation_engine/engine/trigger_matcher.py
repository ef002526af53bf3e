"""
Trigger matcher.

Decides whether a canonical event fires a trigger, and which active
subscriptions of that trigger accept it.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
from typing import TYPE_CHECKING, Any, Callable

from ..core.exceptions import AutomationEngineError, TriggerNotFoundError
from .event_canonicalizer import EventCanonicalizer
from .filter_engine import FilterEngine, is_filter_node
from .types import CanonicalEvent, EventSource, Operation

if TYPE_CHECKING:
    from ..db.models import SubscriptionModel, TriggerRegistryModel
    from ..repositories import Repositories

logger = logging.getLogger(__name__)

# (secret, raw body, provided signature) -> valid
SignatureVerifier = Callable[[str, bytes, str], bool]

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


def verify_hmac_sha256(secret: str, body: bytes, signature: str) -> bool:
    """Check a hex HMAC-SHA256 signature, with or without a ``sha256=`` prefix."""
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(expected, provided.lower())


def matches_url_pattern(url: str, pattern: str) -> bool:
    """Wildcard match: ``*`` is any run, ``?`` is one character. Anchored, case-insensitive."""
    regex = "^" + re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".") + "$"
    return re.match(regex, url, re.IGNORECASE) is not None


def get_property_value(properties: Any, *names: str) -> Any:
    """
    Read a configured trigger property.

    Accepts a list of ``{"name", "value"}`` entries, an object wrapping such a
    list under ``properties``, or a plain mapping of name to value or ``{"value"}``.
    The first name with a non-null value wins.
    """
    if isinstance(properties, dict) and isinstance(properties.get("properties"), list):
        properties = properties["properties"]

    for name in names:
        value = None
        if isinstance(properties, list):
            for entry in properties:
                if isinstance(entry, dict) and entry.get("name") == name:
                    value = entry.get("value")
                    break
        elif isinstance(properties, dict) and name in properties:
            entry = properties[name]
            value = entry.get("value") if isinstance(entry, dict) else entry
        if value is not None:
            return value
    return None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def validate_trigger_config(event_source: str, config: dict[str, Any]) -> list[str]:
    """Structural checks for a trigger's source configuration."""
    errors: list[str] = []
    source = (event_source or "").lower()

    if source == EventSource.WEBHOOK.value:
        url_pattern = config.get("urlPattern")
        if url_pattern is not None and not isinstance(url_pattern, str):
            errors.append("urlPattern must be a string")
        methods = config.get("methods")
        if methods is not None:
            if not isinstance(methods, list):
                errors.append("methods must be a list")
            else:
                unknown = [m for m in methods if not isinstance(m, str) or m.upper() not in HTTP_METHODS]
                if unknown:
                    errors.append(f"methods contains unsupported values: {unknown}")
        headers = config.get("requiredHeaders")
        if headers is not None and not isinstance(headers, dict):
            errors.append("requiredHeaders must be an object")
        if bool(config.get("signatureHeader")) != bool(config.get("secretKey")):
            errors.append("signatureHeader and secretKey must be configured together")

    elif source == EventSource.DEBEZIUM.value:
        table = config.get("tableName")
        if not isinstance(table, str) or not table:
            errors.append("tableName is required")
        operations = config.get("operations")
        if operations is not None:
            if not isinstance(operations, list):
                errors.append("operations must be a list")
            else:
                unknown = [
                    op for op in operations
                    if not isinstance(op, str) or op.upper() not in Operation.__members__
                ]
                if unknown:
                    errors.append(f"operations contains unsupported values: {unknown}")
        monitored = config.get("monitoredFields")
        if monitored is not None and not isinstance(monitored, list):
            errors.append("monitoredFields must be a list")

    return errors


class TriggerMatcher:
    """Matches events against triggers and their subscriptions."""

    def __init__(
        self,
        repositories: Repositories,
        filter_engine: FilterEngine,
        canonicalizer: EventCanonicalizer,
        signature_verifier: SignatureVerifier | None = None,
    ) -> None:
        self._repositories = repositories
        self._filter_engine = filter_engine
        self._canonicalizer = canonicalizer
        self._verify_signature = signature_verifier or verify_hmac_sha256

    async def get_trigger(self, trigger_key: str) -> TriggerRegistryModel | None:
        """Active registry entry for ``trigger_key``, or None (logged)."""
        trigger = await self._repositories.triggers.find_one(key=trigger_key, is_active=True)
        if trigger is None:
            logger.warning(TriggerNotFoundError(trigger_key).message)
        return trigger

    async def should_trigger(self, trigger_key: str, event: CanonicalEvent | dict[str, Any]) -> bool:
        """Registry lookup, source pre-filter and the trigger's own filter."""
        trigger = await self.get_trigger(trigger_key)
        if trigger is None:
            return False
        return self.passes_trigger(trigger, self._as_event(event))

    async def find_matches(
        self,
        trigger_key: str,
        event: CanonicalEvent | dict[str, Any],
        trigger: TriggerRegistryModel | None = None,
    ) -> list[SubscriptionModel]:
        """Active subscriptions whose workflow is active and whose filter accepts the event."""
        canonical = self._as_event(event)
        if trigger is None:
            trigger = await self.get_trigger(trigger_key)
        if trigger is None or not self.passes_trigger(trigger, canonical):
            return []

        event_data = event if isinstance(event, dict) else canonical.to_dict()
        subscriptions = await self._repositories.subscriptions.find(
            trigger_key=trigger_key, is_active=True
        )

        matches = []
        for subscription in subscriptions:
            workflow = await self._repositories.definitions.find_one(id=subscription.workflow_id)
            if workflow is None or not workflow.is_active:
                logger.debug(
                    f"Skipping subscription {subscription.id}: workflow "
                    f"{subscription.workflow_id} missing or inactive"
                )
                continue
            if self.matches_subscription(subscription, event_data):
                matches.append(subscription)

        logger.info(
            f"Trigger {trigger_key}: {len(matches)} of {len(subscriptions)} subscriptions matched"
        )
        return matches

    def matches_subscription(self, subscription: SubscriptionModel, event_data: dict[str, Any]) -> bool:
        conditions = subscription.filter_conditions
        if not conditions:
            return True
        errors = self._filter_engine.validate(conditions)
        if errors:
            logger.warning(
                f"Subscription {subscription.id} has an invalid filter, not matching: {'; '.join(errors)}"
            )
            return False
        return self._filter_engine.evaluate(conditions, event_data)

    def passes_trigger(self, trigger: TriggerRegistryModel, event: CanonicalEvent) -> bool:
        """Source-specific pre-filter followed by the trigger's filter_schema."""
        try:
            source = (trigger.event_source or "").lower()
            if source == EventSource.DEBEZIUM.value:
                if not self._passes_database_change(trigger, event):
                    return False
            elif source == EventSource.WEBHOOK.value:
                if not self._passes_webhook(trigger, event):
                    return False
            return self._passes_filter_schema(trigger, event)
        except AutomationEngineError as e:
            logger.warning(f"Trigger {trigger.key} rejected event: {e.message}")
            return False
        except Exception as e:
            logger.warning(f"Trigger {trigger.key} could not be evaluated, not matching: {e!r}")
            return False

    # --- Source pre-filters ---

    def _passes_database_change(self, trigger: TriggerRegistryModel, event: CanonicalEvent) -> bool:
        properties = trigger.properties_schema

        table = get_property_value(properties, "table_name", "table")
        if table and event.table != table:
            logger.debug(f"Trigger {trigger.key}: table {event.table} != {table}")
            return False

        allowed = [str(op).upper() for op in _as_list(get_property_value(properties, "change_type"))]
        if allowed and "ALL" not in allowed and "*" not in allowed:
            if (event.operation or "").upper() not in allowed:
                logger.debug(f"Trigger {trigger.key}: operation {event.operation} not in {allowed}")
                return False

        if event.operation == Operation.UPDATE.value:
            monitored = _as_list(get_property_value(properties, "monitor_fields"))
            if monitored and not any(name in event.changed_fields for name in monitored):
                logger.debug(f"Trigger {trigger.key}: none of {monitored} changed")
                return False

        if get_property_value(properties, "status_change_only"):
            before_status = (event.before or {}).get("status")
            after_status = (event.after or {}).get("status")
            if "status" not in event.changed_fields or before_status == after_status:
                logger.debug(f"Trigger {trigger.key}: status did not change")
                return False

        return True

    def _passes_webhook(self, trigger: TriggerRegistryModel, event: CanonicalEvent) -> bool:
        config = trigger.webhook_config or {}
        if not isinstance(config, dict):
            logger.warning(f"Trigger {trigger.key}: webhook_config must be an object")
            return False
        errors = validate_trigger_config(EventSource.WEBHOOK.value, config)
        if errors:
            logger.warning(f"Trigger {trigger.key} has an invalid webhook_config: {'; '.join(errors)}")
            return False
        headers = event.headers or {}

        pattern = config.get("urlPattern")
        if pattern and not matches_url_pattern(event.url or "", pattern):
            logger.debug(f"Trigger {trigger.key}: url {event.url} does not match {pattern}")
            return False

        methods = [str(m).upper() for m in config.get("methods") or []]
        if methods and (event.method or "").upper() not in methods:
            logger.debug(f"Trigger {trigger.key}: method {event.method} not in {methods}")
            return False

        for name, expected in (config.get("requiredHeaders") or {}).items():
            actual = headers.get(str(name).lower())
            if actual is None:
                logger.debug(f"Trigger {trigger.key}: missing header {name}")
                return False
            if expected not in (None, "", "*") and str(actual) != str(expected):
                logger.debug(f"Trigger {trigger.key}: header {name} mismatch")
                return False

        signature_header = config.get("signatureHeader")
        secret = config.get("secretKey")
        if signature_header and secret:
            signature = headers.get(str(signature_header).lower())
            if not signature:
                logger.warning(f"Trigger {trigger.key}: signature header {signature_header} missing")
                return False
            body = event.raw_body
            if body is None:
                body = json.dumps(event.data, separators=(",", ":")).encode()
            if not self._verify_signature(secret, body, signature):
                logger.warning(f"Trigger {trigger.key}: webhook signature verification failed")
                return False

        return True

    def _passes_filter_schema(self, trigger: TriggerRegistryModel, event: CanonicalEvent) -> bool:
        schema = trigger.filter_schema
        # filter_schema may also hold a UI field catalogue
        if not is_filter_node(schema):
            return True

        errors = self._filter_engine.validate(schema)
        if errors:
            logger.warning(f"Trigger {trigger.key} has an invalid filter_schema: {'; '.join(errors)}")
            return False

        data = event.to_dict()
        if event.source == EventSource.DEBEZIUM.value:
            data.update(self._canonicalizer.flatten_for_filters(event))
        return self._filter_engine.evaluate(schema, data)

    @staticmethod
    def _as_event(event: CanonicalEvent | dict[str, Any]) -> CanonicalEvent:
        if isinstance(event, CanonicalEvent):
            return event
        return CanonicalEvent.from_dict(event)
