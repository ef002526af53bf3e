"""Filter engine for evaluating condition/group trees against event data.

A filter node is either a condition::

    {"variable": "{{variable.after.is_active}}", "operator": "equals", "value": true}

or a group::

    {"combinator": "AND", "conditions": [<node>, ...]}

Legacy groups that spell the combinator as ``operator: "AND"`` are accepted too.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any

from ..core.exceptions import ValidationError
from .paths import get_path
from .types import MISSING

logger = logging.getLogger(__name__)

_FIELD_WRAPPER = re.compile(r"^\{\{\s*(?:variable|trigger)\.(.+?)\s*\}\}$")

# Squashed alias -> operator
_OPERATOR_ALIASES: dict[str, str] = {
    "equals": "equals",
    "eq": "equals",
    "=": "equals",
    "==": "equals",
    "notequals": "not_equals",
    "ne": "not_equals",
    "!=": "not_equals",
    "contains": "contains",
    "notcontains": "not_contains",
    "startswith": "starts_with",
    "endswith": "ends_with",
    "greaterthan": "greater_than",
    "gt": "greater_than",
    ">": "greater_than",
    "greaterthanorequal": "greater_than_or_equal",
    "greaterthanorequals": "greater_than_or_equal",
    "gte": "greater_than_or_equal",
    ">=": "greater_than_or_equal",
    "lessthan": "less_than",
    "lt": "less_than",
    "<": "less_than",
    "lessthanorequal": "less_than_or_equal",
    "lessthanorequals": "less_than_or_equal",
    "lte": "less_than_or_equal",
    "<=": "less_than_or_equal",
    "in": "in",
    "notin": "not_in",
    "isempty": "is_empty",
    "isnull": "is_empty",
    "isnotempty": "is_not_empty",
    "isnotnull": "is_not_empty",
    "between": "between",
    "regex": "regex",
    "matches": "regex",
}

UNARY_OPERATORS = frozenset({"is_empty", "is_not_empty"})
LIST_OPERATORS = frozenset({"in", "not_in"})
COMBINATORS = frozenset({"AND", "OR"})


def normalize_operator(operator: str) -> str | None:
    """Map any accepted spelling to its operator name, or None."""
    squashed = re.sub(r"[\s_]", "", operator).lower()
    return _OPERATOR_ALIASES.get(squashed)


def normalize_field_path(field: str) -> str:
    """Strip a ``{{variable.x}}`` / ``{{trigger.x}}`` wrapper down to ``x``."""
    match = _FIELD_WRAPPER.match(field.strip())
    return match.group(1) if match else field.strip()


def is_group(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    if "combinator" in node or isinstance(node.get("conditions"), list):
        return True
    legacy = node.get("operator")
    return isinstance(legacy, str) and legacy.upper() in COMBINATORS and "conditions" in node


def is_filter_node(node: Any) -> bool:
    """True for a filter tree, False for e.g. a UI field catalogue."""
    if not isinstance(node, dict):
        return False
    if is_group(node):
        return True
    return ("field" in node or "variable" in node) and "operator" in node


# --- Value helpers ---


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compare_values(left: Any, right: Any) -> int | None:
    """Three-way compare: numbers, then dates, then strings. None if incomparable."""
    if left is MISSING or right is MISSING or left is None or right is None:
        return None

    left_num, right_num = _to_number(left), _to_number(right)
    if left_num is not None and right_num is not None:
        return (left_num > right_num) - (left_num < right_num)

    left_date, right_date = _to_datetime(left), _to_datetime(right)
    if left_date is not None and right_date is not None:
        return (left_date > right_date) - (left_date < right_date)

    left_text, right_text = _to_text(left), _to_text(right)
    return (left_text > right_text) - (left_text < right_text)


def strict_equals(left: Any, right: Any) -> bool:
    if left is MISSING or right is MISSING:
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    left_is_num = isinstance(left, (int, float))
    right_is_num = isinstance(right, (int, float))
    if left_is_num or right_is_num:
        return left_is_num and right_is_num and left == right
    if type(left) is not type(right):
        return False
    return left == right


def _coerce(value: Any, type_name: Any) -> Any:
    """Coerce a string filter value to the declared condition type."""
    if isinstance(value, list):
        return [_coerce(item, type_name) for item in value]
    if not isinstance(value, str) or not isinstance(type_name, str):
        return value

    kind = type_name.lower()
    if kind == "number":
        number = _to_number(value)
        if number is None:
            return value
        return int(number) if number.is_integer() else number
    if kind == "boolean":
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
    return value


# --- Operators ---


def _contains(field_value: Any, value: Any) -> bool:
    if isinstance(field_value, str):
        if value is None or value is MISSING:
            return False
        return _to_text(value).lower() in field_value.lower()
    if isinstance(field_value, (list, tuple)):
        return any(strict_equals(item, value) for item in field_value)
    return False


def _affix(field_value: Any, value: Any, suffix: bool) -> bool:
    if not isinstance(field_value, str) or value is None or value is MISSING:
        return False
    haystack, needle = field_value.lower(), _to_text(value).lower()
    return haystack.endswith(needle) if suffix else haystack.startswith(needle)


def _ordered(field_value: Any, value: Any, accept: tuple[int, ...]) -> bool:
    result = compare_values(field_value, value)
    return result is not None and result in accept


def _between(field_value: Any, value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    low = compare_values(field_value, value[0])
    high = compare_values(field_value, value[1])
    return low is not None and high is not None and low >= 0 and high <= 0


def _membership(field_value: Any, value: Any) -> bool | None:
    if not isinstance(value, (list, tuple)):
        return None
    return any(strict_equals(field_value, item) for item in value)


def _is_empty(field_value: Any) -> bool:
    return field_value is MISSING or field_value is None or field_value == ""


def _regex(field_value: Any, pattern: Any) -> bool:
    if not isinstance(pattern, str) or field_value is MISSING or field_value is None:
        return False
    if isinstance(field_value, (dict, list)):
        return False
    try:
        return re.search(pattern, _to_text(field_value), re.IGNORECASE) is not None
    except re.error as e:
        logger.debug(f"Invalid filter regex {pattern!r}: {e}")
        return False


def apply_operator(operator: str, field_value: Any, value: Any) -> bool:
    """Apply a normalized operator. Unknown operators never match."""
    if operator == "equals":
        return strict_equals(field_value, value)
    if operator == "not_equals":
        return not strict_equals(field_value, value)
    if operator == "contains":
        return _contains(field_value, value)
    if operator == "not_contains":
        return not _contains(field_value, value)
    if operator == "starts_with":
        return _affix(field_value, value, suffix=False)
    if operator == "ends_with":
        return _affix(field_value, value, suffix=True)
    if operator == "greater_than":
        return _ordered(field_value, value, (1,))
    if operator == "greater_than_or_equal":
        return _ordered(field_value, value, (0, 1))
    if operator == "less_than":
        return _ordered(field_value, value, (-1,))
    if operator == "less_than_or_equal":
        return _ordered(field_value, value, (-1, 0))
    if operator == "between":
        return _between(field_value, value)
    if operator == "in":
        return bool(_membership(field_value, value))
    if operator == "not_in":
        member = _membership(field_value, value)
        return member is False
    if operator == "is_empty":
        return _is_empty(field_value)
    if operator == "is_not_empty":
        return not _is_empty(field_value)
    if operator == "regex":
        return _regex(field_value, value)

    logger.warning(f"Unknown filter operator: {operator}")
    return False


class FilterEngine:
    """Evaluates filter trees. Evaluation never raises."""

    def evaluate(self, node: Any, data: Any) -> bool:
        """Evaluate a filter node. ``None`` means no filter and always matches."""
        if node is None:
            return True
        if not isinstance(node, dict):
            logger.warning(f"Ignoring malformed filter node of type {type(node).__name__}")
            return False
        if is_group(node):
            return self._evaluate_group(node, data)
        return self._evaluate_condition(node, data)

    def evaluate_all(self, nodes: list[Any], data: Any) -> bool:
        """AND over a flat list of filter nodes."""
        return all(self.evaluate(node, data) for node in nodes)

    def _evaluate_group(self, group: dict[str, Any], data: Any) -> bool:
        conditions = group.get("conditions") or []
        if not isinstance(conditions, list):
            logger.warning("Filter group conditions must be a list")
            return False

        combinator = str(group.get("combinator") or group.get("operator") or "AND").upper()
        if combinator not in COMBINATORS:
            logger.warning(f"Unknown filter combinator: {combinator}")
            return False

        # Empty groups pass through
        if not conditions:
            return True

        if combinator == "AND":
            return all(self.evaluate(child, data) for child in conditions)
        return any(self.evaluate(child, data) for child in conditions)

    def _evaluate_condition(self, condition: dict[str, Any], data: Any) -> bool:
        field = condition.get("field") or condition.get("variable")
        raw_operator = condition.get("operator")
        if not isinstance(field, str) or not isinstance(raw_operator, str):
            logger.warning(f"Skipping malformed filter condition: {condition}")
            return False

        operator = normalize_operator(raw_operator)
        if operator is None:
            logger.warning(f"Unknown filter operator: {raw_operator}")
            return False

        field_value = get_path(data, normalize_field_path(field))
        value = _coerce(condition.get("value"), condition.get("type"))
        try:
            return apply_operator(operator, field_value, value)
        except Exception as e:
            logger.warning(f"Filter condition on '{field}' could not be evaluated: {e}")
            return False

    # --- Validation ---

    def validate(self, node: Any, path: str = "filter") -> list[str]:
        """Collect structural errors. An empty list means the node is valid."""
        if node is None:
            return []
        if not isinstance(node, dict):
            return [f"{path}: must be an object"]

        if is_group(node):
            errors: list[str] = []
            combinator = node.get("combinator", node.get("operator", "AND"))
            if not isinstance(combinator, str) or combinator.upper() not in COMBINATORS:
                errors.append(f"{path}.combinator: must be AND or OR")
            conditions = node.get("conditions")
            if not isinstance(conditions, list):
                errors.append(f"{path}.conditions: must be a list")
                return errors
            for index, child in enumerate(conditions):
                errors.extend(self.validate(child, f"{path}.conditions[{index}]"))
            return errors

        return self._validate_condition(node, path)

    def _validate_condition(self, condition: dict[str, Any], path: str) -> list[str]:
        errors: list[str] = []
        field = condition.get("field") or condition.get("variable")
        if not isinstance(field, str) or not field.strip():
            errors.append(f"{path}.field: is required")

        raw_operator = condition.get("operator")
        if not isinstance(raw_operator, str) or not raw_operator:
            errors.append(f"{path}.operator: is required")
            return errors

        operator = normalize_operator(raw_operator)
        if operator is None:
            errors.append(f"{path}.operator: unknown operator '{raw_operator}'")
            return errors

        value = condition.get("value", MISSING)
        if operator not in UNARY_OPERATORS and value is MISSING:
            errors.append(f"{path}.value: is required for operator '{raw_operator}'")
        elif operator in LIST_OPERATORS and not isinstance(value, list):
            errors.append(f"{path}.value: must be a list for operator '{raw_operator}'")
        elif operator == "between" and (not isinstance(value, list) or len(value) != 2):
            errors.append(f"{path}.value: must be a [min, max] list for 'between'")
        elif operator == "regex" and isinstance(value, str):
            try:
                re.compile(value)
            except re.error as e:
                errors.append(f"{path}.value: invalid regex ({e})")
        return errors

    def ensure_valid(self, node: Any, path: str = "filter") -> None:
        """Raise ValidationError when the node is malformed."""
        errors = self.validate(node, path)
        if errors:
            raise ValidationError(
                f"Invalid filter: {'; '.join(errors)}",
                field=path,
                errors=errors,
            )
