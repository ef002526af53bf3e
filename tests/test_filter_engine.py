"""Tests for automation_engine.engine.filter_engine.

Covers operators and their aliases, groups, missing fields, type
coercion and structural validation.
"""

from __future__ import annotations

import pytest

from automation_engine.core.exceptions import ValidationError
from automation_engine.engine.filter_engine import (
    FilterEngine,
    compare_values,
    is_filter_node,
    normalize_field_path,
    normalize_operator,
)
from automation_engine.engine.types import MISSING

EVENT = {
    "operation": "UPDATE",
    "before": {"is_active": False, "score": 40, "name": "Email Campaign"},
    "after": {
        "is_active": True,
        "score": 75,
        "name": "Email Marketing Campaign",
        "tags": ["email", "q1"],
        "created": "2024-01-10T08:00:00+00:00",
        "notes": "",
    },
}


def cond(field: str, operator: str, value=MISSING, **extra) -> dict:
    node = {"field": field, "operator": operator, **extra}
    if value is not MISSING:
        node["value"] = value
    return node


@pytest.fixture
def engine() -> FilterEngine:
    return FilterEngine()


class TestOperatorNormalization:
    @pytest.mark.parametrize(
        "spelling, expected",
        [
            ("equals", "equals"),
            ("EQ", "equals"),
            ("==", "equals"),
            ("notEquals", "not_equals"),
            ("not_contains", "not_contains"),
            ("Greater Than", "greater_than"),
            ("gte", "greater_than_or_equal"),
            ("isNull", "is_empty"),
            ("matches", "regex"),
        ],
    )
    def test_aliases(self, spelling, expected):
        assert normalize_operator(spelling) == expected

    def test_unknown_operator(self):
        assert normalize_operator("roughly") is None

    def test_field_wrapper_is_stripped(self):
        assert normalize_field_path("{{variable.after.name}}") == "after.name"
        assert normalize_field_path("{{ trigger.after.id }}") == "after.id"
        assert normalize_field_path("after.name") == "after.name"


class TestEquality:
    def test_equals_is_type_strict(self, engine):
        assert engine.evaluate(cond("after.score", "equals", 75), EVENT)
        assert not engine.evaluate(cond("after.score", "equals", "75"), EVENT)

    def test_booleans_never_equal_numbers(self, engine):
        assert not engine.evaluate(cond("after.is_active", "equals", 1), EVENT)
        assert engine.evaluate(cond("after.is_active", "equals", True), EVENT)

    def test_not_equals_on_missing_field_matches(self, engine):
        assert engine.evaluate(cond("after.unknown", "not_equals", "x"), EVENT)

    def test_equals_on_missing_field_does_not_match(self, engine):
        assert not engine.evaluate(cond("after.unknown", "equals", None), EVENT)


class TestStringOperators:
    def test_contains_is_case_insensitive(self, engine):
        assert engine.evaluate(cond("after.name", "contains", "MARKETING"), EVENT)

    def test_contains_on_list(self, engine):
        assert engine.evaluate(cond("after.tags", "contains", "q1"), EVENT)
        assert not engine.evaluate(cond("after.tags", "contains", "q2"), EVENT)

    def test_not_contains_negates_contains(self, engine):
        assert engine.evaluate(cond("after.name", "not_contains", "sms"), EVENT)
        assert not engine.evaluate(cond("after.name", "not_contains", "email"), EVENT)

    def test_starts_and_ends_with(self, engine):
        assert engine.evaluate(cond("after.name", "startsWith", "email"), EVENT)
        assert engine.evaluate(cond("after.name", "ends_with", "campaign"), EVENT)

    def test_regex(self, engine):
        assert engine.evaluate(cond("after.name", "regex", r"^email\s+marketing"), EVENT)
        assert not engine.evaluate(cond("after.name", "regex", "[unclosed"), EVENT)


class TestOrderedOperators:
    def test_numeric_comparison(self, engine):
        assert engine.evaluate(cond("after.score", "greater_than", 50), EVENT)
        assert engine.evaluate(cond("after.score", "less_than_or_equal", 75), EVENT)
        assert not engine.evaluate(cond("after.score", "lt", 75), EVENT)

    def test_numeric_strings_compare_as_numbers(self):
        assert compare_values("10", "9") == 1

    def test_dates_compare_chronologically(self, engine):
        assert engine.evaluate(cond("after.created", "greater_than", "2024-01-01"), EVENT)

    def test_missing_is_incomparable(self, engine):
        assert compare_values(MISSING, 1) is None
        assert not engine.evaluate(cond("after.unknown", "greater_than", 0), EVENT)
        assert not engine.evaluate(cond("after.unknown", "less_than", 0), EVENT)

    def test_between_is_inclusive(self, engine):
        assert engine.evaluate(cond("after.score", "between", [75, 100]), EVENT)
        assert not engine.evaluate(cond("after.score", "between", [0, 50]), EVENT)


class TestMembershipAndEmptiness:
    def test_in_and_not_in(self, engine):
        assert engine.evaluate(cond("operation", "in", ["INSERT", "UPDATE"]), EVENT)
        assert engine.evaluate(cond("operation", "not_in", ["DELETE"]), EVENT)
        assert engine.evaluate(cond("after.unknown", "not_in", ["x"]), EVENT)

    def test_is_empty(self, engine):
        assert engine.evaluate(cond("after.notes", "is_empty"), EVENT)
        assert engine.evaluate(cond("after.unknown", "is_empty"), EVENT)
        assert engine.evaluate(cond("after.name", "is_not_empty"), EVENT)


class TestTypeCoercion:
    def test_number_type_coerces_string_value(self, engine):
        assert engine.evaluate(cond("after.score", "equals", "75", type="number"), EVENT)

    def test_boolean_type_coerces_string_value(self, engine):
        assert engine.evaluate(cond("after.is_active", "equals", "true", type="boolean"), EVENT)


class TestGroups:
    def test_and_group(self, engine):
        group = {
            "combinator": "AND",
            "conditions": [
                cond("{{variable.operation}}", "equals", "UPDATE"),
                cond("{{variable.after.is_active}}", "equals", True),
            ],
        }
        assert engine.evaluate(group, EVENT)

    def test_or_group_with_nested_and(self, engine):
        group = {
            "combinator": "OR",
            "conditions": [
                cond("operation", "equals", "DELETE"),
                {
                    "combinator": "AND",
                    "conditions": [
                        cond("before.is_active", "equals", False),
                        cond("after.is_active", "equals", True),
                    ],
                },
            ],
        }
        assert engine.evaluate(group, EVENT)

    def test_legacy_operator_spelling(self, engine):
        group = {"operator": "or", "conditions": [cond("operation", "equals", "INSERT")]}
        assert not engine.evaluate(group, EVENT)

    def test_empty_group_matches(self, engine):
        assert engine.evaluate({"combinator": "AND", "conditions": []}, EVENT)

    def test_no_filter_matches(self, engine):
        assert engine.evaluate(None, EVENT)

    def test_unknown_combinator_does_not_match(self, engine):
        group = {"combinator": "XOR", "conditions": [cond("operation", "equals", "UPDATE")]}
        assert not engine.evaluate(group, EVENT)

    def test_unknown_operator_does_not_match(self, engine):
        assert not engine.evaluate(cond("operation", "resembles", "UPDATE"), EVENT)

    def test_evaluate_all(self, engine):
        nodes = [cond("operation", "equals", "UPDATE"), cond("after.score", "gt", 70)]
        assert engine.evaluate_all(nodes, EVENT)


class TestValidation:
    def test_valid_tree(self, engine):
        group = {"combinator": "AND", "conditions": [cond("operation", "in", ["UPDATE"])]}
        assert engine.validate(group) == []

    def test_collects_errors_with_paths(self, engine):
        group = {
            "combinator": "AND",
            "conditions": [
                {"operator": "equals", "value": 1},
                cond("operation", "bogus", 1),
                cond("operation", "in", "UPDATE"),
                cond("operation", "equals"),
            ],
        }
        errors = engine.validate(group)
        assert len(errors) == 4
        assert errors[0].startswith("filter.conditions[0].field")

    def test_unary_operator_needs_no_value(self, engine):
        assert engine.validate(cond("after.notes", "is_empty")) == []

    def test_ensure_valid_raises(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.ensure_valid(cond("operation", "between", [1]), path="condition")
        assert exc.value.field == "condition"
        assert exc.value.errors

    def test_is_filter_node(self):
        assert is_filter_node(cond("operation", "equals", "UPDATE"))
        assert is_filter_node({"combinator": "AND", "conditions": []})
        assert not is_filter_node({"fields": [{"name": "status"}]})
        assert not is_filter_node(None)
