"""Tests for automation_engine.engine.variable_resolver."""

from __future__ import annotations

import pytest

from automation_engine.engine.types import MISSING, WorkflowContext
from automation_engine.engine.variable_resolver import VariableResolver


@pytest.fixture
def resolver() -> VariableResolver:
    return VariableResolver()


@pytest.fixture
def context() -> WorkflowContext:
    return WorkflowContext(
        trigger_data={"after": {"id": "ls_1", "name": "Email Marketing Campaign"}},
        variables={
            "after": {"id": "ls_1", "name": "Email Marketing Campaign", "score": 75},
            "owner": "Dana",
            "items": [{"sku": "A-1"}, {"sku": "B-2"}],
            "send_welcome": {"messageId": "msg_1", "status": "sent"},
            "flags": {"urgent": True},
        },
    )


class TestWholeTokens:
    def test_whole_token_keeps_native_type(self, resolver, context):
        assert resolver.resolve("{{variable.after.score}}", context) == 75
        assert resolver.resolve("{{variable.flags}}", context) == {"urgent": True}

    def test_whitespace_inside_braces(self, resolver, context):
        assert resolver.resolve("{{ variable.owner }}", context) == "Dana"

    def test_trigger_family_reads_trigger_data(self, resolver, context):
        assert resolver.resolve("{{trigger.after.id}}", context) == "ls_1"

    def test_list_index(self, resolver, context):
        assert resolver.resolve("{{variable.items.1.sku}}", context) == "B-2"


class TestEmbeddedTokens:
    def test_embedded_token_is_stringified(self, resolver, context):
        text = "Setup lead source: {{variable.after.name}} ({{variable.after.score}})"
        assert resolver.resolve(text, context) == "Setup lead source: Email Marketing Campaign (75)"

    def test_embedded_object_is_json(self, resolver, context):
        assert resolver.resolve("flags={{variable.flags}}", context) == 'flags={"urgent": true}'

    def test_unresolved_token_stays_as_written(self, resolver, context):
        assert resolver.resolve("Hi {{variable.nobody}}", context) == "Hi {{variable.nobody}}"
        assert resolver.resolve("{{variable.after.missing}}", context) == "{{variable.after.missing}}"


class TestStructuralWalk:
    def test_nested_config(self, resolver, context):
        config = {
            "operation": "create",
            "title": "Follow up with {{variable.owner}}",
            "entityId": "{{variable.after.id}}",
            "additionalData": {"message": "{{variable.send_welcome.messageId}}", "count": 3},
            "recipients": ["{{variable.owner}}", "ops@example.com"],
        }
        assert resolver.resolve(config, context) == {
            "operation": "create",
            "title": "Follow up with Dana",
            "entityId": "ls_1",
            "additionalData": {"message": "msg_1", "count": 3},
            "recipients": ["Dana", "ops@example.com"],
        }

    def test_input_is_not_mutated(self, resolver, context):
        config = {"title": "{{variable.owner}}"}
        resolver.resolve(config, context)
        assert config == {"title": "{{variable.owner}}"}

    def test_values_with_quotes_survive(self, resolver):
        context = WorkflowContext(variables={"name": 'He said "hi"\n'})
        assert resolver.resolve({"text": "{{variable.name}}!"}, context) == {"text": 'He said "hi"\n!'}

    def test_non_string_leaves_pass_through(self, resolver, context):
        assert resolver.resolve({"n": 1, "b": False, "none": None}, context) == {"n": 1, "b": False, "none": None}


class TestLookups:
    def test_resolve_value_missing(self, resolver, context):
        assert resolver.resolve_value("variable", "after.unknown", context) is MISSING

    def test_find_tokens(self, resolver):
        config = {"a": "{{variable.x}} and {{trigger.y.z}}", "b": ["{{variable.x}}"]}
        assert resolver.find_tokens(config) == ["variable.x", "trigger.y.z"]
