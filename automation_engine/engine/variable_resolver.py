"""
Variable resolver for {{variable.path}} and {{trigger.path}} tokens.

Walks the config structurally and only rewrites leaf strings, so values are
never round-tripped through serialized text.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .paths import get_path
from .types import MISSING, WorkflowContext

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{\s*(variable|trigger)\.([^{}]+?)\s*\}\}")


class VariableResolver:
    """Resolves templated config against a run context."""

    def resolve(self, config: Any, context: WorkflowContext) -> Any:
        """
        Resolve every token in ``config``.

        A token that is the whole string yields the native value. A token
        embedded in text yields its string form. Unresolvable tokens stay
        as written. Any unexpected failure returns ``config`` unchanged.
        """
        try:
            return self._walk(config, context)
        except Exception:
            logger.exception("Variable resolution failed, using unresolved config")
            return config

    def resolve_value(self, family: str, path: str, context: WorkflowContext) -> Any:
        """Look up one token. Returns MISSING when it does not resolve."""
        source = context.trigger_data if family == "trigger" else context.variables
        return get_path(source, path.strip())

    def find_tokens(self, config: Any) -> list[str]:
        """List the distinct tokens referenced anywhere in ``config``."""
        found: list[str] = []

        def collect(value: Any) -> None:
            if isinstance(value, str):
                for match in TOKEN_PATTERN.finditer(value):
                    token = f"{match.group(1)}.{match.group(2).strip()}"
                    if token not in found:
                        found.append(token)
            elif isinstance(value, dict):
                for item in value.values():
                    collect(item)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    collect(item)

        collect(config)
        return found

    def _walk(self, value: Any, context: WorkflowContext) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, context)
        if isinstance(value, dict):
            return {key: self._walk(item, context) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._walk(item, context) for item in value]
        return value

    def _resolve_string(self, text: str, context: WorkflowContext) -> Any:
        whole = TOKEN_PATTERN.fullmatch(text.strip())
        if whole:
            resolved = self.resolve_value(whole.group(1), whole.group(2), context)
            return text if resolved is MISSING else resolved

        def replacer(match: re.Match[str]) -> str:
            resolved = self.resolve_value(match.group(1), match.group(2), context)
            if resolved is MISSING:
                return match.group(0)
            return self._stringify(resolved)

        return TOKEN_PATTERN.sub(replacer, text)

    @staticmethod
    def _stringify(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)
