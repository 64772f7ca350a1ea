"""Plain-text placeholder substitution for node templates.

Placeholders look like ``{{ user.email }}``. Each one is a dotted path looked
up in the trigger context; list elements are addressed by index
(``{{ items.0.name }}``). Nothing in a template is ever evaluated.
"""

import json
import re
from typing import Any, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
_PATH_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*(\.[A-Za-z0-9_\-]+)*$")

_MISSING = object()


class RenderError(Exception):
    """Raised when a template cannot be rendered."""

    def __init__(self, message: str, variable: str | None = None):
        self.variable = variable
        super().__init__(message)


def _lookup(context: Any, path: str) -> Any:
    current = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return _MISSING
        if current is _MISSING:
            return _MISSING
    return current


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


class TemplateRenderer:
    """Renders templates against a data context."""

    def __init__(self, strict: bool = True):
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    def variables(self, template: str) -> list[str]:
        """Placeholder paths referenced by a template, in order."""
        if not template:
            return []
        return [m.group(1) for m in PLACEHOLDER_PATTERN.finditer(template)]

    def render(self, template: str | None, context: Mapping[str, Any] | None) -> str:
        if template is None:
            return ""
        data = context or {}

        def substitute(match: re.Match) -> str:
            path = match.group(1)
            if not _PATH_PATTERN.match(path):
                raise RenderError(f"Invalid placeholder: {match.group(0)}", path)

            value = _lookup(data, path)
            if value is _MISSING:
                if self._strict:
                    raise RenderError(f"Undefined variable: {path}", path)
                return ""
            return _to_text(value)

        return PLACEHOLDER_PATTERN.sub(substitute, template)
