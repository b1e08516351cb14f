"""Dot-path lookup and ``{{path}}`` placeholder interpolation over event data."""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Mapping


class _Missing:
    """Marker for a path that does not resolve (distinct from a JSON ``null``)."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

# Strict placeholder form used by action templates: {{a.b_c}}
ACTION_PLACEHOLDER = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")
# Lenient form used by webhook payload templates: {{ anything but braces }}
PAYLOAD_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")
# Escapes, quotes and placeholders; enough to track JSON string literals
_JSON_TOKEN = re.compile(r'\\.|"|\{\{([^}]+)\}\}', re.S)


def get_nested_value(data: Any, path: str) -> Any:
    """Walk ``a.b.c`` through nested mappings; ``MISSING`` on any dead end."""
    current = data
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return MISSING
        current = current[segment]
    return current


def stringify(value: Any) -> str:
    """Render a value the way it should appear inside a text or JSON template."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def _substitute(
    template: str,
    pattern: re.Pattern[str],
    resolve: Callable[[str], str | None],
) -> str:
    def _replace(match: re.Match[str]) -> str:
        rendered = resolve(match.group(1).strip())
        return match.group(0) if rendered is None else rendered

    return pattern.sub(_replace, template)


def interpolate(template: str, context: Mapping[str, Any]) -> str:
    """Replace ``{{path}}`` with values from *context*; unresolved paths stay literal."""

    def resolve(path: str) -> str | None:
        value = get_nested_value(context, path)
        return None if value is MISSING else stringify(value)

    return _substitute(template, ACTION_PLACEHOLDER, resolve)


def render_payload_template(template: str, data: Mapping[str, Any]) -> str:
    """Substitute payload placeholders; unresolved paths render as an empty string.

    A placeholder inside a JSON string literal gets its value string-escaped,
    so quotes, backslashes and newlines in event data keep the document valid.
    Outside a string literal the value is inserted as-is.
    """
    parts: list[str] = []
    in_string = False
    pos = 0
    for match in _JSON_TOKEN.finditer(template):
        parts.append(template[pos : match.start()])
        pos = match.end()
        path = match.group(1)
        if path is None:
            if match.group(0) == '"':
                in_string = not in_string
            parts.append(match.group(0))
            continue
        value = get_nested_value(data, path.strip())
        rendered = "" if value is MISSING else stringify(value)
        if in_string:
            rendered = json.dumps(rendered, ensure_ascii=False)[1:-1]
        parts.append(rendered)
    parts.append(template[pos:])
    return "".join(parts)


def placeholders(template: str) -> list[str]:
    """Paths referenced by a payload template, in order of appearance."""
    return [m.group(1).strip() for m in PAYLOAD_PLACEHOLDER.finditer(template)]
