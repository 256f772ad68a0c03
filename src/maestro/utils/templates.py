"""``{{placeholder}}`` substitution for agent step instructions."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")


def resolve_template(template: str, values: Mapping[str, Any]) -> str:
    """Replace every ``{{name}}`` in *template* with ``values[name]``.

    Substitution is a single pass: text coming from a value is never
    scanned for further placeholders.  Placeholders with no entry in
    *values* (or whose value is ``None``) are left exactly as written so
    callers can detect missing inputs with :func:`find_placeholders`.
    """

    def _sub(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        if value is None:
            return match.group(0)
        return str(value)

    # A function replacement inserts the value literally; backslashes and
    # group references in values are not interpreted.
    return _PLACEHOLDER_RE.sub(_sub, template)


def find_placeholders(template: str) -> list[str]:
    """Return placeholder names in order of first appearance."""
    seen: list[str] = []
    for match in _PLACEHOLDER_RE.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen
