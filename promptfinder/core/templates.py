"""Helpers for ``{{name}}`` placeholder templates."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from promptfinder.core.errors import TemplateValidationError

_MUSTACHE_RE = re.compile(r"\{\{\s*([#^/]?)\s*([A-Za-z_][\w.\-]*)[^}]*\}\}")


def placeholder(name: str) -> str:
    return "{{" + name + "}}"


def extract_variables(template: str) -> list[str]:
    """Return placeholder names in first-seen order, without duplicates.

    Section tags (``{{#items}}``) count as variables, closing tags do not.
    """
    names: list[str] = []
    for match in _MUSTACHE_RE.finditer(template):
        sigil, name = match.group(1), match.group(2)
        if sigil == "/" or name in names:
            continue
        names.append(name)
    return names


def missing_variables(template: str, variables: Iterable[str]) -> list[str]:
    # Literal substring match on the exact ``{{name}}`` token.
    return [name for name in variables if placeholder(name) not in template]


def verify_variables(template: str, variables: Iterable[str]) -> None:
    missing = missing_variables(template, variables)
    if missing:
        raise TemplateValidationError(missing)


def substitute_variables(template: str, variables: Mapping[str, Any]) -> str:
    result = template
    for name, value in variables.items():
        result = result.replace(placeholder(name), str(value))
    return result


def format_placeholders(variables: Iterable[str]) -> str:
    return ", ".join(placeholder(name) for name in variables)
