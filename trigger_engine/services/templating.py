"""
{{path}} placeholder substitution for notification templates.

Templates are compiled once into literal and path segments; compiled
templates are cached by source text. A placeholder whose path does not
resolve is left in the output exactly as written.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from .evaluation import MISSING, resolve_path, stringify

PLACEHOLDER_PATTERN = re.compile(r'\{\{(\w+(?:\.\w+)*)\}\}')


@dataclass(frozen=True)
class Placeholder:
    """A {{path}} token."""

    path: str
    raw: str


Segment = Union[str, Placeholder]


@dataclass(frozen=True)
class CompiledTemplate:
    """Template split into literal strings and placeholders."""

    source: str
    segments: tuple[Segment, ...]

    @property
    def paths(self) -> frozenset[str]:
        return frozenset(s.path for s in self.segments if isinstance(s, Placeholder))

    def render(self, data: Any) -> str:
        paths = self.paths
        if not paths:
            return self.source

        values = {path: resolve_path(data, path) for path in paths}
        parts = []
        for segment in self.segments:
            if isinstance(segment, Placeholder):
                value = values[segment.path]
                parts.append(segment.raw if value is MISSING else stringify(value))
            else:
                parts.append(segment)
        return ''.join(parts)


@lru_cache(maxsize=512)
def compile_template(source: str) -> CompiledTemplate:
    """
    Compile template text into segments.

    Args:
        source: Template text

    Returns:
        CompiledTemplate (cached)
    """
    segments: list[Segment] = []
    position = 0
    for match in PLACEHOLDER_PATTERN.finditer(source):
        if match.start() > position:
            segments.append(source[position:match.start()])
        segments.append(Placeholder(path=match.group(1), raw=match.group(0)))
        position = match.end()
    if position < len(source):
        segments.append(source[position:])
    return CompiledTemplate(source=source, segments=tuple(segments))


def render(template: str | None, data: Any) -> str:
    """
    Substitute {{path}} placeholders in template text.

    Args:
        template: Template text (None renders as empty)
        data: Event payload

    Returns:
        Rendered text
    """
    if not template:
        return ''
    return compile_template(template).render(data)
