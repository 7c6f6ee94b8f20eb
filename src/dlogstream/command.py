"""Command templates — default selection, tag substitution and tokenizing.

Templates and tags are trusted input: nothing here escapes or sanitizes them.
Callers that need stricter handling supply their own ``CommandResolver``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol

from dlogstream.transport.base import TransportKind

TAG_PLACEHOLDER = "$(TAGS)"

DEFAULT_TEMPLATES: dict[TransportKind, str] = {
    TransportKind.LOCAL: "dlogutil -v kerneltime $(TAGS)",
    TransportKind.REMOTE: "dlogutil -v kerneltime $(TAGS)",
}


class CommandResolver(Protocol):
    """Turns a template plus tags into the command a transport runs."""

    def resolve(
        self, template: str | None, tags: Sequence[str], kind: TransportKind
    ) -> str: ...

    def tokenize(self, command: str) -> list[str]: ...


def resolve(
    template: str | None,
    tags: Sequence[str],
    kind: TransportKind,
    defaults: Mapping[TransportKind, str] | None = None,
) -> str:
    """Return ``template`` (or the default for ``kind``) with tags substituted.

    Every placeholder occurrence becomes the tags joined by single spaces. With
    no tags the placeholder simply disappears; the whitespace around it stays.
    """
    registry = defaults if defaults is not None else DEFAULT_TEMPLATES
    if template is None or not template.strip():
        template = registry[kind]
    return template.replace(TAG_PLACEHOLDER, " ".join(tags))


def tokenize(command: str) -> list[str]:
    """Split a command on whitespace into an argument vector.

    No quoting support. Shell operators such as ``|`` or ``;`` come through as
    ordinary tokens; only a program that interprets them gives them meaning.
    """
    return command.split()


class TemplateResolver:
    """Default resolver backed by a per-kind template registry."""

    def __init__(self, defaults: Mapping[TransportKind, str] | None = None) -> None:
        self._defaults = dict(DEFAULT_TEMPLATES)
        if defaults:
            self._defaults.update(defaults)

    def resolve(
        self, template: str | None, tags: Sequence[str], kind: TransportKind
    ) -> str:
        return resolve(template, tags, kind, self._defaults)

    def tokenize(self, command: str) -> list[str]:
        return tokenize(command)
