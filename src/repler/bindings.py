# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Binding table: which REPL variables are bound to which module exports.

Layout: module path -> {local name -> exported name}.

Exported name conventions:
- "*": the whole module object (namespace import)
- "default": the default export of a data module
A local name of "*" marks a star import (public names spread into
the REPL namespace).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

WHOLE_MODULE = "*"
DEFAULT_EXPORT = "default"
STAR_IMPORT = "*"


class BindingTable:
    """Per-module REPL bindings, keyed by absolute module path."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, str]] = {}

    def bind(self, path: str, pairs: Iterable[tuple[str, str]]) -> None:
        """Merge (local, exported) pairs for path; last binding wins."""
        entry = self._entries.setdefault(path, {})
        for local, exported in pairs:
            entry[local] = exported

    def get(self, path: str) -> dict[str, str]:
        return dict(self._entries.get(path, {}))

    def pairs(self, path: str) -> list[tuple[str, str]]:
        return list(self._entries.get(path, {}).items())

    def paths(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def local_names(self) -> list[str]:
        """All bound REPL names across modules (star imports excluded)."""
        names: list[str] = []
        for entry in self._entries.values():
            names.extend(n for n in entry if n != STAR_IMPORT)
        return names
