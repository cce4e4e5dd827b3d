# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Dependency graph view over a ModuleStore.

Nothing is stored here: children are read off each record and parents
are found by scanning every loaded record. Cycles are allowed.
"""

from __future__ import annotations

from .store import ModuleStore


def children_of(store: ModuleStore, path: str) -> set[str]:
    record = store.get(path)
    if record is None:
        return set()
    return set(record.children)


def parents_of(store: ModuleStore, path: str) -> set[str]:
    """Loaded modules that import path directly."""
    return {
        parent
        for parent, record in store.items()
        if path in record.children
    }


def invalidation_closure(store: ModuleStore, path: str) -> list[str]:
    """Every path that must be evicted when path changes.

    The changed path comes first, followed by each loaded module that
    (directly or indirectly) imports a member of the set, in the order
    they were discovered. Does not mutate the store.
    """
    closure = [path]
    members = {path}

    added = True
    while added:
        added = False
        for candidate, record in store.items():
            if candidate in members:
                continue
            if record.children & members:
                closure.append(candidate)
                members.add(candidate)
                added = True

    return closure
