# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
In-memory module store.

Maps an absolute file path to the ModuleRecord loaded from it. The store
is an explicit object shared by reference between the loader and the
reload orchestrator; it is not sys.modules. A path that is absent from
the store is stale and must be re-read from disk on next use.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from types import ModuleType


class Interop(Enum):
    """How a record's module value is exposed to importers."""

    NATIVE = "native"  # a Python module, handed out unwrapped
    DATA = "data"  # a data file, wrapped so `default` holds the document


@dataclass
class ModuleRecord:
    path: str
    module: ModuleType
    interop: Interop = Interop.NATIVE
    children: set[str] = field(default_factory=set)
    position_map: dict[int, int] | None = None

    @property
    def name(self) -> str:
        return self.module.__name__


class ModuleStore:
    """Path-keyed store of loaded module records."""

    def __init__(self) -> None:
        self._records: dict[str, ModuleRecord] = {}

    def get(self, path: str) -> ModuleRecord | None:
        return self._records.get(path)

    def add(self, record: ModuleRecord) -> None:
        """Store a record and mirror its module into sys.modules.

        dataclasses and typing resolve string annotations through
        sys.modules[cls.__module__].
        """
        self._records[record.path] = record
        sys.modules[record.name] = record.module

    def remove(self, path: str) -> ModuleRecord | None:
        record = self._records.pop(path, None)
        if record is not None and sys.modules.get(record.name) is record.module:
            del sys.modules[record.name]
        return record

    def clear(self) -> None:
        for path in list(self._records):
            self.remove(path)

    def paths(self) -> list[str]:
        return list(self._records)

    def items(self) -> list[tuple[str, ModuleRecord]]:
        return list(self._records.items())

    def __contains__(self, path: object) -> bool:
        return path in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
