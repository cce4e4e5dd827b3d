# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces separate the reload coordinator from its external
collaborators: the source transformer, the file-change notifier, the
execution sandbox and the configuration.
"""

from __future__ import annotations

import ast
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

# A transform applied to a parsed module before it is compiled.
TransformFn = Callable[[ast.Module, str], ast.Module]

EventKind = Literal["changed", "deleted", "error"]


@dataclass(frozen=True)
class CompileResult:
    """Transformed source plus a compiled-line -> original-line table."""

    text: str
    position_map: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class FileEvent:
    """A single notification from the file-change notifier."""

    kind: EventKind
    path: str = ""
    error: BaseException | None = None


class SourceTransformer(Protocol):
    """Protocol for turning source text into executable text."""

    def compile(
        self, source: str, filename: str, plugin: TransformFn | None = None
    ) -> CompileResult:
        """Parse, transform and unparse source.

        The plugin runs after any configured transforms.

        Raises:
            CompileFailure: if the source does not parse.
        """
        ...


class FileNotifier(Protocol):
    """Protocol for file-change observation."""

    def start(self, callback: Callable[[FileEvent], None]) -> None:
        """Begin delivering events to callback (from any thread)."""
        ...

    def add(self, path: str) -> None:
        """Start watching an absolute file path."""
        ...

    def remove(self, path: str) -> None:
        """Stop watching an absolute file path."""
        ...

    def close(self) -> None:
        """Stop watching everything and release resources."""
        ...


class Sandbox(Protocol):
    """Protocol for code execution against a persistent global context."""

    @property
    def context(self) -> dict[str, Any]:
        """The persistent REPL globals."""
        ...

    def run(
        self,
        text: str,
        filename: str,
        context: dict[str, Any] | None = None,
    ) -> Any:
        """Execute text and return the value of a trailing expression."""
        ...

    def define_global(self, name: str, value: Any) -> None:
        """Bind a name in the persistent REPL globals."""
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def system(self) -> dict[str, Any]:
        """System configuration."""
        ...

    @property
    def watch(self) -> dict[str, Any]:
        """File watcher configuration."""
        ...

    @property
    def transform(self) -> dict[str, Any]:
        """Source transformer configuration."""
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        """Nested lookup using a dot-separated path."""
        ...
