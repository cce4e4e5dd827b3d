# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Module loader adapter.

Wraps the ModuleStore: load-or-fetch a path, evict a path, and compile
source through the transformer with the import rewriter plugged in.

Important boundary:
- The loader never watches files. Every rewritten import target is
  handed to on_import(target, repl) and the session decides what to
  watch and which bindings to remember.
"""

from __future__ import annotations

import functools
import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from types import ModuleType
from typing import Any

from .diagnostics import DiagnosticMapper
from .interfaces import CompileResult, Sandbox, SourceTransformer
from .rewriter import (
    HOOK_NAME,
    ImportRewriter,
    ImportTarget,
    path_digest,
    path_stem,
)
from .store import Interop, ModuleRecord, ModuleStore

logger = logging.getLogger(__name__)

ImportCallback = Callable[[ImportTarget, bool], None]


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Absolute, symlink-free form used as every module's identity."""
    return os.path.realpath(os.fspath(path))


def resolve(base_dir: str, level: int, module: str | None) -> str | None:
    """Resolve a relative import the way the host loader would.

    level 1 is base_dir itself, each extra level walks one directory up.
    A dotted module resolves to <stem>.py, <stem>/__init__.py, then
    <stem>.json. No module (from . import x) means the package __init__.py.
    """
    anchor = Path(base_dir)
    for _ in range(max(level, 1) - 1):
        anchor = anchor.parent

    if not module:
        candidates = [anchor / "__init__.py"]
    else:
        stem = anchor.joinpath(*module.split("."))
        candidates = [
            stem.with_name(stem.name + ".py"),
            stem / "__init__.py",
            stem.with_name(stem.name + ".json"),
        ]

    for candidate in candidates:
        if candidate.is_file():
            return normalize_path(candidate)
    return None


def module_name(path: str) -> str:
    """__name__ given to a module loaded from path (unique per path)."""
    return f"repler_live.{path_stem(path)}_{path_digest(path)}"


class ModuleHook:
    """The __repler__ object injected into every namespace.

    Rewritten imports call require(); star imports call public().
    """

    def __init__(self, loader: ModuleLoader, requester: str | None = None):
        self._loader = loader
        self._requester = requester

    def require(self, path: str) -> ModuleType:
        return self._loader.load_or_fetch(path, self._requester)

    @staticmethod
    def public(module: ModuleType) -> dict[str, Any]:
        """Names a star import binds: __all__, else non-underscore names."""
        namespace = vars(module)
        names = namespace.get("__all__")
        if names is None:
            names = [n for n in namespace if not n.startswith("_")]
        return {name: getattr(module, name) for name in names}

    def __repr__(self) -> str:
        return f"<repler hook requester={self._requester!r}>"


class ModuleLoader:
    """Load, cache and evict modules through a shared ModuleStore."""

    def __init__(
        self,
        store: ModuleStore,
        transformer: SourceTransformer,
        sandbox: Sandbox,
        diagnostics: DiagnosticMapper,
        base_dir: str,
        on_import: ImportCallback | None = None,
    ) -> None:
        self.store = store
        self.transformer = transformer
        self.sandbox = sandbox
        self.diagnostics = diagnostics
        self.base_dir = normalize_path(base_dir)
        self.on_import = on_import

    # -----------------------
    # Compilation
    # -----------------------

    def _notify(self, repl: bool) -> Callable[[ImportTarget], None]:
        def notify(target: ImportTarget) -> None:
            if self.on_import is not None:
                self.on_import(target, repl)

        return notify

    def compile_input(
        self, source: str, filename: str, record: bool = True
    ) -> CompileResult:
        """Compile REPL input; imports resolve against the session base dir.

        record=False rewrites without reporting targets (used to preview).
        """
        rewriter = ImportRewriter(
            functools.partial(resolve, self.base_dir),
            on_import=self._notify(repl=True) if record else None,
            repl=True,
        )
        return self.transformer.compile(source, filename, plugin=rewriter)

    def compile_file(self, source: str, path: str) -> CompileResult:
        """Compile a module file; imports resolve against its directory."""
        rewriter = ImportRewriter(
            functools.partial(resolve, os.path.dirname(path)),
            on_import=self._notify(repl=False),
        )
        return self.transformer.compile(source, path, plugin=rewriter)

    # -----------------------
    # Load / fetch / evict
    # -----------------------

    def load_or_fetch(
        self, path: str, requester: str | None = None
    ) -> ModuleType:
        """Return the module for path, loading it from disk if absent.

        Records requester -> path in the dependency graph either way.
        """
        path = normalize_path(path)
        record = self.store.get(path)
        if record is None:
            record = self._load(path)

        if requester is not None:
            parent = self.store.get(requester)
            if parent is not None:
                parent.children.add(path)

        return record.module

    def _load(self, path: str) -> ModuleRecord:
        logger.debug("loading %s", path)
        module = ModuleType(module_name(path))
        module.__file__ = path

        if path.endswith(".json"):
            with open(path, encoding="utf-8") as f:
                module.default = json.load(f)
            record = ModuleRecord(path=path, module=module, interop=Interop.DATA)
            self.store.add(record)
            return record

        source = Path(path).read_text(encoding="utf-8")
        result = self.compile_file(source, path)

        setattr(module, HOOK_NAME, ModuleHook(self, requester=path))
        record = ModuleRecord(
            path=path,
            module=module,
            interop=Interop.NATIVE,
            position_map=result.position_map,
        )

        # Stored before running so an import cycle sees the partial module.
        self.store.add(record)
        self.diagnostics.register(path, result.position_map)
        try:
            self.sandbox.run(result.text, path, vars(module))
        except BaseException:
            logger.debug("loading %s failed, evicting", path)
            self.evict(path)
            raise

        return record

    def evict(self, path: str) -> bool:
        """Drop path from the store; the next use re-reads the file."""
        record = self.store.remove(path)
        self.diagnostics.forget(path)
        if record is not None:
            record.position_map = None
            logger.debug("evicted %s", path)
        return record is not None
