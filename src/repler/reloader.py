# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Reload orchestrator.

Owns the watch set and the binding table, and turns file events into
reloads:

    changed -> invalidation closure -> evict -> rebind-scan
            -> rebinding codegen -> execute in the REPL namespace -> report
    deleted -> unwatch -> report
    error   -> WatcherFailure (fatal)

Events arrive on the notifier's thread and are only queued there.
process_pending() runs on the REPL thread and handles them one at a
time, so two reloads never interleave their statements.
"""

from __future__ import annotations

import ast
import logging
import os
import queue
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .bindings import STAR_IMPORT, WHOLE_MODULE, BindingTable
from .diagnostics import DiagnosticMapper
from .errors import WatcherFailure
from .graph import invalidation_closure
from .interfaces import FileEvent, FileNotifier, Sandbox
from .loader import ModuleLoader, normalize_path
from .rewriter import ImportTarget, pair_statement, require_statement
from .store import ModuleStore

logger = logging.getLogger(__name__)

RELOAD_FILENAME = "<reload>"


def relative_spec(path: str, base_dir: str) -> str:
    """Relative import spelling of path as seen from base_dir.

    /p/shapes.py from /p -> ".shapes"; /p/pkg/__init__.py -> ".pkg";
    /lib.py from /p -> "..lib".
    """
    p = Path(path)
    target = p.parent if p.name == "__init__.py" else p.with_suffix("")
    parts = os.path.relpath(target, base_dir).split(os.sep)

    ups = 0
    while parts and parts[0] == "..":
        ups += 1
        parts.pop(0)
    if parts == ["."]:
        parts = []

    return "." * (ups + 1) + ".".join(parts)


def describe_bindings(
    path: str, pairs: list[tuple[str, str]], base_dir: str
) -> list[str]:
    """Reconstruct import statements equivalent to a path's bindings."""
    spec = relative_spec(path, base_dir)
    lines: list[str] = []

    named = [
        (local, exported)
        for local, exported in pairs
        if exported != WHOLE_MODULE
    ]
    if named:
        names = ", ".join(
            exported if exported == local else f"{exported} as {local}"
            for local, exported in named
        )
        lines.append(f"from {spec} import {names}")

    for local, exported in pairs:
        if exported != WHOLE_MODULE:
            continue
        if local == STAR_IMPORT:
            lines.append(f"from {spec} import *")
            continue
        dots = len(spec) - len(spec.lstrip("."))
        package, _, name = spec[dots:].rpartition(".")
        if not name:
            lines.append(f"import {spec} as {local}")
            continue
        package = spec[:dots] + package
        alias = "" if name == local else f" as {local}"
        lines.append(f"from {package} import {name}{alias}")

    return lines


@dataclass
class ReloadReport:
    kind: str
    path: str
    evicted: list[str] = field(default_factory=list)
    rebound: list[tuple[str, list[tuple[str, str]]]] = field(
        default_factory=list
    )
    errors: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        """REPL names that were reassigned."""
        out: list[str] = []
        for _path, pairs in self.rebound:
            out.extend(local for local, _ in pairs if local != STAR_IMPORT)
        return out


class Reloader:
    """Watch set, binding table and file-event handling for one session."""

    def __init__(
        self,
        store: ModuleStore,
        loader: ModuleLoader,
        sandbox: Sandbox,
        notifier: FileNotifier,
        diagnostics: DiagnosticMapper,
        wake: Callable[[], None] | None = None,
    ) -> None:
        self.store = store
        self.loader = loader
        self.sandbox = sandbox
        self.notifier = notifier
        self.diagnostics = diagnostics
        self.wake = wake

        self.bindings = BindingTable()
        self.watched: set[str] = set()
        # REPL targets waiting for their entry to run successfully
        self._staged: list[ImportTarget] = []
        self._events: queue.Queue[FileEvent] = queue.Queue()

    # -----------------------
    # Notifier side (any thread)
    # -----------------------

    def start(self) -> None:
        self.notifier.start(self.enqueue)

    def enqueue(self, event: FileEvent) -> None:
        self._events.put(event)
        if self.wake is not None:
            self.wake()

    def has_pending(self) -> bool:
        return not self._events.empty()

    # -----------------------
    # Watch set + bindings
    # -----------------------

    def register_import(self, target: ImportTarget, repl: bool) -> None:
        """Side channel from the import rewriter.

        Every target is watched at once. A top-level REPL target is only
        staged; commit_bindings() records it once the entry has run.
        """
        self.watch(target.path)
        if repl and target.top_level:
            self._staged.append(target)

    def commit_bindings(self) -> None:
        for target in self._staged:
            self.bindings.bind(target.path, target.bindings)
        self._staged.clear()

    def discard_bindings(self) -> None:
        self._staged.clear()

    def watch(self, path: str) -> None:
        if path in self.watched:
            return
        self.watched.add(path)
        self.notifier.add(path)
        logger.debug("watching %s", path)

    def unwatch(self, path: str) -> None:
        self.watched.discard(path)
        self.notifier.remove(path)

    # -----------------------
    # Event processing (REPL thread)
    # -----------------------

    def process_pending(self) -> list[ReloadReport]:
        """Handle the queued events, one per path.

        Only the last event queued for a path is handled; paths keep the
        order in which their last event arrived.

        Raises:
            WatcherFailure: if the notifier reported an error.
        """
        latest: dict[str, FileEvent] = {}

        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break

            if event.kind == "error":
                raise WatcherFailure(event.error)

            key = normalize_path(event.path)
            latest.pop(key, None)
            latest[key] = event

        reports: list[ReloadReport] = []
        for event in latest.values():
            if event.kind == "deleted":
                reports.append(self.handle_delete(event.path))
            else:
                reports.append(self.handle_change(event.path))

        return reports

    def invalidate(self, path: str) -> list[str]:
        """Evict path and everything that depends on it."""
        closure = invalidation_closure(self.store, path)
        for member in closure:
            self.loader.evict(member)
        return closure

    def _run_statement(self, statement: ast.stmt) -> None:
        module = ast.Module(body=[statement], type_ignores=[])
        source = ast.unparse(ast.fix_missing_locations(module))
        self.sandbox.run(source, RELOAD_FILENAME)

    def rebind(
        self, path: str, pairs: list[tuple[str, str]], report: ReloadReport
    ) -> None:
        """Reload path into the namespace and reassign each pair on its own.

        A name that fails is reported and keeps its old value; the other
        names of the same path are still reassigned.
        """
        try:
            self._run_statement(require_statement(path))
        except Exception as e:
            logger.info("reloading %s failed: %s", path, e)
            report.errors.append(self.diagnostics.format_exception(e))
            return

        done: list[tuple[str, str]] = []
        for local, exported in pairs:
            try:
                self._run_statement(pair_statement(path, local, exported))
            except Exception as e:
                logger.info("rebinding %s from %s failed: %s", local, path, e)
                report.errors.append(self.diagnostics.format_exception(e))
                continue
            done.append((local, exported))

        if done:
            report.rebound.append((path, done))

    def handle_change(self, path: str) -> ReloadReport:
        path = normalize_path(path)
        evicted = self.invalidate(path)
        report = ReloadReport(kind="changed", path=path, evicted=evicted)
        logger.info("%s changed, evicted %d module(s)", path, len(evicted))

        # Rebind in discovery order; paths never loaded are not in the closure.
        order = {member: i for i, member in enumerate(evicted)}
        affected = sorted(
            (p for p in self.bindings if p in order), key=order.__getitem__
        )

        for bound_path in affected:
            self.rebind(bound_path, self.bindings.pairs(bound_path), report)

        return report

    def handle_delete(self, path: str) -> ReloadReport:
        path = normalize_path(path)
        self.unwatch(path)
        logger.info("%s was removed", path)
        return ReloadReport(kind="deleted", path=path)

    def reset(self) -> None:
        """Cancel watches and forget bindings, modules and queued events."""
        for path in list(self.watched):
            self.notifier.remove(path)
        self.watched.clear()
        self.bindings.clear()
        self._staged.clear()
        for path in self.store.paths():
            self.loader.evict(path)

        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break
