# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
watchfiles-backed file-change notifier.

A background thread watches the parent directories of the watched files
(non-recursively, so editors that save by rename are still seen) and
reports events for watched paths only. The watch set can change at any
time; the thread restarts its watch when the set of directories changes.

The thread never touches session state: it only calls the callback,
which queues the event for the REPL thread.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from typing import Any

from watchfiles import Change, watch

from .interfaces import FileEvent

logger = logging.getLogger(__name__)


class WatchfilesNotifier:
    """watchfiles implementation of FileNotifier protocol."""

    def __init__(
        self,
        debounce_ms: int = 50,
        rescan_ms: int = 400,
        force_polling: bool = False,
    ) -> None:
        """Initialize notifier with configuration.

        Args:
            debounce_ms: window for grouping bursts of events
            rescan_ms: how often the thread checks for watch set changes
            force_polling: poll instead of using OS notifications
        """
        self.debounce_ms = debounce_ms
        self.rescan_ms = rescan_ms
        self.force_polling = force_polling

        self._paths: set[str] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._rewatch = threading.Event()
        self._thread: threading.Thread | None = None
        self._callback: Callable[[FileEvent], None] | None = None

    @classmethod
    def from_config(cls, cfg: Any) -> WatchfilesNotifier:
        watch_cfg = getattr(cfg, "watch", {}) or {}
        return cls(
            debounce_ms=int(watch_cfg.get("debounce_ms", 50)),
            rescan_ms=int(watch_cfg.get("rescan_ms", 400)),
            force_polling=bool(watch_cfg.get("force_polling", False)),
        )

    # ---------- watch set ----------

    def paths(self) -> set[str]:
        with self._lock:
            return set(self._paths)

    def directories(self) -> list[str]:
        """Existing parent directories of the watched files."""
        with self._lock:
            dirs = {os.path.dirname(p) for p in self._paths}
        return sorted(d for d in dirs if os.path.isdir(d))

    def _update(self, change: Callable[[set[str]], None]) -> None:
        with self._lock:
            before = {os.path.dirname(p) for p in self._paths}
            change(self._paths)
            after = {os.path.dirname(p) for p in self._paths}
        if before != after:
            self._rewatch.set()

    def add(self, path: str) -> None:
        self._update(lambda paths: paths.add(path))

    def remove(self, path: str) -> None:
        self._update(lambda paths: paths.discard(path))

    # ---------- events ----------

    def accepts(self, change: Change, path: str) -> bool:
        with self._lock:
            return os.path.realpath(path) in self._paths

    def classify(self, path: str) -> FileEvent:
        # A save-by-rename shows up as delete + add; what is on disk now
        # decides.
        if os.path.exists(path):
            return FileEvent(kind="changed", path=path)
        return FileEvent(kind="deleted", path=path)

    def dispatch(self, changes: Iterable[tuple[Change, str]]) -> None:
        for path in sorted({os.path.realpath(p) for _change, p in changes}):
            self._emit(self.classify(path))

    def _emit(self, event: FileEvent) -> None:
        if self._callback is not None:
            self._callback(event)

    # ---------- lifecycle ----------

    def start(self, callback: Callable[[FileEvent], None]) -> None:
        self._callback = callback
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="repler-watcher", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        self._stop.set()
        self._rewatch.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                self._rewatch.clear()
                directories = self.directories()
                if not directories:
                    self._rewatch.wait()
                    continue

                logger.debug("watching directories %s", directories)
                for changes in watch(
                    *directories,
                    watch_filter=self.accepts,
                    debounce=self.debounce_ms,
                    stop_event=self._stop,
                    rust_timeout=self.rescan_ms,
                    yield_on_timeout=True,
                    raise_interrupt=False,
                    force_polling=self.force_polling,
                    recursive=False,
                ):
                    if changes:
                        self.dispatch(changes)
                    if self._rewatch.is_set():
                        break
        except Exception as exc:
            if self._stop.is_set():
                return
            logger.exception("file watcher failed")
            self._emit(FileEvent(kind="error", error=exc))
