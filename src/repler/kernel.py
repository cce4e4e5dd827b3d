# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
repler kernel.

Session engine for the live-reload REPL:
- eval pipeline (rewrite imports -> run in sandbox -> report)
- REPL commands (.help, .reset, .compile, ...)
- draining file events into reloads + notifications
- session lifecycle events (exit, reset, module-reloaded)

Important boundary:
- Kernel does not load configuration or pick a notifier.
- Kernel consumes the injected ConfigModel and FileNotifier.
"""

from __future__ import annotations

import os
import traceback
from code import compile_command
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from . import config as cfg_module
from .bindings import STAR_IMPORT, WHOLE_MODULE, BindingTable
from .config import UI_CLEAR, colorize
from .diagnostics import DiagnosticMapper
from .interfaces import ConfigModel, FileNotifier, Sandbox, SourceTransformer
from .loader import ModuleHook, ModuleLoader, normalize_path
from .reloader import Reloader, ReloadReport, describe_bindings
from .rewriter import HOOK_NAME
from .sandbox import NamespaceSandbox
from .store import ModuleStore
from .transformer import PythonTransformer
from .utils import display_path, format_table

EVENTS = ("exit", "reset", "module-reloaded")

COMMANDS: dict[str, str] = {
    ".help": "Show this help",
    ".exit": "Leave the REPL",
    ".reset": "Forget bindings, watches and loaded modules (globals stay)",
    ".clear": "Clear the screen",
    ".compile": "Show how <code> is rewritten before it runs",
    ".bindings": "List REPL names bound to module exports",
    ".watched": "List files being watched",
    ".modules": "List loaded modules and what they import",
}


def crash_log_path() -> Path:
    return cfg_module.logs_dir(cfg_module.get_data_root()) / "crash.log"


def write_crash_log(
    error: BaseException,
    raw_input: str = "",
    base_dir: str = "",
) -> None:
    """Write an entry to the crash log.

    Logs unhandled exceptions and watcher failures.
    Only creates the log directory when actually needed.
    Appends to crash.log (never overwrites).
    """
    try:
        path = crash_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        lines = [f"{datetime.now().isoformat()}"]
        if base_dir:
            lines.append(f"base_dir={base_dir}")
        if raw_input:
            lines.append(f"input={raw_input}")
        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(
                    type(error), error, error.__traceback__
                )
            )
        )
        lines.append("----")

        with path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # If we can't write the crash log, fail silently
        pass


@dataclass
class EvalResult:
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Kernel:
    """repler session engine."""

    notifier: FileNotifier
    config: ConfigModel
    base_dir: str = field(default_factory=os.getcwd)

    transformer: SourceTransformer = field(default_factory=PythonTransformer)
    sandbox: Sandbox = field(default_factory=NamespaceSandbox)
    store: ModuleStore = field(default_factory=ModuleStore)
    diagnostics: DiagnosticMapper = field(default_factory=DiagnosticMapper)

    history: list[str] = field(default_factory=list)
    running: bool = False

    # Called from the notifier thread after an event is queued (wired by UI).
    wake_fn: Callable[[], None] | None = None

    loader: ModuleLoader = field(init=False, repr=False)
    reloader: Reloader = field(init=False, repr=False)

    _listeners: dict[str, list[Callable[..., None]]] = field(
        default_factory=dict, init=False, repr=False
    )
    _input_count: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self.base_dir = normalize_path(self.base_dir)

        self.loader = ModuleLoader(
            store=self.store,
            transformer=self.transformer,
            sandbox=self.sandbox,
            diagnostics=self.diagnostics,
            base_dir=self.base_dir,
        )
        self.reloader = Reloader(
            store=self.store,
            loader=self.loader,
            sandbox=self.sandbox,
            notifier=self.notifier,
            diagnostics=self.diagnostics,
            wake=self._wake,
        )
        self.loader.on_import = self.reloader.register_import
        self.sandbox.define_global(HOOK_NAME, ModuleHook(self.loader))

    # -----------------------
    # Accessors
    # -----------------------

    @property
    def bindings(self) -> BindingTable:
        return self.reloader.bindings

    @property
    def watched(self) -> set[str]:
        return self.reloader.watched

    @property
    def namespace(self) -> dict[str, Any]:
        return self.sandbox.context

    # -----------------------
    # Lifecycle events
    # -----------------------

    def on(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe to exit, reset or module-reloaded(path, names)."""
        if event not in EVENTS:
            raise ValueError(
                f"Unknown event {event!r} (expected one of {', '.join(EVENTS)})"
            )
        self._listeners.setdefault(event, []).append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(*args)

    def _wake(self) -> None:
        if self.wake_fn is not None:
            self.wake_fn()

    # -----------------------
    # Session
    # -----------------------

    def start(self, include_prompt: bool = True) -> str:
        """Start watching and return the welcome text."""
        self.running = True
        self.reloader.start()

        out: list[str] = []
        message = self.config.get_path("system.welcome.message", "")
        if isinstance(message, str) and message.strip():
            out.append(message.strip())
        if include_prompt:
            out.append(self.prompt())
        return "\n\n".join(out)

    def stop(self) -> str:
        self.running = False
        self._emit("exit")
        return "Bye!"

    def close(self) -> None:
        self.notifier.close()

    def reset(self) -> str:
        """Clear bindings, watches and loaded modules; keep REPL globals."""
        self.reloader.reset()
        self._emit("reset")
        return "Session reset: bindings, watches and loaded modules cleared."

    def prompt(self) -> str:
        text = str(self.config.get_path("system.prompt", ">>>"))
        return colorize(text, "pink")

    def continuation_prompt(self) -> str:
        text = str(self.config.get_path("system.continuation_prompt", "..."))
        return colorize(text, "dim")

    # -----------------------
    # Input handling
    # -----------------------

    def needs_more(self, source: str) -> bool:
        """True while source is an incomplete Python statement."""
        stripped = source.strip()
        if not stripped:
            return False
        if stripped.split(maxsplit=1)[0] in COMMANDS:
            return False
        try:
            return compile_command(source, "<repl>", "single") is None
        except (SyntaxError, ValueError, OverflowError):
            # Complete but invalid: evaluate() reports it.
            return False

    def handle_input(self, text: str) -> str:
        """Handle one complete REPL entry and return what to display."""
        self.history.append(text)
        stripped = text.strip()
        if not stripped:
            return ""
        if stripped == "\x0c":
            return UI_CLEAR

        command = stripped.split(maxsplit=1)[0]
        if command in COMMANDS:
            return self._run_command(command, stripped[len(command):].strip())

        return self.format_result(self.evaluate(text))

    def evaluate(self, source: str) -> EvalResult:
        """Rewrite, run and classify one REPL entry."""
        self._input_count += 1
        filename = f"<repl-{self._input_count}>"
        # Left over when Ctrl-C interrupted the previous entry.
        self.reloader.discard_bindings()

        try:
            result = self.loader.compile_input(source, filename)
        except Exception as e:
            self.reloader.discard_bindings()
            return EvalResult(error=self.diagnostics.format_exception(e))

        self.diagnostics.register(filename, result.position_map, source)
        try:
            value = self.sandbox.run(result.text, filename)
        except Exception as e:
            self.reloader.discard_bindings()
            return EvalResult(error=self.diagnostics.format_exception(e))
        # Imports are bound only once the entry ran to the end.
        self.reloader.commit_bindings()

        if value is not None:
            self.sandbox.define_global("_", value)
        return EvalResult(value=value)

    def format_result(self, result: EvalResult) -> str:
        if result.error is not None:
            return colorize(result.error, "red")
        if result.value is None:
            return ""
        return repr(result.value)

    # -----------------------
    # Reload events
    # -----------------------

    def process_events(self) -> str:
        """Apply queued file events; return the notification text.

        Raises:
            WatcherFailure: if the notifier failed.
        """
        chunks: list[str] = []
        for report in self.reloader.process_pending():
            chunks.append(self.format_report(report))
            if report.kind == "changed":
                self._emit("module-reloaded", report.path, report.names)
        return "\n".join(chunks)

    def format_report(self, report: ReloadReport) -> str:
        shown = display_path(report.path, self.base_dir)
        if report.kind == "deleted":
            return colorize(f"{shown} was removed", "yellow")

        lines = [f"{shown} changed"]
        for path, pairs in report.rebound:
            lines.extend(describe_bindings(path, pairs, self.base_dir))
        out = colorize("\n".join(lines), "green")
        if report.errors:
            out += "\n" + colorize("\n".join(report.errors), "red")
        return out

    # -----------------------
    # REPL commands
    # -----------------------

    def _run_command(self, command: str, arg: str) -> str:
        if command == ".help":
            return self._help()
        if command == ".exit":
            return self.stop()
        if command == ".reset":
            return self.reset()
        if command == ".clear":
            return UI_CLEAR
        if command == ".compile":
            return self._compile_preview(arg)
        if command == ".bindings":
            return self._list_bindings()
        if command == ".watched":
            return self._list_watched()
        if command == ".modules":
            return self._list_modules()
        return f"Unknown command: {command}"

    def _help(self) -> str:
        width = max(len(c) for c in COMMANDS)
        lines = ["Commands:"]
        for command, text in COMMANDS.items():
            lines.append(f"  {command.ljust(width)}  {text}")
        lines.append("")
        lines.append(
            "Relative imports (from .module import name) are tracked: "
            "saving the file rebinds those names."
        )
        return "\n".join(lines)

    def _compile_preview(self, code: str) -> str:
        if not code:
            return "Usage: .compile <code>"
        try:
            return self.loader.compile_input(
                code, "<compile>", record=False
            ).text
        except Exception as e:
            return colorize(self.diagnostics.format_exception(e), "red")

    def _list_bindings(self) -> str:
        rows: list[list[Any]] = []
        for path in self.bindings:
            shown = display_path(path, self.base_dir)
            for local, exported in self.bindings.pairs(path):
                if local == STAR_IMPORT:
                    rows.append(["*", "(all public names)", shown])
                elif exported == WHOLE_MODULE:
                    rows.append([local, "(module)", shown])
                else:
                    rows.append([local, exported, shown])
        if not rows:
            return "No bindings."
        return format_table(["name", "export", "module"], rows)

    def _list_watched(self) -> str:
        if not self.watched:
            return "No files watched."
        return "\n".join(
            display_path(p, self.base_dir) for p in sorted(self.watched)
        )

    def _list_modules(self) -> str:
        rows: list[list[Any]] = []
        for path, record in self.store.items():
            children = ", ".join(
                display_path(c, self.base_dir) for c in sorted(record.children)
            )
            rows.append(
                [
                    display_path(path, self.base_dir),
                    record.interop.value,
                    children or "-",
                ]
            )
        if not rows:
            return "No modules loaded."
        return format_table(["module", "kind", "imports"], rows)
