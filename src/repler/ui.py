# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

import builtins
import keyword
import re
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from prompt_toolkit import PromptSession
from prompt_toolkit.application import run_in_terminal
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

from .errors import WatcherFailure
from .kernel import COMMANDS

if TYPE_CHECKING:
    from .kernel import Kernel  # pragma: no cover


# ----------------------------
# Config helpers (read through kernel.config.get_path)
# ----------------------------


def _cfg_get_path(kernel: Kernel | None, path: str, default):
    if kernel is None:
        return default
    cfg = getattr(kernel, "config", None)
    if cfg is None or not hasattr(cfg, "get_path"):
        return default
    return cfg.get_path(path, default)


def _cfg_bool(kernel: Kernel | None, path: str, default: bool) -> bool:
    return bool(_cfg_get_path(kernel, path, default))


def _cfg_dict(kernel: Kernel | None, path: str, default: dict) -> dict:
    val = _cfg_get_path(kernel, path, default)
    return val if isinstance(val, dict) else default


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    return {
        # completion menu
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "scrollbar.background": "bg:#202020",
        "scrollbar.button": "bg:#505050",
        # toolbar base (prompt_toolkit uses this class name)
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        "repler.toolbar.label": "bg:#0b0b0b #808080",
        "repler.toolbar.value": "bg:#0b0b0b #d0d0d0 bold",
    }


def _build_style(kernel: Kernel | None) -> Style:
    base = _default_style_dict()
    overrides = _cfg_dict(kernel, "ui.theme.style", {})
    # only keep string->string
    for k, v in list(overrides.items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


# ----------------------------
# Completion
# ----------------------------

_TOKEN_RE = re.compile(r"[A-Za-z_][\w.]*$")


class ReplCompleter(Completer):
    """REPL commands on a leading '.', otherwise names and attributes."""

    def __init__(self, kernel: Kernel | None) -> None:
        self.kernel = kernel

    def _namespace(self) -> dict[str, Any]:
        if self.kernel is None:
            return {}
        return self.kernel.namespace

    def _global_names(self) -> set[str]:
        names = {n for n in self._namespace() if not n.startswith("__")}
        names.update(n for n in dir(builtins) if not n.startswith("_"))
        names.update(keyword.kwlist)
        return names

    def _lookup(self, dotted: str) -> Any:
        """Follow a dotted name through the namespace without evaluating."""
        head, *rest = dotted.split(".")
        namespace = self._namespace()
        if head in namespace:
            obj = namespace[head]
        elif hasattr(builtins, head):
            obj = getattr(builtins, head)
        else:
            raise LookupError(head)
        for part in rest:
            obj = getattr(obj, part)
        return obj

    def _command_completions(self, token: str) -> Iterable[Completion]:
        for command, meta in COMMANDS.items():
            if command.startswith(token):
                yield Completion(
                    command, start_position=-len(token), display_meta=meta
                )

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = document.text_before_cursor or ""
        stripped = before.lstrip()

        if stripped.startswith(".") and " " not in stripped:
            yield from self._command_completions(stripped)
            return

        match = _TOKEN_RE.search(before)
        if match is None:
            return
        token = match.group(0)

        if "." not in token:
            for name in sorted(self._global_names()):
                if name.startswith(token):
                    yield Completion(name, start_position=-len(token))
            return

        owner, _, prefix = token.rpartition(".")
        try:
            obj = self._lookup(owner)
        except (LookupError, AttributeError):
            return
        show_private = prefix.startswith("_")
        for attr in sorted(dir(obj)):
            if attr.startswith("_") and not show_private:
                continue
            if attr.startswith(prefix):
                yield Completion(attr, start_position=-len(prefix))


# ----------------------------
# PromptSession UI + Bottom Toolbar
# ----------------------------


class PromptToolkitUI:
    """
    Terminal-friendly UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - Uses PromptSession with file history and name completion.
      - Bottom toolbar shows how many files are watched and bound.
      - wake() lets the watcher thread drain reloads while the
        prompt is waiting for input.
      - Ctrl+L clears the screen.
    """

    def __init__(
        self,
        kernel: Kernel | None = None,
        history_file: Path | None = None,
    ) -> None:
        self.kernel = kernel
        self.history_file = history_file
        self.session: PromptSession[str] | None = None
        self._completer: ReplCompleter | None = None
        self._style = _build_style(kernel)

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

    # ---------- toolbar rendering ----------

    def _bottom_toolbar(self):
        if not _cfg_bool(self.kernel, "ui.toolbar.enabled", True):
            return ""
        if self.kernel is None:
            return ""

        watched = len(self.kernel.watched)
        bound = len(self.kernel.bindings.local_names())
        return [
            ("class:repler.toolbar.label", " watched "),
            ("class:repler.toolbar.value", str(watched)),
            ("class:repler.toolbar.label", "  bindings "),
            ("class:repler.toolbar.value", str(bound)),
            ("class:repler.toolbar.label", "  .help for commands "),
        ]

    # ---------- session ----------

    def _history(self) -> History:
        if self.history_file is None:
            return InMemoryHistory()
        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        return FileHistory(str(self.history_file))

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        self._completer = ReplCompleter(self.kernel)
        self.session = PromptSession(
            history=self._history(),
            key_bindings=self.build_key_bindings(),
            completer=self._completer,
            complete_while_typing=False,
            style=self._style,
            bottom_toolbar=self._bottom_toolbar,
        )

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        # If last output didn't end with newline, insert one
        # before prompt redraw
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

        with patch_stdout():
            # prompt contains ANSI from kernel.prompt(), so preserve it
            return self.session.prompt(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline).

        Track prompt safety.
        """
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    def clear(self) -> None:
        pt_clear()

    # ---------- reload events while waiting ----------

    def wake(self) -> None:
        """Schedule an event drain on the prompt's loop (any thread)."""
        if self.session is None:
            return
        app = self.session.app
        loop = getattr(app, "loop", None)
        if not app.is_running or loop is None:
            # Not prompting: run_repl drains before the next prompt.
            return
        try:
            loop.call_soon_threadsafe(self._drain_events)
        except RuntimeError:
            # Loop closed between the check and the call.
            pass

    def _drain_events(self) -> None:
        if self.kernel is None or self.session is None:
            return
        app = self.session.app
        try:
            text = self.kernel.process_events()
        except WatcherFailure as exc:
            app.exit(exception=exc)
            return
        if text:
            run_in_terminal(
                lambda: print_formatted_text(ANSI(text), style=self._style)
            )
        app.invalidate()

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.app.invalidate()

        return kb
