# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
repler CLI entry point and REPL loop.

Design:
- CLI owns process startup: project discovery, config, logging.
- Kernel is the session engine (config+notifier+transformer injected).
- UI is terminal-friendly PromptSession (keeps scrollback + copy/select).
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

from . import __version__, config
from .errors import EXIT_NO_PROJECT, EXIT_WATCHER_FAILURE, WatcherFailure
from .kernel import Kernel, write_crash_log
from .transformer import PythonTransformer, load_plugins
from .ui import PromptToolkitUI
from .watcher import WatchfilesNotifier

USAGE = """\
usage: repler [-h] [-v]

Python REPL that reloads relatively imported modules when they change.

  from .shapes import Circle    # Circle is rebound whenever shapes.py is saved

options:
  -h, --help     show this help message and exit
  -v, --version  show the version and exit
"""


def _read_entry(
    kernel: Kernel,
    ui: PromptToolkitUI | None,
    input_fn: Callable[[str], str],
) -> str:
    """Read one complete entry, prompting for continuation lines."""
    if ui is not None:
        first = ui.read(kernel.prompt())
    else:
        first = input_fn(kernel.prompt() + " ")

    lines = [first or ""]
    while kernel.needs_more("\n".join(lines)):
        if ui is not None:
            lines.append(ui.read(kernel.continuation_prompt()))
        else:
            lines.append(input_fn(kernel.continuation_prompt() + " "))
    return "\n".join(lines)


def run_repl(
    kernel: Kernel,
    ui: PromptToolkitUI | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the repler REPL loop.

    Raises:
        WatcherFailure: if the file watcher dies (fatal).
    """

    def emit(text: str) -> None:
        if ui is not None:
            ui.write(text if text.endswith("\n") else text + "\n")
        else:
            output_fn(text)

    while kernel.running:
        # Reloads queued since the last prompt are applied first.
        notice = kernel.process_events()
        if notice:
            emit(notice)

        try:
            line = _read_entry(kernel, ui, input_fn)
        except KeyboardInterrupt:
            emit("\nKeyboardInterrupt")
            continue
        except EOFError:
            emit("\nBye!")
            break

        try:
            response = kernel.handle_input(line)
        except Exception as e:
            # Unhandled exception - write crash log
            write_crash_log(e, raw_input=line, base_dir=kernel.base_dir)
            emit(
                config.colorize(
                    f"[ERROR] Unhandled exception: {type(e).__name__}: {e}",
                    "red",
                )
            )
            continue

        if response == config.UI_CLEAR:
            if ui is not None:
                ui.clear()
            else:
                output_fn("\033[2J\033[H")
            continue

        if response:
            emit(response)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the repler CLI. Returns the exit status."""
    args = sys.argv[1:] if argv is None else argv

    if args and args[0] in ("-h", "--help"):
        print(USAGE, end="")
        return 0
    if args and args[0] in ("-v", "--version"):
        print(f"repler {__version__}")
        return 0
    if args:
        print(USAGE, end="", file=sys.stderr)
        return 2

    cwd = Path.cwd()
    project_root = config.find_project_root(cwd)
    if project_root is None:
        print(
            config.colorize(f"{cwd} isn't inside a Python project", "red"),
            file=sys.stderr,
        )
        return EXIT_NO_PROJECT

    cfg = config.load_config(project_root)
    data_root = config.get_data_root()
    config.configure_logging(cfg, data_root)

    # Absolute imports typed at the prompt see the working directory.
    base_dir = str(cwd)
    if base_dir not in sys.path:
        sys.path.insert(0, base_dir)

    # Explicit wiring: config + notifier + transformer injected into kernel
    notifier = WatchfilesNotifier.from_config(cfg)
    transformer = PythonTransformer(
        plugins=load_plugins(cfg.get_path("transform.plugins", []) or [])
    )
    kernel = Kernel(
        notifier=notifier,
        config=cfg,
        base_dir=base_dir,
        transformer=transformer,
    )

    try:
        # Start kernel (do NOT include prompt; comes from ui.read())
        start_output = kernel.start(include_prompt=False)

        # If user explicitly disables prompt_toolkit UI:
        if os.environ.get("REPLER_LEGACY_UI") == "1":
            if start_output:
                print(start_output)
            run_repl(kernel)
            return 0

        # Default: PromptToolkitUI (keeps terminal scrollback/copy/select)
        ui = PromptToolkitUI(kernel, history_file=config.history_path(data_root))
        kernel.wake_fn = ui.wake

        if start_output:
            ui.write(start_output + "\n")

        run_repl(kernel, ui=ui)
        return 0

    except WatcherFailure as e:
        write_crash_log(e, base_dir=kernel.base_dir)
        print(config.colorize(str(e), "red"), file=sys.stderr)
        return EXIT_WATCHER_FAILURE

    finally:
        kernel.close()


def run() -> None:
    """Console script wrapper: exit with main()'s status."""
    raise SystemExit(main())
