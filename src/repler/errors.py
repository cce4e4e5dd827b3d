# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Exception taxonomy for repler.

- CompileFailure: the source transformer rejected the input (non-fatal).
- WatcherFailure: the file notifier died; staleness can no longer be
  tracked, so the CLI exits with EXIT_WATCHER_FAILURE.
- ProjectNotFound: no Python project manifest above the working directory.

Unresolvable relative imports are not errors: they are left untouched.
"""

from __future__ import annotations

EXIT_NO_PROJECT = 1
EXIT_WATCHER_FAILURE = 2


class ReplerError(Exception):
    """Base class for repler errors."""


class CompileFailure(ReplerError):
    """Source could not be parsed or transformed."""

    def __init__(self, filename: str, error: SyntaxError):
        super().__init__(f"{filename}: {error}")
        self.filename = filename
        self.error = error


class WatcherFailure(ReplerError):
    """The file-change notifier reported an error."""

    def __init__(self, error: BaseException | None):
        super().__init__(f"Watcher error: {error}")
        self.error = error


class ProjectNotFound(ReplerError):
    """The working directory is not inside a Python project."""

    def __init__(self, cwd: str):
        super().__init__(f"{cwd} isn't inside a Python project")
        self.cwd = cwd
