# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Diagnostic mapping for errors raised by rewritten code.

Executed text is the unparsed, rewritten source, so raw traceback line
numbers point into it. Every compiled unit registers its position map
here; format_exception() rewrites frame line numbers back to original
coordinates and hides repler's own frames. Called explicitly by the
eval path: no global traceback hook is installed.
"""

from __future__ import annotations

import bisect
import linecache
import os
import traceback

from .errors import CompileFailure

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _is_internal(filename: str) -> bool:
    return os.path.dirname(os.path.abspath(filename)) == _PACKAGE_DIR


class DiagnosticMapper:
    """Registry of position maps keyed by compiled filename."""

    def __init__(self) -> None:
        self._maps: dict[str, dict[int, int]] = {}
        self._pseudo_files: set[str] = set()

    def register(
        self,
        filename: str,
        position_map: dict[int, int],
        source: str | None = None,
    ) -> None:
        """Remember a unit's position map.

        source is given for units with no file on disk (REPL input); it is
        placed in linecache so tracebacks can quote it.
        """
        self._maps[filename] = dict(position_map)
        if source is not None:
            lines = source.splitlines(keepends=True)
            linecache.cache[filename] = (len(source), None, lines, filename)
            self._pseudo_files.add(filename)
        else:
            linecache.checkcache(filename)

    def forget(self, filename: str) -> None:
        self._maps.pop(filename, None)
        if filename in self._pseudo_files:
            self._pseudo_files.discard(filename)
            linecache.cache.pop(filename, None)
        else:
            linecache.checkcache(filename)

    def has(self, filename: str) -> bool:
        return filename in self._maps

    def original_line(self, filename: str, lineno: int) -> int:
        """Translate a compiled line number; unknown lines map to themselves.

        A line with no entry of its own takes the nearest mapped line
        above it.
        """
        mapping = self._maps.get(filename)
        if not mapping:
            return lineno
        if lineno in mapping:
            return mapping[lineno]

        keys = sorted(mapping)
        idx = bisect.bisect_right(keys, lineno) - 1
        if idx < 0:
            return lineno
        return mapping[keys[idx]]

    def format_exception(self, error: BaseException) -> str:
        """Format error like the interpreter would, in original coordinates."""
        if isinstance(error, CompileFailure):
            # Raised while parsing: only the offending line is useful.
            syntax = error.error
            return "".join(
                traceback.format_exception_only(type(syntax), syntax)
            ).rstrip("\n")

        frames: list[traceback.FrameSummary] = []
        for frame in traceback.extract_tb(error.__traceback__):
            if _is_internal(frame.filename):
                continue
            lineno = frame.lineno
            if lineno is not None and frame.filename in self._maps:
                lineno = self.original_line(frame.filename, lineno)
            line = ""
            if lineno is not None:
                line = linecache.getline(frame.filename, lineno).strip()
            frames.append(
                traceback.FrameSummary(
                    frame.filename,
                    lineno,
                    frame.name,
                    lookup_line=False,
                    line=line,
                )
            )

        out: list[str] = []
        if frames:
            out.append("Traceback (most recent call last):\n")
            out.extend(traceback.StackSummary.from_list(frames).format())
        out.extend(traceback.format_exception_only(type(error), error))
        return "".join(out).rstrip("\n")
