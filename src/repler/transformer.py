# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ast-based source transformer.

parse -> configured transforms -> plugin (import rewriter) -> unparse.

The unparsed text is what gets executed, so line numbers in tracebacks
refer to it. The position map built here translates them back to the
lines the user actually wrote.
"""

from __future__ import annotations

import ast
import importlib
from collections.abc import Iterable, Sequence

from .errors import CompileFailure
from .interfaces import CompileResult, TransformFn


def build_position_map(tree: ast.AST, text: str) -> dict[int, int]:
    """Map each line of text to the original line of the node it came from.

    text is ast.unparse(tree); reparsing it yields the same node shapes,
    so walking both trees side by side pairs every node with its source.
    Stops at the first shape mismatch.
    """
    mapping: dict[int, int] = {}
    try:
        reparsed = ast.parse(text)
    except SyntaxError:
        return mapping

    for new, old in zip(ast.walk(reparsed), ast.walk(tree)):
        if type(new) is not type(old):
            break
        new_line = getattr(new, "lineno", None)
        old_line = getattr(old, "lineno", None)
        if new_line is not None and old_line is not None:
            mapping.setdefault(new_line, old_line)
    return mapping


def load_plugins(specs: Iterable[str] | None) -> list[TransformFn]:
    """Import transforms given as "package.module:function"."""
    plugins: list[TransformFn] = []
    for spec in specs or []:
        module_name, sep, attr = str(spec).partition(":")
        if not sep or not module_name or not attr:
            raise ValueError(
                f"Invalid transform plugin {spec!r} "
                "(expected 'package.module:function')"
            )
        module = importlib.import_module(module_name)
        fn = getattr(module, attr)
        if not callable(fn):
            raise ValueError(f"Transform plugin {spec!r} is not callable")
        plugins.append(fn)
    return plugins


class PythonTransformer:
    """Python implementation of SourceTransformer protocol."""

    def __init__(self, plugins: Sequence[TransformFn] = ()) -> None:
        self.plugins = list(plugins)

    def compile(
        self, source: str, filename: str, plugin: TransformFn | None = None
    ) -> CompileResult:
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as e:
            raise CompileFailure(filename, e) from e

        transforms = list(self.plugins)
        if plugin is not None:
            transforms.append(plugin)

        for transform in transforms:
            tree = transform(tree, filename)

        ast.fix_missing_locations(tree)
        text = ast.unparse(tree)
        return CompileResult(
            text=text, position_map=build_position_map(tree, text)
        )
