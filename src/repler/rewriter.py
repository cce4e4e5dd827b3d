# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Relative import rewriter.

Turns every resolvable relative import into a call to the module loader
plus plain assignments:

    from .shapes import Circle, area as circle_area

becomes

    __repler_mod_shapes_1f2e3d4c = __repler__.require('/abs/shapes.py')
    Circle = __repler_mod_shapes_1f2e3d4c.Circle
    circle_area = __repler_mod_shapes_1f2e3d4c.area

The rewrite is structural only: nothing is executed, absolute imports are
left alone and statement order is preserved. Each rewritten target is
reported through the on_import callback so the session can watch it and
remember REPL-level bindings.
"""

from __future__ import annotations

import ast
import hashlib
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .bindings import STAR_IMPORT, WHOLE_MODULE

# Name of the loader hook injected into every namespace.
HOOK_NAME = "__repler__"

# resolve(level, dotted_module) -> absolute path or None
Resolver = Callable[[int, str | None], str | None]


@dataclass(frozen=True)
class ImportTarget:
    path: str
    bindings: tuple[tuple[str, str], ...]
    # False for imports inside a function or class body
    top_level: bool = True


def path_digest(path: str) -> str:
    return hashlib.sha1(path.encode("utf-8")).hexdigest()[:8]


def path_stem(path: str) -> str:
    """Human part of a module path: file stem, or package dir for __init__."""
    p = Path(path)
    stem = p.parent.name if p.name == "__init__.py" else p.stem
    return re.sub(r"\W", "_", stem) or "module"


def import_identifier(path: str) -> str:
    """Deterministic variable name holding the module loaded from path."""
    return f"__repler_mod_{path_stem(path)}_{path_digest(path)}"


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _store(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Store())


def _hook_call(method: str, arg: ast.expr) -> ast.Call:
    return ast.Call(
        func=ast.Attribute(value=_load(HOOK_NAME), attr=method, ctx=ast.Load()),
        args=[arg],
        keywords=[],
    )


def require_statement(path: str) -> ast.stmt:
    """<ident> = __repler__.require('<path>')"""
    return ast.Assign(
        targets=[_store(import_identifier(path))],
        value=_hook_call("require", ast.Constant(value=path)),
    )


def pair_statement(path: str, local: str, exported: str) -> ast.stmt:
    """Bind one (local, exported) pair from the module loaded for path."""
    ident = import_identifier(path)

    if local == STAR_IMPORT:
        # globals().update(__repler__.public(<ident>))
        spread = ast.Call(
            func=ast.Attribute(
                value=ast.Call(func=_load("globals"), args=[], keywords=[]),
                attr="update",
                ctx=ast.Load(),
            ),
            args=[_hook_call("public", _load(ident))],
            keywords=[],
        )
        return ast.Expr(value=spread)

    if exported == WHOLE_MODULE:
        return ast.Assign(targets=[_store(local)], value=_load(ident))

    return ast.Assign(
        targets=[_store(local)],
        value=ast.Attribute(value=_load(ident), attr=exported, ctx=ast.Load()),
    )


def binding_statements(
    path: str, pairs: list[tuple[str, str]] | tuple[tuple[str, str], ...]
) -> list[ast.stmt]:
    """Load path into its identifier, then bind each (local, exported) pair.

    The reloader builds its rebinding code from the same two helpers, so
    both produce exactly the same assignments.
    """
    statements = [require_statement(path)]
    statements.extend(
        pair_statement(path, local, exported) for local, exported in pairs
    )
    return statements


class ImportRewriter(ast.NodeTransformer):
    """AST plugin rewriting relative imports into loader calls.

    Args:
        resolve: host resolution, (level, dotted module) -> path or None
        on_import: called once per rewritten target, after the whole
            statement resolved
        repl: True when rewriting REPL input rather than a file
    """

    def __init__(
        self,
        resolve: Resolver,
        on_import: Callable[[ImportTarget], None] | None = None,
        repl: bool = False,
    ) -> None:
        self.resolve = resolve
        self.on_import = on_import
        self.repl = repl
        self.targets: list[ImportTarget] = []
        self._depth = 0

    def __call__(self, tree: ast.Module, filename: str) -> ast.Module:
        tree = self.visit(tree)

        # REPL bodies end in an expression; None echoes nothing.
        if self.repl and not any(isinstance(s, ast.Expr) for s in tree.body):
            line = 1
            if tree.body:
                line = tree.body[-1].end_lineno or tree.body[-1].lineno
            noop = ast.Expr(value=ast.Constant(value=None))
            noop.lineno = noop.end_lineno = line
            noop.col_offset = noop.end_col_offset = 0
            tree.body.append(noop)

        return ast.fix_missing_locations(tree)

    def _visit_scope(self, node: ast.AST) -> ast.AST:
        self._depth += 1
        try:
            return self.generic_visit(node)
        finally:
            self._depth -= 1

    visit_FunctionDef = visit_AsyncFunctionDef = visit_ClassDef = _visit_scope

    def _classify(
        self, node: ast.ImportFrom
    ) -> dict[str, list[tuple[str, str]]] | None:
        """Group the statement's aliases by resolved target path.

        Returns None when any alias cannot be resolved.
        """
        groups: dict[str, list[tuple[str, str]]] = {}

        for alias in node.names:
            if alias.name == "*":
                path = self.resolve(node.level, node.module)
                if path is None:
                    return None
                groups.setdefault(path, []).append((STAR_IMPORT, WHOLE_MODULE))
                continue

            local = alias.asname or alias.name

            # from .pkg import sub -> whole submodule when sub is a file,
            # even if pkg/__init__.py also defines sub
            dotted = f"{node.module}.{alias.name}" if node.module else alias.name
            submodule = self.resolve(node.level, dotted)
            if submodule is not None:
                groups.setdefault(submodule, []).append((local, WHOLE_MODULE))
                continue

            path = self.resolve(node.level, node.module)
            if path is None:
                return None
            groups.setdefault(path, []).append((local, alias.name))

        return groups

    def visit_ImportFrom(self, node: ast.ImportFrom) -> ast.AST | list[ast.stmt]:
        if not node.level:
            return node

        groups = self._classify(node)
        if groups is None:
            return node

        statements: list[ast.stmt] = []
        for path, pairs in groups.items():
            statements.extend(
                ast.copy_location(stmt, node)
                for stmt in binding_statements(path, pairs)
            )

        for path, pairs in groups.items():
            target = ImportTarget(
                path=path, bindings=tuple(pairs), top_level=self._depth == 0
            )
            self.targets.append(target)
            if self.on_import is not None:
                self.on_import(target)

        return statements
