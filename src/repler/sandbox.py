# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Execution sandbox: runs compiled text against a persistent namespace.

REPL input and rebinding statements share the one REPL namespace, so
rebinding assigns over existing variables instead of declaring new ones.
Module files run against their own module namespace.
"""

from __future__ import annotations

import ast
import builtins
from typing import Any


class NamespaceSandbox:
    """exec/eval implementation of Sandbox protocol."""

    def __init__(self, context: dict[str, Any] | None = None) -> None:
        if context is None:
            context = {"__name__": "__main__", "__doc__": None}
        context.setdefault("__builtins__", builtins)
        self._context = context

    @property
    def context(self) -> dict[str, Any]:
        return self._context

    def define_global(self, name: str, value: Any) -> None:
        self._context[name] = value

    def run(
        self,
        text: str,
        filename: str,
        context: dict[str, Any] | None = None,
    ) -> Any:
        """Execute text; return the value of its trailing expression, if any.

        Raises whatever the executed code raises.
        """
        namespace = self._context if context is None else context
        tree = ast.parse(text, filename=filename)

        # dont_inherit: our own __future__ flags must not leak into user code
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last = tree.body.pop()
            if tree.body:
                exec(
                    compile(tree, filename, "exec", dont_inherit=True),
                    namespace,
                )
            expr = ast.Expression(body=last.value)
            return eval(
                compile(expr, filename, "eval", dont_inherit=True), namespace
            )

        exec(compile(tree, filename, "exec", dont_inherit=True), namespace)
        return None
