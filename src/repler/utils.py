# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Formatting helpers for REPL command output.
"""

import os
from typing import Any


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str = ""
) -> str:
    """
    Format rows as a plain, left-aligned text table.

    Args:
        headers: Column header names
        rows: Table rows, each a list of values
        title: Optional line printed above the table

    Returns:
        The table, or "" when there are no rows
    """
    if not rows:
        return ""

    cells = [[str(h) for h in headers]] + [
        [str(val) for val in row] for row in rows
    ]
    widths = [
        max(len(row[i]) for row in cells if i < len(row))
        for i in range(len(headers))
    ]

    lines = [title] if title else []
    for row in cells:
        lines.append(
            "  ".join(val.ljust(widths[i]) for i, val in enumerate(row)).rstrip()
        )
    return "\n".join(lines)


def display_path(path: str, base_dir: str) -> str:
    """Path relative to base_dir when it lives below it, else absolute."""
    rel = os.path.relpath(path, base_dir)
    if rel.startswith(os.pardir):
        return path
    return rel
