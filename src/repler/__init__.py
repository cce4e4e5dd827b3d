# repler — Live Module Reload REPL for Python
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
repler core package.

A Python REPL that tracks relative imports and rebinds REPL variables
when the imported files change on disk.
"""

__version__ = "0.1.0"

from .kernel import Kernel as Kernel  # noqa: F401,E402 (re-export)
