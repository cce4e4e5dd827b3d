# tests/test_diagnostics.py
from __future__ import annotations

import linecache

import pytest

from repler.diagnostics import DiagnosticMapper
from repler.errors import CompileFailure
from repler.sandbox import NamespaceSandbox
from repler.transformer import PythonTransformer


def test_original_line_uses_exact_then_nearest_lower_entry() -> None:
    mapper = DiagnosticMapper()
    mapper.register("<m>", {1: 1, 3: 7})

    assert mapper.original_line("<m>", 1) == 1
    assert mapper.original_line("<m>", 3) == 7
    assert mapper.original_line("<m>", 5) == 7
    assert mapper.original_line("<unknown>", 5) == 5


def test_register_places_pseudo_source_in_linecache() -> None:
    mapper = DiagnosticMapper()
    mapper.register("<repl-test-1>", {1: 1}, "a = 1\nb = 2\n")

    assert mapper.has("<repl-test-1>")
    assert linecache.getline("<repl-test-1>", 2) == "b = 2\n"

    mapper.forget("<repl-test-1>")

    assert not mapper.has("<repl-test-1>")
    assert linecache.getline("<repl-test-1>", 2) == ""


def test_runtime_error_is_reported_in_original_coordinates() -> None:
    source = "x = 1\n\n\n1 / 0\n"
    result = PythonTransformer().compile(source, "<repl-test-2>")
    mapper = DiagnosticMapper()
    mapper.register("<repl-test-2>", result.position_map, source)

    with pytest.raises(ZeroDivisionError) as exc:
        NamespaceSandbox().run(result.text, "<repl-test-2>")
    text = mapper.format_exception(exc.value)

    assert text.startswith("Traceback (most recent call last):")
    assert 'File "<repl-test-2>", line 4' in text
    assert "1 / 0" in text
    assert text.endswith("ZeroDivisionError: division by zero")


def test_internal_frames_are_hidden() -> None:
    mapper = DiagnosticMapper()

    with pytest.raises(ZeroDivisionError) as exc:
        NamespaceSandbox().run("1 / 0", "<repl-test-3>")
    text = mapper.format_exception(exc.value)

    assert "sandbox.py" not in text


def test_compile_failure_shows_only_the_syntax_error() -> None:
    mapper = DiagnosticMapper()

    with pytest.raises(CompileFailure) as exc:
        PythonTransformer().compile("x = = 1", "<repl-test-4>")
    text = mapper.format_exception(exc.value)

    assert "Traceback" not in text
    assert "SyntaxError" in text
    assert "<repl-test-4>" in text
