# tests/test_kernel.py
"""
Kernel tests with dependency injection.
Kernel drives the eval pipeline and reload notifications; loading,
watching and configuration are injected.
"""
from __future__ import annotations

import os
from pathlib import Path

import pytest

import repler.kernel as kernel_mod
from repler.config import ANSI_COLORS, UI_CLEAR, YAMLConfig
from repler.errors import WatcherFailure
from repler.interfaces import FileEvent
from repler.kernel import Kernel

# ----------------------------------------------------------------
# Boundary tests (hard gates)
# ----------------------------------------------------------------


def test_kernel_module_does_not_load_config_or_pick_a_watcher() -> None:
    """
    HARD BOUNDARY:
    - Kernel must not read YAML/TOML or pick a notifier implementation.
    - Those are wired by the CLI and injected.
    """
    text = Path(kernel_mod.__file__).read_text(encoding="utf-8")

    forbidden_substrings = [
        "import yaml",
        "import tomllib",
        "import watchfiles",
        "from watchfiles",
        "from .watcher import",
        "load_config(",
    ]
    hits = [s for s in forbidden_substrings if s in text]
    assert not hits, f"kernel.py crosses a wiring boundary: {hits}"


# ----------------------------------------------------------------
# Fakes
# ----------------------------------------------------------------


class FakeNotifier:
    def __init__(self):
        self.added: list[str] = []
        self.removed: list[str] = []
        self.callback = None
        self.closed = False

    def start(self, callback) -> None:
        self.callback = callback

    def add(self, path: str) -> None:
        self.added.append(path)

    def remove(self, path: str) -> None:
        self.removed.append(path)

    def close(self) -> None:
        self.closed = True


def fake_config(**overrides) -> YAMLConfig:
    data = {
        "system": {
            "name": "repler",
            "prompt": ">>>",
            "continuation_prompt": "...",
            "welcome": {"message": "Welcome to repler!"},
        },
        "watch": {},
        "transform": {"plugins": []},
    }
    data.update(overrides)
    return YAMLConfig(data)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    p = Path(os.path.realpath(tmp_path)) / "project"
    p.mkdir()
    return p


@pytest.fixture
def kernel(project: Path):
    k = Kernel(notifier=FakeNotifier(), config=fake_config(), base_dir=str(project))
    k.start()
    yield k
    k.store.clear()


def write(path: Path, text: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return str(path)


def plain(text: str) -> str:
    for code in ANSI_COLORS.values():
        text = text.replace(code, "")
    return text


# ----------------------------------------------------------------
# Session lifecycle
# ----------------------------------------------------------------


def test_start_shows_welcome_and_starts_notifier(project: Path) -> None:
    notifier = FakeNotifier()
    k = Kernel(notifier=notifier, config=fake_config(), base_dir=str(project))

    out = k.start(include_prompt=False)

    assert k.running is True
    assert out == "Welcome to repler!"
    assert notifier.callback is not None


def test_start_can_include_prompt(project: Path) -> None:
    k = Kernel(notifier=FakeNotifier(), config=fake_config(), base_dir=str(project))

    out = k.start()

    assert plain(out).endswith(">>>")


def test_prompts_come_from_config(project: Path) -> None:
    cfg = fake_config(system={"prompt": "py>", "continuation_prompt": "..>"})
    k = Kernel(notifier=FakeNotifier(), config=cfg, base_dir=str(project))

    assert plain(k.prompt()) == "py>"
    assert plain(k.continuation_prompt()) == "..>"


def test_exit_command_stops_and_emits(kernel: Kernel) -> None:
    fired: list[str] = []
    kernel.on("exit", lambda: fired.append("exit"))

    out = kernel.handle_input(".exit")

    assert out == "Bye!"
    assert kernel.running is False
    assert fired == ["exit"]


def test_on_rejects_unknown_events(kernel: Kernel) -> None:
    with pytest.raises(ValueError):
        kernel.on("reload", lambda: None)


def test_close_closes_notifier(kernel: Kernel) -> None:
    kernel.close()

    assert kernel.notifier.closed is True


# ----------------------------------------------------------------
# Eval pipeline
# ----------------------------------------------------------------


def test_expression_value_is_echoed_and_stored(kernel: Kernel) -> None:
    assert kernel.handle_input("x = 41") == ""
    assert kernel.handle_input("x + 1") == "42"
    assert kernel.namespace["_"] == 42
    assert kernel.handle_input("'hi'") == "'hi'"


def test_none_is_not_echoed(kernel: Kernel) -> None:
    assert kernel.handle_input("None") == ""
    assert kernel.handle_input("print") != ""


def test_blank_input_does_nothing(kernel: Kernel) -> None:
    assert kernel.handle_input("   ") == ""


def test_runtime_error_is_reported_and_session_continues(kernel: Kernel) -> None:
    kernel.handle_input("y = 1")

    result = kernel.evaluate("y = 2\n\n1 / 0")

    assert not result.ok
    assert "ZeroDivisionError" in result.error
    assert "line 3" in result.error
    assert "kernel.py" not in result.error
    assert kernel.namespace["y"] == 2
    assert kernel.handle_input("y") == "2"


def test_syntax_error_is_reported_in_red(kernel: Kernel) -> None:
    out = kernel.handle_input("x = = 1")

    assert out.startswith(ANSI_COLORS["red"])
    assert "SyntaxError" in out


def test_relative_import_binds_and_registers_watch(
    kernel: Kernel, project: Path
) -> None:
    path = write(project / "shapes.py", "def area(r):\n    return 3 * r * r\n")

    assert kernel.handle_input("from .shapes import area") == ""

    assert kernel.handle_input("area(2)") == "12"
    assert kernel.watched == {path}
    assert kernel.notifier.added == [path]
    assert kernel.bindings.get(path) == {"area": "area"}


def test_failed_import_entry_is_watched_but_not_bound(
    kernel: Kernel, project: Path
) -> None:
    path = write(project / "m.py", "x = 1\n")

    out = kernel.handle_input("from .m import nope")
    assert "AttributeError" in out
    assert kernel.watched == {path}
    assert len(kernel.bindings) == 0

    kernel.handle_input("from .m import x")
    write(project / "m.py", "x = 10\n")
    kernel.notifier.callback(FileEvent(kind="changed", path=path))
    out = kernel.process_events()

    assert plain(out).splitlines() == ["m.py changed", "from .m import x"]
    assert kernel.handle_input("x") == "10"


def test_absolute_imports_are_untouched(kernel: Kernel) -> None:
    kernel.handle_input("import json")

    assert kernel.handle_input("json.dumps([1])") == "'[1]'"
    assert kernel.watched == set()


def test_error_in_module_points_at_original_line(
    kernel: Kernel, project: Path
) -> None:
    path = write(
        project / "boom.py",
        "x = 1\n\n\n\ndef explode():\n    raise ValueError('bad')\n",
    )
    kernel.handle_input("from .boom import explode")

    result = kernel.evaluate("explode()")

    assert f'File "{path}", line 6, in explode' in result.error
    assert "raise ValueError('bad')" in result.error


def test_needs_more() -> None:
    k = Kernel(notifier=FakeNotifier(), config=fake_config())

    assert k.needs_more("def f():") is True
    assert k.needs_more("def f():\n    return 1") is True
    assert k.needs_more("def f():\n    return 1\n") is False
    assert k.needs_more("x = 1") is False
    assert k.needs_more("x = )") is False
    assert k.needs_more(".help") is False
    assert k.needs_more("") is False


# ----------------------------------------------------------------
# Reload events
# ----------------------------------------------------------------


def test_process_events_reloads_and_summarizes(
    kernel: Kernel, project: Path
) -> None:
    path = write(project / "shapes.py", "SIDES = 3\nNAME = 'tri'\n")
    kernel.handle_input("from .shapes import SIDES, NAME as label")
    reloaded: list[tuple[str, list[str]]] = []
    kernel.on("module-reloaded", lambda p, names: reloaded.append((p, names)))

    write(project / "shapes.py", "SIDES = 4\nNAME = 'square'\n")
    kernel.notifier.callback(FileEvent(kind="changed", path=path))
    out = kernel.process_events()

    assert plain(out).splitlines() == [
        "shapes.py changed",
        "from .shapes import SIDES, NAME as label",
    ]
    assert out.startswith(ANSI_COLORS["green"])
    assert kernel.handle_input("(SIDES, label)") == "(4, 'square')"
    assert reloaded == [(path, ["SIDES", "label"])]


def test_process_events_reports_removals(kernel: Kernel, project: Path) -> None:
    path = write(project / "gone.py", "X = 1\n")
    kernel.handle_input("from .gone import X")

    kernel.notifier.callback(FileEvent(kind="deleted", path=path))
    out = kernel.process_events()

    assert plain(out) == "gone.py was removed"
    assert out.startswith(ANSI_COLORS["yellow"])
    assert kernel.watched == set()


def test_process_events_with_nothing_queued(kernel: Kernel) -> None:
    assert kernel.process_events() == ""


def test_process_events_raises_on_watcher_error(kernel: Kernel) -> None:
    kernel.notifier.callback(FileEvent(kind="error", error=OSError("x")))

    with pytest.raises(WatcherFailure):
        kernel.process_events()


def test_wake_fn_is_called_when_events_arrive(kernel: Kernel) -> None:
    woken: list[int] = []
    kernel.wake_fn = lambda: woken.append(1)

    kernel.notifier.callback(FileEvent(kind="changed", path="/nowhere.py"))

    assert woken == [1]


# ----------------------------------------------------------------
# REPL commands
# ----------------------------------------------------------------


def test_help_lists_commands(kernel: Kernel) -> None:
    out = kernel.handle_input(".help")

    for command in kernel_mod.COMMANDS:
        assert command in out


def test_clear_command_and_ctrl_l(kernel: Kernel) -> None:
    assert kernel.handle_input(".clear") == UI_CLEAR
    assert kernel.handle_input("\x0c") == UI_CLEAR


def test_reset_keeps_globals_and_emits(kernel: Kernel, project: Path) -> None:
    path = write(project / "m.py", "X = 1\n")
    kernel.handle_input("from .m import X\nkept = True")
    fired: list[str] = []
    kernel.on("reset", lambda: fired.append("reset"))

    kernel.handle_input(".reset")

    assert fired == ["reset"]
    assert kernel.watched == set()
    assert len(kernel.bindings) == 0
    assert path not in kernel.store
    assert kernel.namespace["kept"] is True
    assert kernel.namespace["X"] == 1


def test_compile_command_previews_without_side_effects(
    kernel: Kernel, project: Path
) -> None:
    path = write(project / "m.py", "X = 1\n")

    out = kernel.handle_input(".compile from .m import X")

    assert f"__repler__.require('{path}')" in out
    assert kernel.watched == set()
    assert len(kernel.store) == 0
    assert "X" not in kernel.namespace


def test_compile_command_usage_and_errors(kernel: Kernel) -> None:
    assert kernel.handle_input(".compile") == "Usage: .compile <code>"
    assert "SyntaxError" in kernel.handle_input(".compile x = = 1")


def test_listing_commands(kernel: Kernel, project: Path) -> None:
    assert kernel.handle_input(".bindings") == "No bindings."
    assert kernel.handle_input(".watched") == "No files watched."
    assert kernel.handle_input(".modules") == "No modules loaded."

    write(project / "util.py", "X = 1\n")
    write(project / "main.py", "from .util import X\n")
    kernel.handle_input("from .main import X as value\nfrom . import util")

    bindings = kernel.handle_input(".bindings").splitlines()
    assert bindings[0].split() == ["name", "export", "module"]
    assert ["value", "X", "main.py"] in [row.split() for row in bindings]
    assert ["util", "(module)", "util.py"] in [row.split() for row in bindings]

    assert kernel.handle_input(".watched").splitlines() == ["main.py", "util.py"]

    modules = [row.split() for row in kernel.handle_input(".modules").splitlines()]
    assert ["main.py", "native", "util.py"] in modules
    assert ["util.py", "native", "-"] in modules


def test_write_crash_log_appends(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("REPLER_DATA_HOME", str(tmp_path))

    kernel_mod.write_crash_log(RuntimeError("kaboom"), raw_input="x()", base_dir="/p")
    kernel_mod.write_crash_log(RuntimeError("again"))

    text = kernel_mod.crash_log_path().read_text(encoding="utf-8")
    assert "input=x()" in text
    assert "base_dir=/p" in text
    assert "RuntimeError: kaboom" in text
    assert "RuntimeError: again" in text
    assert text.count("----") == 2
