# tests/test_config.py
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from repler import config


@pytest.fixture
def tmp_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def repler_data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data = tmp_path / "repler_data_home"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("REPLER_DATA_HOME", str(data))
    return data


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    p = tmp_path / "project"
    p.mkdir(parents=True, exist_ok=True)
    return p


@pytest.fixture
def nested_dir(project_dir: Path) -> Path:
    n = project_dir / "a" / "b" / "c"
    n.mkdir(parents=True, exist_ok=True)
    return n


def test_get_data_root_prefers_repler_data_home(repler_data_home: Path) -> None:
    """
    REPLER_DATA_HOME wins when present.
    """
    assert config.get_data_root() == repler_data_home


def test_get_data_root_defaults_to_local_share_and_ignores_xdg(
    tmp_home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    If REPLER_DATA_HOME is not set:
    - ignore XDG_DATA_HOME
    - default to ~/.local/share
    """
    monkeypatch.delenv("REPLER_DATA_HOME", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_home / "xdg"))

    root = config.get_data_root()

    assert root == tmp_home / ".local" / "share"
    assert root.is_dir()


def test_logs_and_history_live_under_data_root(tmp_path: Path) -> None:
    assert config.logs_dir(tmp_path) == tmp_path / "repler" / "logs"
    assert config.history_path(tmp_path) == tmp_path / "repler" / "history"


@pytest.mark.parametrize("manifest", ["pyproject.toml", "setup.cfg", "setup.py"])
def test_find_project_root_walks_up_to_manifest(
    project_dir: Path, nested_dir: Path, manifest: str
) -> None:
    (project_dir / manifest).write_text("", encoding="utf-8")

    assert config.find_project_root(nested_dir) == project_dir.resolve()


def test_find_project_root_returns_none_when_missing(nested_dir: Path) -> None:
    assert config.find_project_root(nested_dir) is None


def test_load_project_config_reads_tool_table(project_dir: Path) -> None:
    (project_dir / "pyproject.toml").write_text(
        '[project]\nname = "demo"\n\n'
        "[tool.repler.system]\n"
        'prompt = "demo>"\n\n'
        "[tool.repler.watch]\n"
        "debounce_ms = 10\n",
        encoding="utf-8",
    )

    data = config.load_project_config(project_dir)

    assert data == {"system": {"prompt": "demo>"}, "watch": {"debounce_ms": 10}}


def test_load_project_config_falls_back_to_yaml(project_dir: Path) -> None:
    (project_dir / "pyproject.toml").write_text(
        '[project]\nname = "demo"\n', encoding="utf-8"
    )
    (project_dir / ".repler.yaml").write_text(
        "transform:\n  plugins:\n    - mypkg.transforms:strip_asserts\n",
        encoding="utf-8",
    )

    data = config.load_project_config(project_dir)

    assert data == {"transform": {"plugins": ["mypkg.transforms:strip_asserts"]}}


def test_load_project_config_rejects_non_mapping_yaml(project_dir: Path) -> None:
    (project_dir / ".repler.yaml").write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        config.load_project_config(project_dir)


def test_load_project_config_empty_when_nothing_configured(
    project_dir: Path,
) -> None:
    assert config.load_project_config(project_dir) == {}


def test_packaged_defaults_load() -> None:
    cfg = config.load_system_config()

    assert cfg.get_path("system.prompt") == ">>>"
    assert cfg.get_path("watch.debounce_ms") == 50
    assert cfg.get_path("transform.plugins") == []
    assert cfg.get_path("ui.toolbar.enabled") is True
    assert cfg.get_path("logging.level") == "WARNING"


def test_load_defaults_yaml_missing_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        config.load_defaults_yaml("nope.yaml")


def test_load_config_merges_project_over_defaults(project_dir: Path) -> None:
    (project_dir / "pyproject.toml").write_text(
        "[tool.repler.system]\nprompt = \"demo>\"\n", encoding="utf-8"
    )

    cfg = config.load_config(project_dir)

    assert cfg.get_path("system.prompt") == "demo>"
    assert cfg.get_path("system.continuation_prompt") == "..."
    assert cfg.get_path("watch.rescan_ms") == 400


def test_deep_merge_does_not_mutate_inputs() -> None:
    base = {"a": {"b": 1, "c": 2}, "d": 3}
    override = {"a": {"b": 10}, "e": 4}

    merged = config.deep_merge(base, override)

    assert merged == {"a": {"b": 10, "c": 2}, "d": 3, "e": 4}
    assert base == {"a": {"b": 1, "c": 2}, "d": 3}


def test_yaml_config_properties_and_get_path() -> None:
    cfg = config.YAMLConfig(
        {
            "system": {"name": "repler"},
            "watch": {"debounce_ms": 5},
            "transform": {"plugins": ["m:f"]},
            "ui": "not-a-dict",
        }
    )

    assert cfg.system == {"name": "repler"}
    assert cfg.watch == {"debounce_ms": 5}
    assert cfg.transform == {"plugins": ["m:f"]}
    assert cfg.ui == {}
    assert cfg.get("system") == {"name": "repler"}
    assert cfg.get_path("system.name") == "repler"
    assert cfg.get_path("system.name.deeper", "x") == "x"
    assert cfg.get_path("missing.key", 7) == 7
    assert cfg.get_path("", 7) == 7


def test_colorize() -> None:
    assert config.colorize("hi", "red") == "\033[31mhi\033[0m"
    assert config.colorize("hi", "nope") == "hi"


def test_configure_logging_writes_to_file(tmp_path: Path) -> None:
    cfg = config.YAMLConfig({"logging": {"level": "debug"}})

    log_file = config.configure_logging(cfg, tmp_path)
    config.configure_logging(cfg, tmp_path)
    logging.getLogger("repler.test").debug("hello from test")

    logger = logging.getLogger("repler")
    handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    ours = [h for h in handlers if Path(h.baseFilename) == log_file]
    try:
        assert log_file == tmp_path / "repler" / "logs" / "repler.log"
        assert len(ours) == 1
        assert logger.level == logging.DEBUG
        ours[0].flush()
        assert "hello from test" in log_file.read_text(encoding="utf-8")
    finally:
        for h in ours:
            logger.removeHandler(h)
            h.close()
