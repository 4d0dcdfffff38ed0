"""Tests for configuration loading."""

import json
from pathlib import Path

from mindvault.config import (
    DEFAULT_MEMORY_PATH,
    MindConfig,
    get_config_path,
    get_project_dir,
    load_config,
    resolve_memory_path,
)


def write_config(project_dir: Path, data) -> Path:
    path = get_config_path(project_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


def test_defaults():
    config = MindConfig()

    assert config.memory_path == DEFAULT_MEMORY_PATH
    assert config.max_context_observations == 20
    assert config.max_context_tokens == 2000
    assert config.auto_compress is True
    assert config.min_confidence == 0.6
    assert config.debug is False


def test_camel_case_aliases(tmp_path):
    write_config(tmp_path, {"memoryPath": "mem/x.mv2", "maxContextTokens": 500, "autoCompress": False, "extra": 1})

    config = load_config(tmp_path)

    assert config.memory_path == "mem/x.mv2"
    assert config.max_context_tokens == 500
    assert config.auto_compress is False


def test_missing_file_uses_defaults(tmp_path):
    assert load_config(tmp_path) == MindConfig()


def test_malformed_file_uses_defaults(tmp_path, caplog):
    write_config(tmp_path, "{not json")

    assert load_config(tmp_path) == MindConfig()
    assert "Ignoring malformed config" in caplog.text


def test_invalid_values_use_defaults(tmp_path):
    write_config(tmp_path, {"maxContextTokens": -5})

    assert load_config(tmp_path).max_context_tokens == 2000


def test_overrides_win_over_file(tmp_path):
    write_config(tmp_path, {"maxContextObservations": 5, "debug": True})

    config = load_config(tmp_path, maxContextObservations=7, memory_path=None)

    assert config.max_context_observations == 7
    assert config.debug is True
    assert config.memory_path == DEFAULT_MEMORY_PATH


def test_explicit_path(tmp_path):
    path = tmp_path / "elsewhere.json"
    path.write_text(json.dumps({"memory_path": Path("a/b.mv2").as_posix()}))

    assert load_config(path=path).memory_path == "a/b.mv2"


def test_path_values_are_coerced(tmp_path):
    assert MindConfig(memory_path=tmp_path / "m.mv2").memory_path == str(tmp_path / "m.mv2")


def test_project_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CLAUDE_PROJECT_DIR", str(tmp_path / "proj"))
    assert get_project_dir() == tmp_path / "proj"

    monkeypatch.delenv("CLAUDE_PROJECT_DIR")
    monkeypatch.chdir(tmp_path)
    assert get_project_dir() == Path.cwd()


def test_resolve_memory_path(tmp_path):
    assert resolve_memory_path(MindConfig(), tmp_path) == (tmp_path / ".claude" / "mind.mv2").resolve()

    absolute = tmp_path / "abs.mv2"
    assert resolve_memory_path(MindConfig(memory_path=str(absolute)), Path("/unused")) == absolute.resolve()


def test_string_project_dir(tmp_path):
    write_config(tmp_path, {"maxContextTokens": 750})

    assert load_config(str(tmp_path)).max_context_tokens == 750
    assert get_config_path(str(tmp_path)) == tmp_path / ".claude" / "mind.json"
