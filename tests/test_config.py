from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from prism_server.config import load_config


def test_missing_file_uses_defaults(tmp_path: Path, clean_env):
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg["history"]["max_entries"] == 50
    assert cfg["history"]["default_user"] == "default-user"
    assert cfg["model"]["backend"] == "workers_ai"


def test_file_values_merge_over_defaults(tmp_path: Path, clean_env):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"history": {"max_entries": 10}}), encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg["history"]["max_entries"] == 10
    assert cfg["history"]["retention"] == "truncate_on_read"


def test_env_var_selects_config_file(tmp_path: Path, clean_env, monkeypatch):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"model": {"backend": "llama_cpp"}}), encoding="utf-8")
    monkeypatch.setenv("PRISM_CONFIG", str(path))
    assert load_config()["model"]["backend"] == "llama_cpp"


def test_env_overrides_parse_simple_types(tmp_path: Path, clean_env, monkeypatch):
    monkeypatch.setenv("PRISM__HISTORY__MAX_ENTRIES", "20")
    monkeypatch.setenv("PRISM__HISTORY__PERSIST_WAIT", "1.5")
    monkeypatch.setenv("PRISM__HISTORY__RETENTION", "bounded")
    monkeypatch.setenv("PRISM__SERVER__DEBUG", "true")
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg["history"]["max_entries"] == 20
    assert cfg["history"]["persist_wait"] == 1.5
    assert cfg["history"]["retention"] == "bounded"
    assert cfg["server"]["debug"] is True


def test_invalid_yaml_raises(tmp_path: Path, clean_env):
    path = tmp_path / "bad.yaml"
    path.write_text("model: [unclosed", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_non_mapping_document_raises(tmp_path: Path, clean_env):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_shipped_default_config_loads(project_root: Path, clean_env):
    cfg = load_config(str(project_root / "config" / "default.yaml"))
    assert cfg["history"]["max_entries"] == 50
    assert cfg["history"]["retention"] in {"truncate_on_read", "bounded"}
