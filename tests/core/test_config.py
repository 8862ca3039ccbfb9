"""Tests for .sdd/config.json handling."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from sdd_mcp.config import CONFIG_FILENAME, SDD_DIR_NAME, ServerConfig, find_sdd_root, read_config, write_config


class TestReadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = read_config(tmp_path)
        assert config == ServerConfig()
        assert config.session_timeout == 1800
        assert config.sweep_interval == 300
        assert config.recovery_window == 86400
        assert config.call_timeout is None

    def test_round_trip(self, tmp_path: Path) -> None:
        write_config(tmp_path, ServerConfig(session_timeout=60, call_timeout=5))
        config = read_config(tmp_path)
        assert config.session_timeout == 60
        assert config.call_timeout == 5

    def test_version_not_written(self, tmp_path: Path) -> None:
        write_config(tmp_path, ServerConfig())
        assert "version" not in json.loads((tmp_path / CONFIG_FILENAME).read_text())

    def test_corrupt_file_gives_defaults(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{not json")
        assert read_config(tmp_path) == ServerConfig()

    def test_non_dict_gives_defaults(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[1, 2]")
        assert read_config(tmp_path) == ServerConfig()

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"session_timeout": 10, "colour": "blue"}))
        assert read_config(tmp_path).session_timeout == 10

    @pytest.mark.parametrize("value", ["soon", -1, True, None])
    def test_invalid_numeric_falls_back(self, tmp_path: Path, value: object) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"session_timeout": value}))
        assert read_config(tmp_path).session_timeout == 1800

    def test_zero_timeout_allowed(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"session_timeout": 0}))
        assert read_config(tmp_path).session_timeout == 0

    def test_invalid_call_timeout_disabled(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"call_timeout": 0}))
        assert read_config(tmp_path).call_timeout is None


class TestFindRoot:
    def test_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / SDD_DIR_NAME).mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_sdd_root(nested) == (tmp_path / SDD_DIR_NAME).resolve()

    def test_not_found(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            find_sdd_root(tmp_path)
