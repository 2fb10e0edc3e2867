"""Unit tests for capgraph.core.config: CapGraphConfig loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from capgraph.core.config import CapGraphConfig, load_config, load_config_or_default
from capgraph.core.constants import DEFAULT_MAX_ROLE_DEPTH
from capgraph.core.exceptions import ConfigError, ConfigNotFoundError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_config(tmp_path: Path, content: str) -> Path:
    p = tmp_path / "config.toml"
    p.write_text(content)
    return p


FULL_TOML = """
config_version = 1

[logging]
level = "debug"
format = "json"

[database]
path = "/tmp/capgraph-test.db"

[engine]
max_role_depth = 8
accepted_prefixes = ["per_", "ROL_"]
"""


# ---------------------------------------------------------------------------
# Load config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path) -> None:
        cfg = load_config(_write_config(tmp_path, FULL_TOML))
        assert cfg.logging.level == "DEBUG"
        assert cfg.logging.format == "json"
        assert cfg.db_path == Path("/tmp/capgraph-test.db")
        assert cfg.engine.max_role_depth == 8
        assert cfg.engine.accepted_prefixes == ["PER_", "ROL_"]

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write_config(tmp_path, ""))
        assert cfg.engine.max_role_depth == DEFAULT_MAX_ROLE_DEPTH
        assert cfg.engine.accepted_prefixes == ["PER_", "ROL_", "DEF_"]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "nonexistent.toml")

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "this is not valid toml %%% [[[")
        with pytest.raises(ConfigError):
            load_config(p)

    def test_invalid_level_raises(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, '[logging]\nlevel = "LOUD"\n')
        with pytest.raises(ConfigError, match="Log level"):
            load_config(p)

    def test_unknown_engine_key_raises(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, "[engine]\nmax_depth = 3\n")
        with pytest.raises(ConfigError):
            load_config(p)

    @pytest.mark.parametrize("depth", [0, 257])
    def test_depth_bounds(self, tmp_path: Path, depth: int) -> None:
        p = _write_config(tmp_path, f"[engine]\nmax_role_depth = {depth}\n")
        with pytest.raises(ConfigError, match="max_role_depth"):
            load_config(p)

    def test_bad_prefix_raises(self, tmp_path: Path) -> None:
        p = _write_config(tmp_path, '[engine]\naccepted_prefixes = ["PERSON_"]\n')
        with pytest.raises(ConfigError):
            load_config(p)

    def test_config_env_var_points_at_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        p = _write_config(tmp_path, "[engine]\nmax_role_depth = 4\n")
        monkeypatch.setenv("CAPGRAPH_CONFIG", str(p))
        assert load_config().engine.max_role_depth == 4


class TestLoadConfigOrDefault:
    def test_defaults_without_file(self) -> None:
        cfg = load_config_or_default()
        assert isinstance(cfg, CapGraphConfig)
        assert cfg.logging.level == "WARNING"
        assert cfg.logging.format == "text"
        assert cfg.db_path.name == "capgraph.db"

    def test_explicit_missing_path_still_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigNotFoundError):
            load_config_or_default(tmp_path / "nope.toml")


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestEnvOverrides:
    def test_env_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        p = _write_config(tmp_path, FULL_TOML)
        monkeypatch.setenv("CAPGRAPH_LOG_LEVEL", "error")
        monkeypatch.setenv("CAPGRAPH_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("CAPGRAPH_MAX_ROLE_DEPTH", "5")
        cfg = load_config(p)
        assert cfg.logging.level == "ERROR"
        assert cfg.db_path == tmp_path / "env.db"
        assert cfg.engine.max_role_depth == 5

    def test_env_applies_to_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CAPGRAPH_LOG_FORMAT", "json")
        assert load_config_or_default().logging.format == "json"

    def test_non_integer_depth(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CAPGRAPH_MAX_ROLE_DEPTH", "deep")
        with pytest.raises(ConfigError, match="CAPGRAPH_MAX_ROLE_DEPTH"):
            load_config_or_default()
