"""Tests for configuration loading."""

import os

import pytest

from reposcan.config import ScanConfig, load_config
from reposcan.exceptions import ConfigurationError
from reposcan.git.models import HistoryOptions


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty home and working directory, no REPOSCAN_* variables."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for key in list(os.environ):
        if key.startswith("REPOSCAN_"):
            monkeypatch.delenv(key)
    return home, work


class TestScanConfig:
    def test_defaults(self):
        config = ScanConfig()
        assert config.max_commits == 1000
        assert config.concurrency == 5
        assert config.branch_walk_depth == 100
        assert config.state_debounce_seconds == 2.0
        assert config.cache_dir is None

    def test_derived_values(self):
        config = ScanConfig(history_max_age_hours=2, max_output_mb=1)
        assert config.history_max_age_seconds == 7200
        assert config.max_output_bytes == 1024 * 1024

    def test_history_options(self):
        config = ScanConfig(max_commits=50, include_stats=False)
        assert config.history_options() == HistoryOptions(
            max_commits=50, include_branches=True, include_remotes=True, include_stats=False
        )

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_commits", 0),
            ("concurrency", 0),
            ("process_timeout_seconds", 0),
            ("scan_deadline_seconds", -1),
            ("history_max_age_hours", -1),
            ("state_debounce_seconds", -0.5),
            ("cache_max_entries", 0),
            ("verbosity", "loud"),
        ],
    )
    def test_validation(self, field, value):
        with pytest.raises(ConfigurationError):
            ScanConfig(**{field: value})


class TestLoadConfig:
    def test_defaults_without_sources(self, isolated):
        assert load_config() == ScanConfig()

    def test_project_file(self, isolated):
        _, work = isolated
        (work / "reposcan.toml").write_text("max_commits = 200\nconcurrency = 2\n")

        config = load_config()
        assert config.max_commits == 200
        assert config.concurrency == 2

    def test_reposcan_table(self, isolated):
        _, work = isolated
        (work / "reposcan.toml").write_text("[reposcan]\ninclude_stats = false\n")
        assert load_config().include_stats is False

    def test_project_overrides_global(self, isolated):
        home, work = isolated
        (home / ".reposcan.toml").write_text("max_commits = 10\nconcurrency = 3\n")
        (work / "reposcan.toml").write_text("max_commits = 20\n")

        config = load_config()
        assert config.max_commits == 20
        assert config.concurrency == 3

    def test_explicit_file(self, isolated, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text('cache_dir = "/tmp/reposcan-cache"\n')
        assert load_config(config_file=path).cache_dir == "/tmp/reposcan-cache"

    def test_missing_explicit_file(self, isolated, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(config_file=tmp_path / "nope.toml")

    def test_invalid_toml(self, isolated):
        _, work = isolated
        (work / "reposcan.toml").write_text("max_commits = \n")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_unknown_key(self, isolated):
        _, work = isolated
        (work / "reposcan.toml").write_text("colour = 'blue'\n")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config()

    def test_env_vars(self, isolated, monkeypatch):
        monkeypatch.setenv("REPOSCAN_MAX_COMMITS", "42")
        monkeypatch.setenv("REPOSCAN_INCLUDE_REMOTES", "no")
        monkeypatch.setenv("REPOSCAN_HISTORY_MAX_AGE_HOURS", "0.5")
        monkeypatch.setenv("REPOSCAN_CACHE_DIR", "/var/cache/reposcan")

        config = load_config()
        assert config.max_commits == 42
        assert config.include_remotes is False
        assert config.history_max_age_hours == 0.5
        assert config.cache_dir == "/var/cache/reposcan"

    def test_bad_env_value(self, isolated, monkeypatch):
        monkeypatch.setenv("REPOSCAN_INCLUDE_STATS", "maybe")
        with pytest.raises(ConfigurationError, match="REPOSCAN_INCLUDE_STATS"):
            load_config()

    def test_env_overrides_file(self, isolated, monkeypatch):
        _, work = isolated
        (work / "reposcan.toml").write_text("max_commits = 200\n")
        monkeypatch.setenv("REPOSCAN_MAX_COMMITS", "300")
        assert load_config().max_commits == 300

    def test_keyword_overrides_win(self, isolated, monkeypatch):
        monkeypatch.setenv("REPOSCAN_MAX_COMMITS", "300")
        assert load_config(max_commits=5).max_commits == 5

    def test_none_overrides_ignored(self, isolated, monkeypatch):
        monkeypatch.setenv("REPOSCAN_CONCURRENCY", "7")
        assert load_config(concurrency=None).concurrency == 7

    def test_verbosity_flags(self, isolated):
        assert load_config(verbose=True).verbosity == "verbose"
        assert load_config(quiet=True).verbosity == "quiet"
        assert load_config(verbose=False, quiet=False).verbosity == "normal"
