"""Configuration loading and management for reposcan.

Configuration sources are merged in priority order:
    1. Defaults (defined in ScanConfig)
    2. Global config (~/.reposcan.toml)
    3. Project config (./reposcan.toml)
    4. Explicit config file
    5. Environment variables (REPOSCAN_* prefix)
    6. Keyword overrides (typically CLI flags)

Example:
    >>> config = load_config(max_commits=200)
    >>> config.max_commits
    200
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError
from .git.models import HistoryOptions

Verbosity = Literal["quiet", "normal", "verbose"]

ENV_PREFIX = "REPOSCAN_"


@dataclass(frozen=True)
class ScanConfig:
    """Configuration for history reads, polling, caching and batch scans.

    Attributes:
        History reads:
            max_commits: Commit log cap per snapshot
            include_branches: Read branches and map commits to local branches
            include_remotes: Read remote name -> URL pairs
            include_stats: Query per-commit diff statistics
            branch_walk_depth: Commits walked per local branch for attribution
            stat_concurrency: Concurrent per-commit stat queries

        Process execution:
            git_binary: Executable used for every invocation
            process_timeout_seconds: Bound on a single git invocation
            max_output_mb: Output cap per invocation
            scan_deadline_seconds: Bound on one repository's full scan

        Scheduling:
            concurrency: Repositories scanned at once in a batch
            history_max_age_hours: Age at which a cached snapshot is stale
            state_debounce_seconds: Minimum gap between working-tree polls

        Caching:
            cache_max_entries: LRU bound per in-memory cache
            cache_dir: Directory for the persistent cache (None = memory only)
    """

    # History reads
    max_commits: int = 1000
    include_branches: bool = True
    include_remotes: bool = True
    include_stats: bool = True
    branch_walk_depth: int = 100
    stat_concurrency: int = 8

    # Process execution
    git_binary: str = "git"
    process_timeout_seconds: float = 30.0
    max_output_mb: int = 50
    scan_deadline_seconds: float = 600.0

    # Scheduling
    concurrency: int = 5
    history_max_age_hours: float = 24.0
    state_debounce_seconds: float = 2.0

    # Caching
    cache_max_entries: int = 256
    cache_dir: Optional[str] = None

    # Output control
    verbosity: Verbosity = "normal"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_commits < 1:
            raise ConfigurationError("max_commits must be at least 1")
        if self.branch_walk_depth < 1:
            raise ConfigurationError("branch_walk_depth must be at least 1")
        if self.stat_concurrency < 1:
            raise ConfigurationError("stat_concurrency must be at least 1")
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be at least 1")
        if self.process_timeout_seconds <= 0:
            raise ConfigurationError("process_timeout_seconds must be positive")
        if self.scan_deadline_seconds <= 0:
            raise ConfigurationError("scan_deadline_seconds must be positive")
        if self.max_output_mb < 1:
            raise ConfigurationError("max_output_mb must be at least 1")
        if self.history_max_age_hours < 0:
            raise ConfigurationError("history_max_age_hours must be non-negative")
        if self.state_debounce_seconds < 0:
            raise ConfigurationError("state_debounce_seconds must be non-negative")
        if self.cache_max_entries < 1:
            raise ConfigurationError("cache_max_entries must be at least 1")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise ConfigurationError(
                f"verbosity must be quiet, normal or verbose, got '{self.verbosity}'"
            )

    @property
    def history_max_age_seconds(self) -> float:
        """Get snapshot staleness threshold in seconds."""
        return self.history_max_age_hours * 3600

    @property
    def max_output_bytes(self) -> int:
        return self.max_output_mb * 1024 * 1024

    def history_options(self) -> HistoryOptions:
        """Options record passed to the history reader."""
        return HistoryOptions(
            max_commits=self.max_commits,
            include_branches=self.include_branches,
            include_remotes=self.include_remotes,
            include_stats=self.include_stats,
        )


DEFAULT_CONFIG = ScanConfig()


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> ScanConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options keep lower-priority values.

    Returns:
        Validated ScanConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
    """
    merged: dict[str, Any] = {}

    global_config = Path.home() / ".reposcan.toml"
    if global_config.exists():
        merged.update(_load_toml_file(global_config))

    project_config = Path.cwd() / "reposcan.toml"
    if project_config.exists():
        merged.update(_load_toml_file(project_config))

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(
                f"Config file not found: {config_file}", context={"path": str(config_file)}
            )
        merged.update(_load_toml_file(config_file))

    merged.update(_load_env_vars())

    if overrides.pop("verbose", False):
        overrides["verbosity"] = "verbose"
    if overrides.pop("quiet", False):
        overrides["verbosity"] = "quiet"

    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ScanConfig(**merged)
    except TypeError as e:
        # Unknown field in config
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from REPOSCAN_* environment variables.

    Every ScanConfig field maps to ``REPOSCAN_<FIELD_NAME>``; for example
    ``REPOSCAN_MAX_COMMITS=500`` or ``REPOSCAN_CACHE_DIR=~/.cache/reposcan``.
    """
    type_hints = get_type_hints(ScanConfig)
    result: dict[str, Any] = {}

    for field_name in ScanConfig.__dataclass_fields__:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        env_value = os.environ.get(env_key)
        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}", context={"value": env_value})
        if parsed is not None:
            result[field_name] = parsed

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the field's type."""
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        if lower in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file, accepting either top-level keys or a [reposcan] table."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Invalid config file '{path}': {e}", context={"path": str(path)})

    section = data.get("reposcan")
    if isinstance(section, dict):
        return section
    return data
