"""
ConfigManager: YAML-backed progression tunables for Luminax.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values
  (XP per level, session caps, streak rules, quest rules, leaderboard limits).
- Back configuration with YAML files under `config/` plus explicit overrides.

Responsibilities
----------------
- Load and deep-merge every YAML file in the config directory.
- Layer caller-supplied overrides on top (used by tests and embedding apps).
- Serve reads from memory with hit/miss metrics.

Key Design Decisions
--------------------
- Instance-based: each ServiceContainer owns its ConfigManager, so tests can
  run several isolated containers side by side.
- Built-in defaults cover every key the services read, so a missing
  `config/` directory degrades to documented behaviour instead of failing.
- YAML is trusted deployment input; secrets never live here (see Config).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml

from luminax.core.logging.logger import get_logger

logger = get_logger(__name__)


_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "progression": {"xp_per_level": 1000},
    "activity": {
        "max_session_minutes": 1440,
        "max_subject_length": 100,
        "max_notes_length": 2000,
        "max_xp_grant": 100_000,
    },
    "streak": {"qualifying_kinds": ["study_session", "quiz_result"]},
    "quests": {"default_ttl_hours": 24, "max_target_value": 1_000_000, "activity_rules": {}},
    "leaderboard": {
        "default_limit": 50,
        "max_limit": 100,
        "weekly_limit": 20,
        "weekly_days": 7,
        "achievements_limit": 20,
    },
    "reports": {
        "chart_default_days": 30,
        "chart_max_days": 365,
        "recent_activity_limit": 5,
        "history_max_limit": 200,
    },
}


@dataclass
class ConfigMetrics:
    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    yaml_files_loaded: int = 0
    yaml_errors: int = 0


class ConfigManager:
    """
    Hierarchical configuration access with dot notation.

    Examples
    --------
    >>> config = ConfigManager.from_directory(Path("config"))
    >>> config.get("progression.xp_per_level")
    1000
    >>> config.get("leaderboard.max_limit", 100)
    100
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(_BUILTIN_DEFAULTS)
        self._metrics = ConfigMetrics()

        if values:
            self._deep_merge_dict(self._values, copy.deepcopy(dict(values)))
        if overrides:
            self._deep_merge_dict(self._values, copy.deepcopy(dict(overrides)))

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def from_directory(
        cls,
        config_dir: Path,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "ConfigManager":
        """
        Build a manager from every ``*.yaml`` / ``*.yml`` file in ``config_dir``.

        Files are merged in sorted path order so the result is deterministic.
        A missing directory yields the built-in defaults.
        """
        manager = cls(overrides=None)

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
        else:
            yaml_files = sorted(
                list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
            )
            for yaml_file in yaml_files:
                manager._load_yaml_file(yaml_file, config_dir)

            logger.info(
                "YAML configs loaded",
                extra={
                    "config_dir": str(config_dir),
                    "yaml_file_count": manager._metrics.yaml_files_loaded,
                    "total_keys": len(manager._values),
                },
            )

        if overrides:
            manager._deep_merge_dict(manager._values, copy.deepcopy(dict(overrides)))

        return manager

    def _load_yaml_file(self, yaml_file: Path, config_dir: Path) -> None:
        relative = str(yaml_file.relative_to(config_dir))
        try:
            with yaml_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            self._metrics.yaml_errors += 1
            logger.warning(
                "Failed to load YAML config",
                extra={
                    "file": relative,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return

        if isinstance(data, dict):
            self._deep_merge_dict(self._values, data)
            self._metrics.yaml_files_loaded += 1
            logger.debug("Loaded YAML config", extra={"file": relative})
        elif data is not None:
            logger.warning(
                "Ignoring non-dict YAML root object",
                extra={"file": relative, "root_type": type(data).__name__},
            )

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns ``default`` when any segment of the path is missing.
        """
        self._metrics.gets += 1
        value: Any = self._values

        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                self._metrics.cache_misses += 1
                return default
            value = value[part]

        self._metrics.cache_hits += 1
        return default if value is None else value

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning(
                "Non-integer config value; using default",
                extra={"config_key": key, "value": repr(value), "default": default},
            )
            return default
        return value

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "top_level_keys": len(self._values),
            "gets": self._metrics.gets,
            "cache_hits": self._metrics.cache_hits,
            "cache_misses": self._metrics.cache_misses,
            "yaml_files_loaded": self._metrics.yaml_files_loaded,
            "yaml_errors": self._metrics.yaml_errors,
        }
