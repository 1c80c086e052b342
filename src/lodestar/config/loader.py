"""Configuration loader for Lodestar.

Loads config.py from the working directory (or a parent), falling back to defaults.
"""

import copy
import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from . import defaults


class Config:
    """Configuration object with attribute access."""

    def __init__(self, config_path: Path | None = None, **overrides: Any) -> None:
        # Start with defaults (copied so callers can mutate dicts safely)
        for key in defaults.CONFIG_KEYS:
            setattr(self, key, copy.deepcopy(getattr(defaults, key)))

        # Load user config if available
        self._load_user_config(config_path)

        for key, value in overrides.items():
            if key not in defaults.CONFIG_KEYS:
                raise KeyError(f"Unknown config key: {key}")
            setattr(self, key, value)

    def _load_user_config(self, config_path: Path | None) -> None:
        """Load config.py from project root."""
        config_path = config_path or self._find_config_file()

        if config_path is None:
            return

        user_config = self._load_module_from_path(config_path)

        # Override defaults with user values
        for key in defaults.CONFIG_KEYS:
            if hasattr(user_config, key):
                setattr(self, key, getattr(user_config, key))

    def _find_config_file(self) -> Path | None:
        """Find config.py in current dir or parents."""
        current = Path.cwd()

        # Also check where the package is checked out
        package_root = Path(__file__).parent.parent.parent.parent

        search_paths = [current, package_root]

        while current != current.parent:
            search_paths.append(current)
            current = current.parent

        for path in search_paths:
            config_path = path / "config.py"
            if config_path.exists():
                return config_path

        return None

    def _load_module_from_path(self, path: Path) -> ModuleType:
        """Load a Python module from a file path."""
        spec = importlib.util.spec_from_file_location("lodestar_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load config from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules["lodestar_user_config"] = module
        spec.loader.exec_module(module)
        return module

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with optional default."""
        return getattr(self, key, default)

    def get_model(self, kind: str) -> str:
        """Get the model name used for an insight kind.

        Args:
            kind: Insight kind value, e.g. "risk_analysis"

        Returns:
            Model identifier string
        """
        tier = self.INSIGHT_MODEL_TIERS.get(kind, "small")
        return self.MODELS.get(tier, self.MODELS["small"])

    @property
    def db_path(self) -> Path:
        return Path(self.DATA_DIR) / self.DB_FILENAME

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        from lodestar.contracts.risk import RiskCategory, RiskLevel

        errors = []

        if not self.INSIGHT_API_KEY:
            errors.append("INSIGHT_API_KEY is not set")

        if not isinstance(self.MODELS, dict):
            errors.append("MODELS must be a dict")
        else:
            for tier in ["small", "medium", "large"]:
                if tier not in self.MODELS:
                    errors.append(f"MODELS missing '{tier}' tier")

        known = {c.value for c in RiskCategory}

        if self.ASSESSED_CATEGORIES != "all":
            for name in self.ASSESSED_CATEGORIES:
                if name not in known:
                    errors.append(f"ASSESSED_CATEGORIES has unknown category '{name}'")

        for name, level in self.RISK_TRIGGER_THRESHOLDS.items():
            if name not in known:
                errors.append(f"RISK_TRIGGER_THRESHOLDS has unknown category '{name}'")
            if RiskLevel.parse(level) is None:
                errors.append(f"RISK_TRIGGER_THRESHOLDS['{name}'] is not a risk level: {level!r}")

        if self.CALL_TIMEOUT_MS <= 0:
            errors.append("CALL_TIMEOUT_MS must be positive")

        if self.SWEEP_MAX_PARALLEL < 1:
            errors.append("SWEEP_MAX_PARALLEL must be at least 1")

        if not 1 <= self.DEFAULT_INTERVENTION_LEVEL <= 5:
            errors.append("DEFAULT_INTERVENTION_LEVEL must be between 1 and 5")

        if self.RECENT_EFFECTIVENESS_WINDOW < 1:
            errors.append("RECENT_EFFECTIVENESS_WINDOW must be at least 1")

        return errors

    def __repr__(self) -> str:
        return f"<Config loaded={bool(self.INSIGHT_API_KEY)}>"


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from disk."""
    global _config
    _config = Config()
    return _config
