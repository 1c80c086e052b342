"""Default configuration values for Lodestar."""

from typing import Literal

# Insight collaborator (must be overridden in config.py)
INSIGHT_API_KEY = ""
INSIGHT_BASE_URL = "https://openrouter.ai/api/v1"

MODELS = {
    "small": "meta-llama/llama-3.1-8b-instruct",
    "medium": "meta-llama/llama-3.3-70b-instruct",
    "large": "deepseek/deepseek-chat",
}

# Model tier per insight kind
INSIGHT_MODEL_TIERS: dict[str, Literal["small", "medium", "large"]] = {
    "risk_analysis": "medium",
    "intervention_plan": "medium",
    "effectiveness_analysis": "small",
}

INSIGHT_TEMPERATURE: float = 0.4
INSIGHT_MAX_TOKENS: int = 1024

# Risk assessment
ASSESSED_CATEGORIES: str | list[str] = "all"

RISK_TRIGGER_THRESHOLDS: dict[str, str] = {
    "academic": "MODERATE",
    "emotional": "HIGH",
    "skill_development": "MODERATE",
    "career_preparation": "HIGH",
}

# Performance
CALL_TIMEOUT_MS: int = 30000

# Batch sweep
SWEEP_MAX_PARALLEL: int = 4
SWEEP_INTERVAL: float = 86400.0
TRACKING_ENABLED_IN_SWEEP: bool = True

# Adaptive scaling
DEFAULT_INTERVENTION_LEVEL: int = 3
RECENT_EFFECTIVENESS_WINDOW: int = 3

# Paths
DATA_DIR: str = "data"
DB_FILENAME: str = "lodestar.db"
CATALOG_PATH: str = ""  # empty = bundled catalog.yaml

# All configurable keys (for validation)
CONFIG_KEYS = {
    "INSIGHT_API_KEY",
    "INSIGHT_BASE_URL",
    "MODELS",
    "INSIGHT_MODEL_TIERS",
    "INSIGHT_TEMPERATURE",
    "INSIGHT_MAX_TOKENS",
    "ASSESSED_CATEGORIES",
    "RISK_TRIGGER_THRESHOLDS",
    "CALL_TIMEOUT_MS",
    "SWEEP_MAX_PARALLEL",
    "SWEEP_INTERVAL",
    "TRACKING_ENABLED_IN_SWEEP",
    "DEFAULT_INTERVENTION_LEVEL",
    "RECENT_EFFECTIVENESS_WINDOW",
    "DATA_DIR",
    "DB_FILENAME",
    "CATALOG_PATH",
}
