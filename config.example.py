"""
Lodestar Configuration

Copy this file to config.py and fill in your values.
config.py is gitignored to keep secrets safe.
"""

# =============================================================================
# Insight collaborator
# =============================================================================

INSIGHT_API_KEY = "sk-or-v1-..."  # Get from https://openrouter.ai/keys
INSIGHT_BASE_URL = "https://openrouter.ai/api/v1"

MODELS = {
    "small": "meta-llama/llama-3.1-8b-instruct",   # Effectiveness analysis
    "medium": "meta-llama/llama-3.3-70b-instruct", # Risk analysis, plans
    "large": "deepseek/deepseek-chat",             # Spare tier
}

# Model tier per insight kind
INSIGHT_MODEL_TIERS = {
    "risk_analysis": "medium",
    "intervention_plan": "medium",
    "effectiveness_analysis": "small",
}

INSIGHT_TEMPERATURE = 0.4
INSIGHT_MAX_TOKENS = 1024

# =============================================================================
# Risk assessment
# =============================================================================

# Which categories to score ("all" or list of names)
ASSESSED_CATEGORIES = "all"
# ASSESSED_CATEGORIES = ["academic", "emotional", "attendance"]

# Minimum level at which a category triggers intervention planning.
# Categories not listed never trigger.
RISK_TRIGGER_THRESHOLDS = {
    "academic": "MODERATE",
    "emotional": "HIGH",
    "skill_development": "MODERATE",
    "career_preparation": "HIGH",
}

# =============================================================================
# Performance
# =============================================================================

CALL_TIMEOUT_MS = 30000               # Timeout for each collaborator call

# =============================================================================
# Batch sweep
# =============================================================================

SWEEP_MAX_PARALLEL = 4                # Students assessed concurrently
SWEEP_INTERVAL = 86400.0              # Seconds between daemon sweeps
TRACKING_ENABLED_IN_SWEEP = True      # Track open interventions before re-assessing

# =============================================================================
# Adaptive scaling
# =============================================================================

DEFAULT_INTERVENTION_LEVEL = 3        # Level for students never scaled (1-5)
RECENT_EFFECTIVENESS_WINDOW = 3       # Interventions averaged for recent effectiveness

# =============================================================================
# Paths
# =============================================================================

DATA_DIR = "data"
DB_FILENAME = "lodestar.db"
CATALOG_PATH = ""                     # Empty uses the bundled catalog.yaml
