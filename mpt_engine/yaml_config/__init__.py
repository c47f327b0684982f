"""
Configuration Module.

Provides centralized access to the YAML-based domain tables.

Usage:
    from mpt_engine.yaml_config import REQUEST_CATEGORIES, AUTHORSHIP_RULES
"""

# Re-export constants for easy access
from mpt_engine.yaml_config.constants import (
    STAGES_FILE,
    # Categories
    REQUEST_CATEGORIES,
    FALLBACK_CATEGORY,
    CATEGORY_KEYWORDS,
    CATEGORY_SCRIPTS,
    FOLLOW_UP_TOPICS,
    # Scenarios
    SCENARIOS,
    SCENARIOS_BY_ID,
    # Extractors
    EVASION_PHRASES,
    NAME_PATTERNS,
    NAME_STOP_WORDS,
    RATING_PATTERNS,
    AUTHORSHIP_RULES,
    AUTHORSHIP_TEMPLATES,
    STAGE_FACT_RULES,
    HELPING_QUESTIONS,
    # Bot modes
    BOT_MODES,
    MODE_EXIT_PHRASES,
    # Homework
    IMPLEMENTATION_PRACTICES,
    PRACTICES_BY_ID,
    HOMEWORK_PRIORITY,
    DEFAULT_HOMEWORK,
    get_category_script,
)

__all__ = [
    "STAGES_FILE",
    "REQUEST_CATEGORIES",
    "FALLBACK_CATEGORY",
    "CATEGORY_KEYWORDS",
    "CATEGORY_SCRIPTS",
    "FOLLOW_UP_TOPICS",
    "SCENARIOS",
    "SCENARIOS_BY_ID",
    "EVASION_PHRASES",
    "NAME_PATTERNS",
    "NAME_STOP_WORDS",
    "RATING_PATTERNS",
    "AUTHORSHIP_RULES",
    "AUTHORSHIP_TEMPLATES",
    "STAGE_FACT_RULES",
    "HELPING_QUESTIONS",
    "BOT_MODES",
    "MODE_EXIT_PHRASES",
    "IMPLEMENTATION_PRACTICES",
    "PRACTICES_BY_ID",
    "HOMEWORK_PRIORITY",
    "DEFAULT_HOMEWORK",
    "get_category_script",
]
