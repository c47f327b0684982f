"""
Centralized Constants Module.

Single source of truth for the pattern tables of the engine: request
categories, scenarios, evasion phrases, name/rating patterns, authorship
rules, stage fact rules, helping questions, bot modes and implementation
practices. Everything is loaded from constants.yaml; the YAML order of
every list is preserved.

Usage:
    from mpt_engine.yaml_config.constants import (
        REQUEST_CATEGORIES, FALLBACK_CATEGORY, SCENARIOS,
        EVASION_PHRASES, NAME_PATTERNS, RATING_PATTERNS,
        AUTHORSHIP_RULES, STAGE_FACT_RULES, IMPLEMENTATION_PRACTICES,
    )
"""

from typing import Dict, List, Any
from pathlib import Path
import yaml
import logging

logger = logging.getLogger(__name__)


def _load_yaml(file_path: Path) -> Dict[str, Any]:
    """Load YAML file safely."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Failed to load {file_path}: {e}")
        return {}


# Load YAML files
_config_dir = Path(__file__).parent
_constants = _load_yaml(_config_dir / "constants.yaml")

STAGES_FILE: Path = _config_dir / "stages.yaml"


# =============================================================================
# REQUEST CATEGORIES
# =============================================================================

# Ordered list: [{key, keywords, script_id, description, follow_up_topics}]
REQUEST_CATEGORIES: List[Dict[str, Any]] = _constants.get("request_categories", [])

FALLBACK_CATEGORY: Dict[str, Any] = _constants.get("fallback_category", {
    "key": "general",
    "script_id": "strategy-research",
    "description": "",
    "follow_up_topics": [],
})

# key -> lower-cased keywords, table order preserved
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    entry["key"]: [kw.lower() for kw in entry.get("keywords", [])]
    for entry in REQUEST_CATEGORIES
}

# key -> {script_id, description}; includes the fallback category
CATEGORY_SCRIPTS: Dict[str, Dict[str, str]] = {
    entry["key"]: {
        "script_id": entry.get("script_id", ""),
        "description": entry.get("description", ""),
    }
    for entry in REQUEST_CATEGORIES + [FALLBACK_CATEGORY]
}

FOLLOW_UP_TOPICS: Dict[str, List[str]] = {
    entry["key"]: list(entry.get("follow_up_topics", []))
    for entry in REQUEST_CATEGORIES + [FALLBACK_CATEGORY]
}


# =============================================================================
# SCENARIOS
# =============================================================================

# Ordered list: [{id, name, description, keywords, script_id}]
SCENARIOS: List[Dict[str, Any]] = _constants.get("scenarios", [])

SCENARIOS_BY_ID: Dict[str, Dict[str, Any]] = {s["id"]: s for s in SCENARIOS}


# =============================================================================
# EXTRACTOR TABLES
# =============================================================================

EVASION_PHRASES: List[str] = [p.lower() for p in _constants.get("evasion_phrases", [])]

NAME_PATTERNS: List[str] = _constants.get("name_patterns", [])
NAME_STOP_WORDS: frozenset = frozenset(w.lower() for w in _constants.get("name_stop_words", []))
NAME_MIN_LENGTH: int = _constants.get("name_min_length", 2)
NAME_MAX_LENGTH: int = _constants.get("name_max_length", 20)

RATING_PATTERNS: List[str] = _constants.get("rating_patterns", [])
RATING_MIN: int = 1
RATING_MAX: int = 10

# Ordered list: [{lang, pattern, reframe}]
AUTHORSHIP_RULES: List[Dict[str, str]] = _constants.get("authorship_rules", [])
AUTHORSHIP_TEMPLATES: Dict[str, str] = _constants.get("authorship_templates", {})

# stage key -> ordered [{field, pattern}]
STAGE_FACT_RULES: Dict[str, List[Dict[str, str]]] = _constants.get("stage_facts", {})
FACT_MAX_LENGTH: int = _constants.get("fact_max_length", 200)

# Ordered list: [{kind, markers, hint}]
HELPING_QUESTIONS: List[Dict[str, Any]] = _constants.get("helping_questions", [])
DEFAULT_HELPING_QUESTION: str = _constants.get("default_helping_question", "")


# =============================================================================
# BOT MODES
# =============================================================================

# Ordered list: [{mode, scope, keywords, title, prompt}]
BOT_MODES: List[Dict[str, Any]] = _constants.get("bot_modes", [])

BOT_MODES_BY_KEY: Dict[str, Dict[str, Any]] = {m["mode"]: m for m in BOT_MODES}

MODE_EXIT_PHRASES: List[str] = [p.lower() for p in _constants.get("mode_exit_phrases", [])]

# Сколько предыдущих реплик клиента смотрит детектор режима (scope: context)
MODE_CONTEXT_WINDOW: int = 4


# =============================================================================
# HOMEWORK
# =============================================================================

IMPLEMENTATION_PRACTICES: List[Dict[str, str]] = _constants.get("implementation_practices", [])

PRACTICES_BY_ID: Dict[str, Dict[str, str]] = {p["id"]: p for p in IMPLEMENTATION_PRACTICES}

HOMEWORK_PRIORITY: List[Dict[str, str]] = _constants.get("homework_priority", [])
DEFAULT_HOMEWORK: str = _constants.get("default_homework", "breath-anchor")


def get_category_script(category: str) -> Dict[str, str]:
    """Script entry for a category key, falling back to the general one."""
    return CATEGORY_SCRIPTS.get(category, CATEGORY_SCRIPTS[FALLBACK_CATEGORY["key"]])


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
    "NAME_MIN_LENGTH",
    "NAME_MAX_LENGTH",
    "RATING_PATTERNS",
    "RATING_MIN",
    "RATING_MAX",
    "AUTHORSHIP_RULES",
    "AUTHORSHIP_TEMPLATES",
    "STAGE_FACT_RULES",
    "FACT_MAX_LENGTH",
    "HELPING_QUESTIONS",
    "DEFAULT_HELPING_QUESTION",
    "BOT_MODES",
    "BOT_MODES_BY_KEY",
    "MODE_EXIT_PHRASES",
    "MODE_CONTEXT_WINDOW",
    "IMPLEMENTATION_PRACTICES",
    "PRACTICES_BY_ID",
    "HOMEWORK_PRIORITY",
    "DEFAULT_HOMEWORK",
    "get_category_script",
]
