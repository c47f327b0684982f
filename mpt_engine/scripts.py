"""
Script Selector — выбор терапевтического скрипта для сессии.

Приоритет:
1. Известный сценарий (выбран в UI или найден по ключевым словам)
2. Скрипт категории запроса
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from mpt_engine.extractors import normalize_text
from mpt_engine.models import RequestCategory
from mpt_engine.yaml_config.constants import (
    CATEGORY_SCRIPTS,
    SCENARIOS,
    SCENARIOS_BY_ID,
    get_category_script,
)


@dataclass(frozen=True)
class ScriptSelection:
    script_id: str
    description: str
    rationale: str
    source: str  # "scenario" | "category"

    def to_dict(self) -> Dict[str, str]:
        return {
            "script_id": self.script_id,
            "description": self.description,
            "rationale": self.rationale,
            "source": self.source,
        }


def get_scenario(scenario_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not scenario_id:
        return None
    return SCENARIOS_BY_ID.get(scenario_id)


def detect_scenario(utterance: Any) -> Optional[str]:
    """Первый сценарий, ключевое слово которого есть в реплике."""
    if not isinstance(utterance, str) or not utterance:
        return None
    lowered = normalize_text(utterance).lower()
    for scenario in SCENARIOS:
        if any(kw.lower() in lowered for kw in scenario.get("keywords", [])):
            return scenario["id"]
    return None


def select_script(
    category: RequestCategory,
    scenario_id: Optional[str] = None,
) -> ScriptSelection:
    """
    Выбрать скрипт.

    Args:
        category: Закреплённая категория запроса
        scenario_id: Сценарий сессии; неизвестный id игнорируется
    """
    category = RequestCategory(category)
    category_script = get_category_script(category.value)

    scenario = get_scenario(scenario_id)
    if scenario and scenario.get("script_id"):
        script_id = scenario["script_id"]
        return ScriptSelection(
            script_id=script_id,
            description=describe_script(script_id, category) or category_script["description"],
            rationale=f"сценарий '{scenario['name']}' ({scenario['id']}) -> {script_id}",
            source="scenario",
        )

    return ScriptSelection(
        script_id=category_script["script_id"],
        description=category_script["description"],
        rationale=f"категория запроса {category.value} -> {category_script['script_id']}",
        source="category",
    )


def describe_script(
    script_id: str,
    category: Optional[RequestCategory] = None,
) -> Optional[str]:
    """
    Описание скрипта.

    Скрипт своей категории описывается её текстом, иначе берётся
    первая категория, которая использует этот скрипт.
    """
    if category is not None:
        entry = get_category_script(RequestCategory(category).value)
        if entry["script_id"] == script_id:
            return entry["description"]
    for entry in CATEGORY_SCRIPTS.values():
        if entry["script_id"] == script_id:
            return entry["description"]
    return None
