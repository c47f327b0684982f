"""
Stage Registry — статическая таблица 11 этапов МПТ-сессии.

Таблица читается из yaml_config/stages.yaml при импорте и проверяется:
все этапы на месте, порядок совпадает с Stage, пороги согласованы.
Ошибка в YAML ломает импорт (StageRegistryError), а не первую сессию.

Использование:
    from mpt_engine.stages import stage_catalog, get_stage_definition

    for definition in stage_catalog():
        print(definition.stage.value, definition.min_responses)
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from mpt_engine.models import Stage, StageDefinition, STAGE_ORDER
from mpt_engine.yaml_config.constants import STAGES_FILE

RATING_TARGETS = (None, "importance", "energy")


class StageRegistryError(Exception):
    """Raised when the stage table is incomplete or inconsistent."""

    def __init__(self, reason: str, stage: Optional[str] = None):
        self.reason = reason
        self.stage = stage
        message = f"Invalid stage registry: {reason}"
        if stage:
            message += f" (stage '{stage}')"
        super().__init__(message)


def _as_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _build_definition(raw: Dict[str, Any]) -> StageDefinition:
    key = raw.get("key")
    try:
        stage = Stage(key)
    except ValueError:
        raise StageRegistryError("unknown stage key", stage=str(key))

    min_responses = raw.get("min_responses")
    max_responses = raw.get("max_responses")
    if not isinstance(min_responses, int) or min_responses < 1:
        raise StageRegistryError("min_responses must be a positive integer", stage=key)
    if max_responses is not None:
        if not isinstance(max_responses, int) or max_responses < min_responses:
            raise StageRegistryError("max_responses must be >= min_responses", stage=key)

    rating_target = raw.get("rating_target")
    if rating_target not in RATING_TARGETS:
        raise StageRegistryError(f"unknown rating_target '{rating_target}'", stage=key)

    for required in ("title", "goal"):
        if not raw.get(required):
            raise StageRegistryError(f"missing '{required}'", stage=key)

    return StageDefinition(
        stage=stage,
        title=raw["title"],
        goal=raw["goal"],
        questions=_as_tuple(raw.get("questions")),
        min_responses=min_responses,
        max_responses=max_responses,
        target_fact=raw.get("target_fact"),
        rating_target=rating_target,
        criteria=_as_tuple(raw.get("criteria")),
        evasion_hint=raw.get("evasion_hint") or "",
        instructions=_as_tuple(raw.get("instructions")),
    )


def load_stage_registry(file_path: Path = STAGES_FILE) -> Dict[Stage, StageDefinition]:
    """
    Загрузить и проверить таблицу этапов.

    Raises:
        StageRegistryError: файл не читается, этапа не хватает,
            порядок не совпадает с протоколом или пороги некорректны
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise StageRegistryError(f"cannot read {file_path}: {e}")

    raw_stages: List[Dict[str, Any]] = data.get("stages") or []
    definitions = [_build_definition(raw) for raw in raw_stages]

    order = tuple(d.stage for d in definitions)
    if order != STAGE_ORDER:
        missing = [s.value for s in STAGE_ORDER if s not in order]
        if missing:
            raise StageRegistryError(f"missing stages: {', '.join(missing)}")
        raise StageRegistryError("stage order differs from the protocol order")

    return {d.stage: d for d in definitions}


_REGISTRY: Dict[Stage, StageDefinition] = load_stage_registry()


def stage_catalog() -> List[StageDefinition]:
    """Все определения этапов в порядке протокола."""
    return [_REGISTRY[stage] for stage in STAGE_ORDER]


def get_stage_definition(stage: Stage) -> StageDefinition:
    return _REGISTRY[Stage(stage)]


def next_stage(stage: Stage) -> Optional[Stage]:
    """Следующий этап или None для finish."""
    position = Stage(stage).position
    if position + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[position + 1]
    return None
