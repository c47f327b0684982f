"""
Transition Evaluator — решает, готов ли этап к переходу.

Два уровня:
1. Жёсткий: response_count >= min_responses, иначе перехода нет.
2. Предикат этапа из STAGE_PREDICATES: целевой факт собран ИЛИ
   достигнут потолок max_responses (сессия не застревает, даже если
   экстрактор не распознал факт).

Переход только вперёд и только на один этап. После finish сессия
завершена, повторный переход ничего не делает.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from mpt_engine.models import SessionState, Stage, StageDefinition
from mpt_engine.stages import get_stage_definition, next_stage

Predicate = Callable[[SessionState, StageDefinition], Optional[str]]


@dataclass(frozen=True)
class TransitionDecision:
    advance: bool
    reason: str

    def __bool__(self) -> bool:
        return self.advance


def fact_populated(state: SessionState, target_fact: Optional[str]) -> bool:
    """Заполнен ли факт: 'importance_rating', 'context.body.location', ..."""
    if not target_fact:
        return False
    if target_fact.startswith("context."):
        value = state.context.get_field(target_fact[len("context."):])
    else:
        value = getattr(state, target_fact)
    return value not in (None, False, "", [])


def _ceiling_reached(state: SessionState, definition: StageDefinition) -> bool:
    return (
        definition.max_responses is not None
        and state.response_count >= definition.max_responses
    )


def _request_recorded(state: SessionState, definition: StageDefinition) -> Optional[str]:
    if fact_populated(state, definition.target_fact):
        return "request_recorded"
    return None


def _fact_or_ceiling(state: SessionState, definition: StageDefinition) -> Optional[str]:
    if fact_populated(state, definition.target_fact):
        return "target_fact"
    if _ceiling_reached(state, definition):
        return "ceiling"
    return None


def _integration_done(state: SessionState, definition: StageDefinition) -> Optional[str]:
    if state.integration_complete:
        return "integration_complete"
    if _ceiling_reached(state, definition):
        return "ceiling"
    return None


def _minimum_reached(state: SessionState, definition: StageDefinition) -> Optional[str]:
    return "minimum_reached"


# Этап -> предикат. Предикат возвращает причину перехода или None.
STAGE_PREDICATES: Dict[Stage, Predicate] = {
    Stage.START_SESSION: _request_recorded,
    Stage.COLLECT_CONTEXT: _fact_or_ceiling,
    Stage.CLARIFY_REQUEST: _fact_or_ceiling,
    Stage.EXPLORE_STRATEGY: _fact_or_ceiling,
    Stage.FIND_NEED: _fact_or_ceiling,
    Stage.BODYWORK: _fact_or_ceiling,
    Stage.METAPHOR: _fact_or_ceiling,
    Stage.META_POSITION: _fact_or_ceiling,
    Stage.INTEGRATION: _integration_done,
    Stage.PLAN_ACTIONS: _fact_or_ceiling,
    Stage.FINISH: _minimum_reached,
}


def evaluate_transition(state: SessionState) -> TransitionDecision:
    if state.session_complete:
        return TransitionDecision(False, "session_complete")

    definition = get_stage_definition(state.stage)
    if state.response_count < definition.min_responses:
        return TransitionDecision(False, "below_minimum")

    reason = STAGE_PREDICATES[state.stage](state, definition)
    if reason is None:
        return TransitionDecision(False, "waiting_for_fact")
    return TransitionDecision(True, reason)


def should_advance(state: SessionState) -> bool:
    return evaluate_transition(state).advance


def apply_transition(state: SessionState) -> Optional[Stage]:
    """
    Перевести состояние на следующий этап (мутирует state).

    Returns:
        Новый этап; для finish — Stage.FINISH с session_complete=True;
        None если сессия уже завершена (no-op)
    """
    if state.session_complete:
        return None

    following = next_stage(state.stage)
    state.stage_history.append(state.stage)
    state.response_count = 0
    if following is None:
        state.session_complete = True
        return state.stage

    state.stage = following
    return following
