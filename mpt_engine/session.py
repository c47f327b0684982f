"""
Session State Machine — единая точка входа хода клиента.

advance_turn() никогда не меняет переданное состояние: ход выполняется
на глубокой копии, и копия возвращается только целиком. Если что-то
падает посреди хода, у вызывающего остаётся прежнее состояние.

Порядок хода:
1. Проверка реплики (пустая / слишком длинная -> InvalidUtteranceError)
2. Учёт реплики: last_client_response, utterance_log, счётчики
3. Детектор "не знаю"
4. Первый ход: категория, сценарий, скрипт, исходный запрос
5. Имя (по всей истории) и оценка 1-10 (последняя побеждает)
6. Факты текущего этапа (write-once)
7. Язык авторства (только в TurnResult, не в контексте)
8. Переход этапа
9. Режим бота (практика / супервизия / обучение; выход из режима)
10. Директива для генератора

Использование:
    from mpt_engine.session import create_session, advance_turn

    state = create_session()
    result = advance_turn(state, "I keep putting off writing my thesis")
    result.state.request_category   # RequestCategory.PROCRASTINATION
    result.directive.render()       # системный промпт
"""

import copy
from dataclasses import dataclass
from typing import Any, Optional

from mpt_engine.classifier import match_category
from mpt_engine.directives import Directive, compose_directive, select_homework
from mpt_engine.extractors import (
    capture_stage_facts,
    detect_authorship_projection,
    detect_bot_mode,
    detect_evasion,
    detect_mode_exit,
    extract_client_name,
    extract_importance_rating,
)
from mpt_engine.feature_flags import flags
from mpt_engine.logger import logger
from mpt_engine.models import BotMode, SessionState, Stage
from mpt_engine.scripts import detect_scenario, get_scenario, select_script
from mpt_engine.settings import settings
from mpt_engine.stages import get_stage_definition
from mpt_engine.transitions import apply_transition, evaluate_transition


class InvalidUtteranceError(ValueError):
    """Raised when an utterance is empty or exceeds the size bound."""

    def __init__(self, reason: str, length: int = 0):
        self.reason = reason
        self.length = length
        super().__init__(f"Invalid utterance: {reason}")


@dataclass
class TurnResult:
    """
    Результат хода.

    Attributes:
        state: Новое состояние (копия, исходное не изменено)
        directive: Директива для генератора
        authorship_reframe: Подсказка языка авторства за этот ход
        previous_stage: Этап до хода
        transitioned: Был ли переход на этом ходе
        transition_reason: Причина перехода (target_fact, ceiling, ...)
    """
    state: SessionState
    directive: Directive
    authorship_reframe: Optional[str] = None
    previous_stage: Optional[Stage] = None
    transitioned: bool = False
    transition_reason: Optional[str] = None


def create_session() -> SessionState:
    """Новая сессия на этапе start_session с пустым контекстом."""
    return SessionState()


def _validate_utterance(utterance: Any) -> str:
    if not isinstance(utterance, str):
        raise InvalidUtteranceError("utterance must be a string")
    text = utterance.strip()
    if not text:
        raise InvalidUtteranceError("utterance is empty")
    limit = settings.get_nested("session.max_utterance_chars", 10000)
    if len(text) > limit:
        raise InvalidUtteranceError(
            f"utterance exceeds {limit} characters", length=len(text)
        )
    return text


def _pin_first_turn(state: SessionState, text: str, scenario_id: Optional[str]) -> None:
    """Категория, сценарий и скрипт фиксируются один раз за сессию."""
    category, keyword = match_category(text)
    state.request_category = category

    if scenario_id and get_scenario(scenario_id) is None:
        logger.warning("Unknown scenario id ignored", scenario_id=scenario_id)
        scenario_id = None
    if scenario_id is None and flags.scenario_detection:
        scenario_id = detect_scenario(text)
    state.scenario_id = scenario_id

    selection = select_script(category, scenario_id)
    state.script_id = selection.script_id
    state.script_description = selection.description
    state.script_rationale = selection.rationale

    state.context.set_field("original_request", text)

    logger.event(
        "category_pinned",
        category=category.value,
        keyword=keyword,
        scenario_id=scenario_id,
        script_id=selection.script_id,
        script_source=selection.source,
    )


def _apply_rating(state: SessionState, text: str) -> None:
    rating = extract_importance_rating(text)
    if rating is None:
        return
    target = get_stage_definition(state.stage).rating_target
    if target == "importance":
        state.importance_rating = rating
    elif target == "energy":
        state.context.set_field("metaphor.energy_level", rating)


def _update_bot_mode(state: SessionState, text: str) -> None:
    """Режим сохраняется, пока пользователь не попросит выйти."""
    previous = state.utterance_log[state.mode_reset_turn:-1]
    mode = detect_bot_mode(text, previous) or state.bot_mode
    if detect_mode_exit(text):
        mode = BotMode.THERAPIST
        state.mode_reset_turn = state.total_turns

    if mode is not state.bot_mode:
        logger.event("mode_changed", from_mode=state.bot_mode.value, to_mode=mode.value)
        state.bot_mode = mode


def _capture_facts(state: SessionState, text: str) -> None:
    refinable = state.stage is Stage.BODYWORK
    for path, value in capture_stage_facts(state.stage, text).items():
        state.context.set_field(path, value, refinable=refinable and path.startswith("body."))

    integration = state.context.integration
    if (
        state.stage is Stage.INTEGRATION
        and integration.movement_done
        and (integration.integrated_state or integration.new_feeling)
    ):
        state.integration_complete = True


def advance_turn(
    state: SessionState,
    utterance: str,
    scenario_id: Optional[str] = None,
    asked_question: Optional[str] = None,
) -> TurnResult:
    """
    Обработать реплику клиента.

    Args:
        state: Текущее закреплённое состояние (не изменяется)
        utterance: Реплика клиента
        scenario_id: Сценарий из UI; учитывается только на первом ходе
        asked_question: Вопрос, на который отвечает клиент (последняя
            реплика терапевта); по нему подбирается вопрос "если бы"

    Raises:
        InvalidUtteranceError: пустая или слишком длинная реплика
    """
    try:
        text = _validate_utterance(utterance)
    except InvalidUtteranceError as e:
        logger.event("turn_rejected", reason=e.reason, length=e.length, stage=state.stage.value)
        raise

    new_state = copy.deepcopy(state)
    previous_stage = new_state.stage

    new_state.last_client_response = text
    new_state.utterance_log.append(text)
    new_state.response_count += 1
    new_state.total_turns += 1
    new_state.session_started = True
    new_state.client_says_dont_know = detect_evasion(text)

    if new_state.request_category is None:
        _pin_first_turn(new_state, text, scenario_id)

    name = extract_client_name(new_state.utterance_log)
    if name:
        new_state.context.set_field("client_name", name)
    _apply_rating(new_state, text)

    if flags.stage_fact_capture and not new_state.session_complete:
        _capture_facts(new_state, text)

    reframe = detect_authorship_projection(text) if flags.authorship_reframing else None

    decision = evaluate_transition(new_state)
    if decision.advance:
        left = new_state.stage
        turns_at_stage = new_state.response_count
        apply_transition(new_state)
        if new_state.session_complete:
            logger.event("session_complete", total_turns=new_state.total_turns)
        else:
            logger.event(
                "stage_transition",
                from_stage=left.value,
                to_stage=new_state.stage.value,
                reason=decision.reason,
            )
            logger.metric("stage_turns", turns_at_stage, stage=left.value)

    if new_state.stage is Stage.FINISH and new_state.context.homework is None:
        new_state.context.homework = select_homework(new_state.context)["id"]

    if flags.bot_modes:
        _update_bot_mode(new_state, text)

    directive = compose_directive(
        new_state,
        authorship_reframe=reframe,
        asked_question=asked_question,
    )

    # Директива integration уже предложила микродвижение
    if new_state.stage is Stage.INTEGRATION and directive.movement:
        new_state.movement_offered = True

    if settings.get_nested("logging.log_directives", False):
        logger.debug("Directive composed", stage=new_state.stage.value, text=directive.render())

    return TurnResult(
        state=new_state,
        directive=directive,
        authorship_reframe=reframe,
        previous_stage=previous_stage,
        transitioned=decision.advance,
        transition_reason=decision.reason if decision.advance else None,
    )
