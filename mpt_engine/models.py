"""
Модели состояния МПТ-сессии.

Stage, RequestCategory и BotMode — фиксированные перечисления протокола.
TherapyContext — накопленные факты о клиенте (write-once).
SessionState — полное состояние сессии, сериализуемое через to_dict/from_dict.

Использование:
    from mpt_engine.models import SessionState, Stage

    state = SessionState()
    assert state.stage is Stage.START_SESSION
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Stage(str, Enum):
    """Этап протокола. Порядок объявления = порядок протокола."""
    START_SESSION = "start_session"
    COLLECT_CONTEXT = "collect_context"
    CLARIFY_REQUEST = "clarify_request"
    EXPLORE_STRATEGY = "explore_strategy"
    FIND_NEED = "find_need"
    BODYWORK = "bodywork"
    METAPHOR = "metaphor"
    META_POSITION = "meta_position"
    INTEGRATION = "integration"
    PLAN_ACTIONS = "plan_actions"
    FINISH = "finish"

    @property
    def position(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


class RequestCategory(str, Enum):
    """Категория запроса клиента. Определяется один раз на первом ходе."""
    FEAR_ANXIETY = "fear_anxiety"
    PROCRASTINATION = "procrastination"
    RELATIONSHIPS = "relationships"
    SELF_WORTH = "self_worth"
    BURNOUT = "burnout"
    LOST_DESIRES = "lost_desires"
    ROLE_CONFLICT = "role_conflict"
    RESISTANCE = "resistance"
    TRAUMA = "trauma"
    IDENTITY = "identity"
    PSYCHOSOMATIC = "psychosomatic"
    GENERAL = "general"


class BotMode(str, Enum):
    """Режим бота. THERAPIST — сессия по этапам, остальные меняют директиву."""
    THERAPIST = "therapist"
    PRACTICE_CLIENT = "practice_client"
    SUPERVISOR = "supervisor"
    EDUCATOR = "educator"


@dataclass
class BodySensation:
    """Телесное ощущение (bodywork). Подполя уточняются, пока идёт bodywork."""
    location: Optional[str] = None
    size: Optional[str] = None
    shape: Optional[str] = None
    density: Optional[str] = None
    temperature: Optional[str] = None
    movement: Optional[str] = None
    impulse: Optional[str] = None


@dataclass
class MetaphorData:
    image: Optional[str] = None
    qualities: Optional[str] = None
    energy_level: Optional[int] = None


@dataclass
class MetaPositionData:
    view_of_self: Optional[str] = None
    view_of_life: Optional[str] = None
    view_of_strategy: Optional[str] = None
    insight: Optional[str] = None
    message: Optional[str] = None


@dataclass
class IntegrationData:
    new_feeling: Optional[str] = None
    movement_done: bool = False
    integrated_state: Optional[str] = None


@dataclass
class TherapyContext:
    """
    Факты о клиенте, собранные за сессию.

    Write-once: заполненное поле не перезаписывается. Исключения:
    - подполя body.* пока сессия на этапе bodywork (уточнение ощущения);
    - new_actions — только дописывается.
    """
    client_name: Optional[str] = None
    original_request: Optional[str] = None
    clarified_request: Optional[str] = None
    current_strategy: Optional[str] = None
    strategy_intention: Optional[str] = None
    deep_need: Optional[str] = None
    body: BodySensation = field(default_factory=BodySensation)
    metaphor: MetaphorData = field(default_factory=MetaphorData)
    meta_position: MetaPositionData = field(default_factory=MetaPositionData)
    integration: IntegrationData = field(default_factory=IntegrationData)
    new_actions: List[str] = field(default_factory=list)
    first_step: Optional[str] = None
    homework: Optional[str] = None

    def get_field(self, path: str) -> Any:
        """Значение по пути через точку: 'body.location'"""
        target: Any = self
        for part in path.split("."):
            target = getattr(target, part)
        return target

    def set_field(self, path: str, value: Any, refinable: bool = False) -> bool:
        """
        Записать факт с учётом write-once.

        Returns:
            True если значение было записано
        """
        *parents, name = path.split(".")
        target: Any = self
        for part in parents:
            target = getattr(target, part)

        current = getattr(target, name)
        if isinstance(current, list):
            if value in current:
                return False
            current.append(value)
            return True
        if current not in (None, False) and not refinable:
            return False
        if current == value:
            return False
        setattr(target, name, value)
        return True

    def known_facts(self) -> Dict[str, Any]:
        """Плоский словарь всех заполненных полей ('body.location' -> ...)"""
        return {k: v for k, v in _flatten(self).items() if v not in (None, False, [])}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_name": self.client_name,
            "original_request": self.original_request,
            "clarified_request": self.clarified_request,
            "current_strategy": self.current_strategy,
            "strategy_intention": self.strategy_intention,
            "deep_need": self.deep_need,
            "body": _dataclass_dict(self.body),
            "metaphor": _dataclass_dict(self.metaphor),
            "meta_position": _dataclass_dict(self.meta_position),
            "integration": _dataclass_dict(self.integration),
            "new_actions": list(self.new_actions),
            "first_step": self.first_step,
            "homework": self.homework,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TherapyContext":
        data = dict(data or {})
        return cls(
            client_name=data.get("client_name"),
            original_request=data.get("original_request"),
            clarified_request=data.get("clarified_request"),
            current_strategy=data.get("current_strategy"),
            strategy_intention=data.get("strategy_intention"),
            deep_need=data.get("deep_need"),
            body=BodySensation(**(data.get("body") or {})),
            metaphor=MetaphorData(**(data.get("metaphor") or {})),
            meta_position=MetaPositionData(**(data.get("meta_position") or {})),
            integration=IntegrationData(**(data.get("integration") or {})),
            new_actions=list(data.get("new_actions") or []),
            first_step=data.get("first_step"),
            homework=data.get("homework"),
        )


@dataclass
class SessionState:
    """
    Состояние одной МПТ-сессии.

    Attributes:
        stage: Текущий этап протокола
        response_count: Ответов клиента на текущем этапе
        stage_history: Пройденные этапы (только дописывается)
        context: Накопленные факты
        request_category: Категория запроса (фиксируется на первом ходе)
        importance_rating: Важность темы 1-10 (последняя оценка побеждает)
        last_client_response: Последняя реплика клиента
        client_says_dont_know: Клиент уклонился от ответа на последнем ходе
        movement_offered: Генератору уже предложено микродвижение (integration)
        integration_complete: Интеграция завершена
        session_started / session_complete: Флаги жизненного цикла
        utterance_log: Все реплики клиента по порядку
        script_id / script_description / script_rationale: Выбранный скрипт,
            его подход и почему он выбран
        scenario_id: Сценарий сессии (если известен)
        total_turns: Всего ходов клиента за сессию
        bot_mode: Активный режим бота (сохраняется между ходами)
        mode_reset_turn: Ход, на котором режим сброшен; детектор режима
            не смотрит реплики до него
    """
    stage: Stage = Stage.START_SESSION
    response_count: int = 0
    stage_history: List[Stage] = field(default_factory=list)
    context: TherapyContext = field(default_factory=TherapyContext)
    request_category: Optional[RequestCategory] = None
    importance_rating: Optional[int] = None
    last_client_response: str = ""
    client_says_dont_know: bool = False
    movement_offered: bool = False
    integration_complete: bool = False
    session_started: bool = False
    session_complete: bool = False
    utterance_log: List[str] = field(default_factory=list)
    script_id: Optional[str] = None
    script_description: Optional[str] = None
    script_rationale: Optional[str] = None
    scenario_id: Optional[str] = None
    total_turns: int = 0
    bot_mode: BotMode = BotMode.THERAPIST
    mode_reset_turn: int = 0

    @property
    def is_first_turn(self) -> bool:
        return self.total_turns == 1

    def to_dict(self) -> Dict[str, Any]:
        """JSON-совместимый словарь (enum'ы по значению)."""
        return {
            "stage": self.stage.value,
            "response_count": self.response_count,
            "stage_history": [s.value for s in self.stage_history],
            "context": self.context.to_dict(),
            "request_category": self.request_category.value if self.request_category else None,
            "importance_rating": self.importance_rating,
            "last_client_response": self.last_client_response,
            "client_says_dont_know": self.client_says_dont_know,
            "movement_offered": self.movement_offered,
            "integration_complete": self.integration_complete,
            "session_started": self.session_started,
            "session_complete": self.session_complete,
            "utterance_log": list(self.utterance_log),
            "script_id": self.script_id,
            "script_description": self.script_description,
            "script_rationale": self.script_rationale,
            "scenario_id": self.scenario_id,
            "total_turns": self.total_turns,
            "bot_mode": self.bot_mode.value,
            "mode_reset_turn": self.mode_reset_turn,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        category = data.get("request_category")
        return cls(
            stage=Stage(data.get("stage", Stage.START_SESSION.value)),
            response_count=data.get("response_count", 0),
            stage_history=[Stage(s) for s in data.get("stage_history", [])],
            context=TherapyContext.from_dict(data.get("context", {})),
            request_category=RequestCategory(category) if category else None,
            importance_rating=data.get("importance_rating"),
            last_client_response=data.get("last_client_response", ""),
            client_says_dont_know=data.get("client_says_dont_know", False),
            movement_offered=data.get("movement_offered", False),
            integration_complete=data.get("integration_complete", False),
            session_started=data.get("session_started", False),
            session_complete=data.get("session_complete", False),
            utterance_log=list(data.get("utterance_log", [])),
            script_id=data.get("script_id"),
            script_description=data.get("script_description"),
            script_rationale=data.get("script_rationale"),
            scenario_id=data.get("scenario_id"),
            total_turns=data.get("total_turns", 0),
            bot_mode=BotMode(data.get("bot_mode", BotMode.THERAPIST.value)),
            mode_reset_turn=data.get("mode_reset_turn", 0),
        )


@dataclass(frozen=True)
class StageDefinition:
    """Неизменяемое описание этапа из stages.yaml."""
    stage: Stage
    title: str
    goal: str
    questions: Tuple[str, ...]
    min_responses: int
    max_responses: Optional[int]
    target_fact: Optional[str]
    rating_target: Optional[str]
    criteria: Tuple[str, ...]
    evasion_hint: str
    instructions: Tuple[str, ...]


def _dataclass_dict(obj: Any) -> Dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def _flatten(obj: Any, prefix: str = "") -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        key = f"{prefix}{f.name}"
        if hasattr(value, "__dataclass_fields__"):
            result.update(_flatten(value, f"{key}."))
        else:
            result[key] = value
    return result
