"""
Directive Composer — директива этапа для внешнего генератора.

Директива — это набор именованных секций, а не готовый текст:
- stage: цель и поведенческие ограничения текущего этапа
- client_name: напоминание использовать имя
- importance: оценка 1-10 и пометка "искать глубже" ниже порога
- evasion_hint: техника "если бы", когда клиент говорит "не знаю"
  (по типу заданного вопроса, иначе по этапу)
- authorship_reframe: переформулировка на язык авторства (только этот ход)
- script / scenario: рекомендованный скрипт и сценарий сессии
- movement: микродвижение на этапе integration
- homework / follow_up_topics: практика внедрения и темы на finish
- progress: этап, история и ВСЕ известные факты контекста
- mode: режим практики, супервизии или обучения вместо директивы этапа

Directive.render() превращает секции в системный промпт.

Использование:
    from mpt_engine.directives import compose_directive

    directive = compose_directive(state, authorship_reframe=reframe)
    system_prompt = directive.render()
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mpt_engine.feature_flags import flags
from mpt_engine.models import BotMode, SessionState, Stage, TherapyContext
from mpt_engine.scripts import describe_script, get_scenario
from mpt_engine.settings import settings
from mpt_engine.stages import get_stage_definition
from mpt_engine.yaml_config.constants import (
    BOT_MODES_BY_KEY,
    DEFAULT_HELPING_QUESTION,
    DEFAULT_HOMEWORK,
    FOLLOW_UP_TOPICS,
    HELPING_QUESTIONS,
    HOMEWORK_PRIORITY,
    PRACTICES_BY_ID,
    get_category_script,
)


def select_homework(context: TherapyContext) -> Dict[str, str]:
    """
    Практика внедрения по приоритету заполненных фактов:
    образ -> телесное ощущение -> действие/первый шаг -> дыхательный якорь.
    """
    available = {
        "image": bool(context.metaphor.image),
        "body": bool(context.body.location),
        "action": bool(context.new_actions or context.first_step),
    }
    for entry in HOMEWORK_PRIORITY:
        if available.get(entry["requires"]):
            return dict(PRACTICES_BY_ID[entry["practice"]])
    return dict(PRACTICES_BY_ID[DEFAULT_HOMEWORK])


def helping_question(stage: Stage, question: Optional[str] = None) -> str:
    """
    Вопрос "если бы" для клиента, который ответил "не знаю".

    Тип заданного вопроса (чувства, понимание, образ, тело) важнее этапа:
    первый совпавший маркер из helping_questions выбирает подсказку.
    Без вопроса или без маркеров — подсказка этапа.
    """
    lowered = (question or "").lower()
    if lowered:
        for entry in HELPING_QUESTIONS:
            if any(marker in lowered for marker in entry.get("markers", [])):
                return entry["hint"]
    return get_stage_definition(stage).evasion_hint or DEFAULT_HELPING_QUESTION


@dataclass
class Directive:
    """
    Директива генератору на один ход.

    Attributes:
        stage / stage_title / goal / instructions: Текущий этап
        client_name: Имя клиента (если известно)
        importance_rating / seek_deeper: Оценка важности и пометка ниже порога
        evasion_hint: Вопрос "если бы" (пусто, если клиент не уклонялся)
        authorship_reframe: Переформулировка на язык авторства
        request_category / script_id / script_description: Скрипт сессии
        scenario: {id, name, description, keywords} или None
        movement: Указание про микродвижение (integration)
        homework: {id, name, description} на этапе finish
        follow_up_topics: Темы следующей сессии на этапе finish
        progress: Этап, счётчик, история и известные факты
        mode / mode_title / mode_prompt: Режим бота; вне режима терапевта
            render() выдаёт инструкции режима вместо директивы этапа
    """

    stage: Stage
    stage_title: str
    goal: str
    instructions: List[str] = field(default_factory=list)

    client_name: Optional[str] = None
    importance_rating: Optional[int] = None
    seek_deeper: bool = False
    evasion_hint: str = ""
    authorship_reframe: Optional[str] = None

    request_category: Optional[str] = None
    script_id: Optional[str] = None
    script_description: str = ""
    scenario: Optional[Dict[str, Any]] = None

    movement: str = ""
    homework: Optional[Dict[str, str]] = None
    follow_up_topics: List[str] = field(default_factory=list)

    progress: Dict[str, Any] = field(default_factory=dict)

    mode: BotMode = BotMode.THERAPIST
    mode_title: str = ""
    mode_prompt: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализовать в словарь."""
        return {
            "stage": {
                "key": self.stage.value,
                "title": self.stage_title,
                "goal": self.goal,
                "instructions": list(self.instructions),
            },
            "client_name": self.client_name,
            "importance": {
                "rating": self.importance_rating,
                "seek_deeper": self.seek_deeper,
            },
            "evasion_hint": self.evasion_hint,
            "authorship_reframe": self.authorship_reframe,
            "script": {
                "category": self.request_category,
                "script_id": self.script_id,
                "description": self.script_description,
            },
            "scenario": self.scenario,
            "movement": self.movement,
            "homework": self.homework,
            "follow_up_topics": list(self.follow_up_topics),
            "progress": self.progress,
            "mode": {
                "key": self.mode.value,
                "title": self.mode_title,
                "prompt": list(self.mode_prompt),
            },
        }

    def render(self) -> str:
        """Текст системного промпта для генератора."""
        if self.mode is not BotMode.THERAPIST:
            return self._render_mode()

        parts = [
            f"## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ: {self.stage_title}\n"
            f"Цель этапа: {self.goal}",
        ]

        if self.instructions:
            lines = "\n".join(f"- {line}" for line in self.instructions)
            parts.append(f"## СТРОГИЕ ИНСТРУКЦИИ ДЛЯ ЭТОГО ЭТАПА:\n{lines}")

        if self.movement:
            parts.append(f"## МИКРОДВИЖЕНИЕ:\n{self.movement}")

        if self.authorship_reframe:
            parts.append(f"## ТРАНСФОРМАЦИЯ В АВТОРСТВО:\n{self.authorship_reframe}")

        client_lines = []
        if self.client_name:
            client_lines.append(
                f"Имя клиента: {self.client_name}. Используй имя в своих ответах."
            )
        if self.importance_rating is not None:
            line = f"Оценка важности запроса: {self.importance_rating}/10."
            if self.seek_deeper:
                line += (
                    " Оценка ниже порога — это сигнал, что можно поискать "
                    "более глубокий контекст или более значимую цель."
                )
            client_lines.append(line)
        if client_lines:
            parts.append("## КОНТЕКСТ КЛИЕНТА:\n" + "\n".join(client_lines))

        if self.evasion_hint:
            parts.append(
                '## КЛИЕНТ ГОВОРИТ "НЕ ЗНАЮ"!\n'
                f'Используй технику "если бы": "{self.evasion_hint}"'
            )

        if self.scenario:
            keywords = ", ".join(self.scenario.get("keywords", []))
            parts.append(
                f'## ТЕКУЩИЙ СЦЕНАРИЙ: "{self.scenario["name"]}"\n'
                f"{self.scenario['description']}\n"
                f"Типичные ключевые слова: {keywords}"
            )

        if self.request_category and self.script_id:
            parts.append(
                f"## ТИП ЗАПРОСА КЛИЕНТА: {self.request_category}\n"
                f"Рекомендуемый скрипт: {self.script_id}\n"
                f"Подход: {self.script_description}"
            )

        if self.homework:
            parts.append(
                "## ПРАКТИКА ВНЕДРЕНИЯ:\n"
                f'Предложи клиенту практику: "{self.homework["name"]}" — '
                f"{self.homework['description']}"
            )

        if self.follow_up_topics:
            topics = "\n".join(f"- {topic}" for topic in self.follow_up_topics)
            parts.append(f"## ТЕМЫ ДЛЯ СЛЕДУЮЩЕЙ СЕССИИ:\n{topics}")

        parts.append(self._render_progress())
        return "\n\n".join(parts)

    def _render_mode(self) -> str:
        lines = "\n".join(f"- {line}" for line in self.mode_prompt)
        parts = [f"## РЕЖИМ: {self.mode_title}\n{lines}"]
        if self.client_name:
            parts.append(f"## КОНТЕКСТ КЛИЕНТА:\nИмя пользователя: {self.client_name}.")
        parts.append(
            '## ВЫХОД ИЗ РЕЖИМА:\nЕсли пользователь скажет "выйти из режима", '
            "вернись к роли МПТ-терапевта."
        )
        return "\n\n".join(parts)

    def _render_progress(self) -> str:
        progress = self.progress
        history = " → ".join(progress.get("stage_history_titles", [])) or "начало сессии"
        lines = [
            "## ПРОГРЕСС СЕССИИ:",
            f"- Текущий этап: {self.stage_title} "
            f"({progress.get('response_count', 0)} ответов на этапе)",
            f"- Пройденные этапы: {history}",
        ]
        facts = progress.get("known_facts", {})
        if facts:
            lines.append("- Собранный контекст:")
            for label, value in progress.get("known_fact_labels", {}).items():
                lines.append(f'  - {label}: "{_format_value(value)}"')
        if progress.get("session_complete"):
            lines.append("- Сессия завершена")
        return "\n".join(lines)


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    if value is True:
        return "да"
    return str(value)


class DirectiveComposer:
    """
    Собирает Directive из SessionState.

    Usage:
        composer = DirectiveComposer()
        directive = composer.compose(state, authorship_reframe=reframe)
    """

    # Defaults (используются если конфиг недоступен)
    _DEFAULT_FACT_LABELS = {
        "client_name": "Имя клиента",
        "original_request": "Изначальный запрос",
        "clarified_request": "Уточнённый запрос",
        "current_strategy": "Текущая стратегия",
        "strategy_intention": "Позитивное намерение стратегии",
        "deep_need": "Глубинная потребность",
        "body.location": "Телесное ощущение",
        "body.size": "Размер ощущения",
        "body.shape": "Форма ощущения",
        "body.density": "Плотность ощущения",
        "body.temperature": "Температура ощущения",
        "body.movement": "Движение ощущения",
        "body.impulse": "Импульс тела",
        "metaphor.image": "Образ/метафора",
        "metaphor.qualities": "Качества образа",
        "metaphor.energy_level": "Энергия образа (1-10)",
        "meta_position.view_of_self": "Взгляд образа на клиента",
        "meta_position.view_of_life": "Взгляд образа на жизнь",
        "meta_position.view_of_strategy": "Взгляд образа на стратегию",
        "meta_position.insight": "Инсайт",
        "meta_position.message": "Послание образа",
        "integration.new_feeling": "Новое ощущение",
        "integration.movement_done": "Микродвижение сделано",
        "integration.integrated_state": "Интегрированное состояние",
        "new_actions": "Новые действия",
        "first_step": "Первый шаг",
        "homework": "Практика внедрения",
    }
    _DEFAULT_MOVEMENT = {
        "offer": (
            "Предложи МИКРО-ДВИЖЕНИЕ (даже в текстовом формате): "
            '"Позволь телу немного подвигаться", '
            '"Сделай глубокий вдох, впуская эту энергию".'
        ),
        "follow_up": (
            "Микродвижение уже предложено. Спроси, что изменилось в теле "
            "и в ощущении себя после движения."
        ),
    }

    def __init__(self, config: Dict[str, Any] = None):
        """
        Args:
            config: Опциональный конфиг (fact_labels, movement, importance_threshold)
        """
        self._config = config or {}

    @property
    def fact_labels(self) -> Dict[str, str]:
        return self._config.get("fact_labels", self._DEFAULT_FACT_LABELS)

    @property
    def movement_texts(self) -> Dict[str, str]:
        return self._config.get("movement", self._DEFAULT_MOVEMENT)

    @property
    def importance_threshold(self) -> int:
        return self._config.get(
            "importance_threshold",
            settings.get_nested("session.importance_threshold", 8),
        )

    def compose(
        self,
        state: SessionState,
        authorship_reframe: Optional[str] = None,
        asked_question: Optional[str] = None,
    ) -> Directive:
        definition = get_stage_definition(state.stage)

        directive = Directive(
            stage=state.stage,
            stage_title=definition.title,
            goal=definition.goal,
            instructions=list(definition.instructions),
            client_name=state.context.client_name,
            authorship_reframe=authorship_reframe,
        )

        if state.importance_rating is not None:
            directive.importance_rating = state.importance_rating
            directive.seek_deeper = state.importance_rating < self.importance_threshold

        if state.client_says_dont_know:
            directive.evasion_hint = helping_question(state.stage, asked_question)

        if state.request_category is not None:
            script = get_category_script(state.request_category.value)
            directive.request_category = state.request_category.value
            directive.script_id = state.script_id or script["script_id"]
            # Описание всегда от того скрипта, который рекомендуется
            directive.script_description = (
                state.script_description
                or describe_script(directive.script_id, state.request_category)
                or script["description"]
            )

        scenario = get_scenario(state.scenario_id)
        if scenario:
            directive.scenario = {
                "id": scenario["id"],
                "name": scenario["name"],
                "description": scenario.get("description", ""),
                "keywords": list(scenario.get("keywords", [])),
            }

        in_session = state.bot_mode is BotMode.THERAPIST
        if in_session and state.stage is Stage.INTEGRATION and not state.integration_complete:
            key = "follow_up" if state.movement_offered else "offer"
            directive.movement = self.movement_texts[key]

        if state.stage is Stage.FINISH:
            directive.homework = self._homework(state)
            if flags.follow_up_topics:
                category = state.request_category.value if state.request_category else "general"
                directive.follow_up_topics = list(FOLLOW_UP_TOPICS.get(category, []))

        directive.progress = self.build_progress(state)
        if not in_session:
            mode = BOT_MODES_BY_KEY.get(state.bot_mode.value, {})
            directive.mode = state.bot_mode
            directive.mode_title = mode.get("title", state.bot_mode.value)
            directive.mode_prompt = list(mode.get("prompt", []))
        return directive

    def _homework(self, state: SessionState) -> Dict[str, str]:
        if state.context.homework in PRACTICES_BY_ID:
            return dict(PRACTICES_BY_ID[state.context.homework])
        return select_homework(state.context)

    def build_progress(self, state: SessionState) -> Dict[str, Any]:
        """Сводка для непрерывности: ни один известный факт не теряется."""
        known = state.context.known_facts()
        labels = self.fact_labels
        return {
            "stage": state.stage.value,
            "response_count": state.response_count,
            "stage_history": [s.value for s in state.stage_history],
            "stage_history_titles": [
                get_stage_definition(s).title for s in state.stage_history
            ],
            "known_facts": known,
            "known_fact_labels": {labels.get(path, path): value for path, value in known.items()},
            "session_complete": state.session_complete,
        }


_composer = DirectiveComposer()


def compose_directive(
    state: SessionState,
    authorship_reframe: Optional[str] = None,
    asked_question: Optional[str] = None,
) -> Directive:
    return _composer.compose(
        state,
        authorship_reframe=authorship_reframe,
        asked_question=asked_question,
    )
