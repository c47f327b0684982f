"""
Тесты директивы генератору (directives.py).
"""

import pytest

from mpt_engine.directives import (
    Directive,
    DirectiveComposer,
    compose_directive,
    helping_question,
    select_homework,
)
from mpt_engine.models import BotMode, RequestCategory, Stage, TherapyContext
from mpt_engine.stages import get_stage_definition
from mpt_engine.yaml_config.constants import (
    BOT_MODES_BY_KEY,
    DEFAULT_HELPING_QUESTION,
    FOLLOW_UP_TOPICS,
    HELPING_QUESTIONS,
)

HINTS = {entry["kind"]: entry["hint"] for entry in HELPING_QUESTIONS}


class TestSelectHomework:
    """Приоритет практики: образ -> тело -> действие -> дыхание"""

    def test_default_breath_anchor(self):
        assert select_homework(TherapyContext())["id"] == "breath-anchor"

    def test_action(self):
        context = TherapyContext(first_step="call my sister")
        assert select_homework(context)["id"] == "new-action"

    def test_new_actions_count_as_action(self):
        context = TherapyContext(new_actions=["go for a walk"])
        assert select_homework(context)["id"] == "new-action"

    def test_body_beats_action(self):
        context = TherapyContext(first_step="call my sister")
        context.body.location = "in my chest"
        assert select_homework(context)["id"] == "body-check"

    def test_image_beats_everything(self):
        context = TherapyContext(first_step="call my sister")
        context.body.location = "in my chest"
        context.metaphor.image = "a lighthouse"
        assert select_homework(context)["id"] == "morning-connection"

    def test_returns_copy(self):
        practice = select_homework(TherapyContext())
        practice["name"] = "changed"
        assert select_homework(TherapyContext())["name"] != "changed"


class TestHelpingQuestion:
    """Вопрос "если бы" по типу заданного вопроса, иначе по этапу"""

    @pytest.mark.parametrize("question,kind", [
        ("Что ты чувствуешь сейчас?", "feeling"),
        ("Как ты это понимаешь?", "understanding"),
        ("Какой образ приходит?", "image"),
        ("Где это в теле?", "body"),
        ("ГДЕ ЭТО В ТЕЛЕ?", "body"),
    ])
    def test_kind_by_question(self, question, kind):
        assert helping_question(Stage.COLLECT_CONTEXT, question) == HINTS[kind]

    def test_first_kind_wins(self):
        # "чувству" и "тел" — чувства проверяются раньше тела
        question = "Что ты чувствуешь в теле?"
        assert helping_question(Stage.METAPHOR, question) == HINTS["feeling"]

    @pytest.mark.parametrize("question", [None, "", "Расскажи подробнее"])
    def test_stage_hint_without_markers(self, question):
        assert helping_question(Stage.FIND_NEED, question) == (
            get_stage_definition(Stage.FIND_NEED).evasion_hint
        )

    def test_default_when_stage_has_no_hint(self, monkeypatch):
        import dataclasses
        from mpt_engine import directives

        bare = dataclasses.replace(get_stage_definition(Stage.FINISH), evasion_hint="")
        monkeypatch.setattr(directives, "get_stage_definition", lambda stage: bare)
        assert helping_question(Stage.FINISH) == DEFAULT_HELPING_QUESTION

    def test_asked_question_reaches_directive(self, state_at):
        state = state_at(Stage.CLARIFY_REQUEST, client_says_dont_know=True)
        directive = compose_directive(state, asked_question="Где ты это замечаешь в теле?")
        assert directive.evasion_hint == HINTS["body"]

    def test_no_hint_without_evasion(self, state_at):
        state = state_at(Stage.CLARIFY_REQUEST)
        directive = compose_directive(state, asked_question="Что ты чувствуешь?")
        assert directive.evasion_hint == ""


class TestCompose:

    def test_stage_section(self, state_at):
        state = state_at(Stage.BODYWORK, response_count=2)
        directive = compose_directive(state)
        definition = get_stage_definition(Stage.BODYWORK)
        assert directive.stage is Stage.BODYWORK
        assert directive.stage_title == definition.title
        assert directive.goal == definition.goal
        assert directive.instructions == list(definition.instructions)

    def test_client_name(self, state_at):
        state = state_at(
            Stage.COLLECT_CONTEXT,
            context=TherapyContext(client_name="Anna", original_request="x"),
        )
        assert compose_directive(state).client_name == "Anna"

    @pytest.mark.parametrize("rating,seek_deeper", [(5, True), (7, True), (8, False), (10, False)])
    def test_importance_threshold(self, state_at, rating, seek_deeper):
        state = state_at(Stage.CLARIFY_REQUEST, importance_rating=rating)
        directive = compose_directive(state)
        assert directive.importance_rating == rating
        assert directive.seek_deeper is seek_deeper

    def test_custom_threshold(self, state_at):
        state = state_at(Stage.CLARIFY_REQUEST, importance_rating=8)
        directive = DirectiveComposer({"importance_threshold": 9}).compose(state)
        assert directive.seek_deeper is True

    def test_no_rating(self, state_at):
        directive = compose_directive(state_at(Stage.CLARIFY_REQUEST))
        assert directive.importance_rating is None
        assert directive.seek_deeper is False

    def test_evasion_hint_per_stage(self, state_at):
        for stage in (Stage.FIND_NEED, Stage.METAPHOR):
            state = state_at(stage, client_says_dont_know=True)
            assert compose_directive(state).evasion_hint == get_stage_definition(stage).evasion_hint

    def test_script_from_pinned_category(self, state_at):
        state = state_at(
            Stage.COLLECT_CONTEXT,
            request_category=RequestCategory.RELATIONSHIPS,
            script_id="shadow-desire",
        )
        directive = compose_directive(state)
        assert directive.request_category == "relationships"
        assert directive.script_id == "shadow-desire"
        assert directive.script_description.startswith("Теневое желание")

    def test_stored_script_description_wins(self, state_at):
        state = state_at(
            Stage.CLARIFY_REQUEST,
            request_category=RequestCategory.FEAR_ANXIETY,
            script_id="shadow-desire",
            script_description="Теневое желание — работа с проекциями на другого человека",
        )
        directive = compose_directive(state)
        assert directive.script_id == "shadow-desire"
        assert directive.script_description.startswith("Теневое желание")

    def test_description_follows_script_not_category(self, state_at):
        """Старое состояние без описания: описание берётся по script_id"""
        state = state_at(
            Stage.CLARIFY_REQUEST,
            request_category=RequestCategory.PROCRASTINATION,
            script_id="fear-research",
        )
        directive = compose_directive(state)
        assert directive.script_description.startswith("Исследование страха")

    def test_no_category_no_script(self, fresh_state):
        directive = compose_directive(fresh_state)
        assert directive.request_category is None
        assert directive.script_id is None

    def test_scenario_section(self, state_at):
        state = state_at(Stage.COLLECT_CONTEXT, scenario_id="loneliness")
        directive = compose_directive(state)
        assert directive.scenario["name"] == "Островок"
        assert "одиночество" in directive.scenario["keywords"]

    def test_movement_only_at_integration(self, state_at):
        assert compose_directive(state_at(Stage.META_POSITION)).movement == ""
        assert compose_directive(state_at(Stage.INTEGRATION)).movement
        done = state_at(Stage.INTEGRATION, integration_complete=True)
        assert compose_directive(done).movement == ""

    def test_finish_homework_and_topics(self, state_at):
        state = state_at(Stage.FINISH, request_category=RequestCategory.BURNOUT)
        state.context.homework = "evening-review"
        directive = compose_directive(state)
        assert directive.homework["id"] == "evening-review"
        assert directive.follow_up_topics == FOLLOW_UP_TOPICS["burnout"]

    def test_follow_up_topics_flag(self, state_at, feature_flags_override):
        state = state_at(Stage.FINISH)
        with feature_flags_override(follow_up_topics=False):
            directive = compose_directive(state)
        assert directive.follow_up_topics == []
        assert directive.homework is not None

    def test_no_homework_before_finish(self, state_at):
        assert compose_directive(state_at(Stage.PLAN_ACTIONS)).homework is None


class TestProgress:
    """Сводка прогресса не теряет ни одного факта"""

    def _rich_context(self):
        context = TherapyContext(
            client_name="Anna",
            original_request="I keep putting off writing my thesis",
            deep_need="safety",
            new_actions=["walk", "call my sister"],
        )
        context.body.location = "in my chest"
        context.integration.movement_done = True
        return context

    def test_all_known_facts_listed(self, state_at):
        state = state_at(Stage.METAPHOR, response_count=1, context=self._rich_context())
        progress = compose_directive(state).progress
        assert progress["known_facts"] == {
            "client_name": "Anna",
            "original_request": "I keep putting off writing my thesis",
            "deep_need": "safety",
            "body.location": "in my chest",
            "integration.movement_done": True,
            "new_actions": ["walk", "call my sister"],
        }
        assert progress["stage"] == "metaphor"
        assert progress["response_count"] == 1
        assert progress["stage_history"][-1] == "bodywork"
        assert progress["known_fact_labels"]["Глубинная потребность"] == "safety"

    def test_render_contains_facts(self, state_at):
        state = state_at(Stage.METAPHOR, context=self._rich_context())
        text = compose_directive(state).render()
        assert '- Глубинная потребность: "safety"' in text
        assert '- Новые действия: "walk; call my sister"' in text
        assert '- Микродвижение сделано: "да"' in text
        assert get_stage_definition(Stage.BODYWORK).title in text


class TestRender:

    def test_sections_in_order(self, state_at):
        state = state_at(
            Stage.BODYWORK,
            client_says_dont_know=True,
            importance_rating=6,
            context=TherapyContext(client_name="Anna", original_request="x"),
        )
        text = compose_directive(state, authorship_reframe="REFRAME").render()
        headers = [
            "## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ",
            "## СТРОГИЕ ИНСТРУКЦИИ ДЛЯ ЭТОГО ЭТАПА",
            "## ТРАНСФОРМАЦИЯ В АВТОРСТВО",
            "## КОНТЕКСТ КЛИЕНТА",
            '## КЛИЕНТ ГОВОРИТ "НЕ ЗНАЮ"!',
            "## ТИП ЗАПРОСА КЛИЕНТА",
            "## ПРОГРЕСС СЕССИИ",
        ]
        positions = [text.index(h) for h in headers]
        assert positions == sorted(positions)
        assert "6/10" in text
        assert "Имя клиента: Anna" in text

    def test_minimal_render(self, fresh_state):
        text = compose_directive(fresh_state).render()
        assert text.startswith("## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ")
        assert "начало сессии" in text
        assert "## КОНТЕКСТ КЛИЕНТА" not in text

    def test_finish_render(self, state_at):
        state = state_at(Stage.FINISH, session_complete=True)
        text = compose_directive(state).render()
        assert "## ПРАКТИКА ВНЕДРЕНИЯ" in text
        assert "## ТЕМЫ ДЛЯ СЛЕДУЮЩЕЙ СЕССИИ" in text
        assert "- Сессия завершена" in text

    def test_to_dict_shape(self, state_at):
        data = compose_directive(state_at(Stage.METAPHOR)).to_dict()
        assert data["stage"]["key"] == "metaphor"
        assert set(data) == {
            "stage", "client_name", "importance", "evasion_hint",
            "authorship_reframe", "script", "scenario", "movement",
            "homework", "follow_up_topics", "progress", "mode",
        }

    def test_directive_defaults(self):
        directive = Directive(stage=Stage.FINISH, stage_title="t", goal="g")
        assert directive.follow_up_topics == []
        assert "## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ: t" in directive.render()


class TestBotModeDirective:
    """Вне режима терапевта директива этапа заменяется инструкциями режима"""

    @pytest.mark.parametrize("mode", [
        BotMode.PRACTICE_CLIENT,
        BotMode.SUPERVISOR,
        BotMode.EDUCATOR,
    ])
    def test_mode_render(self, state_at, mode):
        state = state_at(Stage.BODYWORK, bot_mode=mode)
        directive = compose_directive(state)
        text = directive.render()

        entry = BOT_MODES_BY_KEY[mode.value]
        assert directive.mode is mode
        assert text.startswith(f"## РЕЖИМ: {entry['title']}")
        assert entry["prompt"][0] in text
        assert "## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ" not in text

    def test_stage_still_tracked(self, state_at):
        state = state_at(Stage.BODYWORK, response_count=2, bot_mode=BotMode.SUPERVISOR)
        data = compose_directive(state).to_dict()
        assert data["stage"]["key"] == "bodywork"
        assert data["progress"]["response_count"] == 2
        assert data["mode"]["key"] == "supervisor"

    def test_no_movement_outside_therapy(self, state_at):
        state = state_at(Stage.INTEGRATION, bot_mode=BotMode.EDUCATOR)
        assert compose_directive(state).movement == ""

    def test_therapist_mode_unchanged(self, state_at):
        directive = compose_directive(state_at(Stage.INTEGRATION))
        assert directive.mode is BotMode.THERAPIST
        assert directive.mode_prompt == []
        assert directive.to_dict()["mode"]["key"] == "therapist"
        assert directive.render().startswith("## ТЕКУЩИЙ ЭТАП МПТ-СЕССИИ")
