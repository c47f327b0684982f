"""
Тесты реестра этапов (stages.py, yaml_config/stages.yaml).
"""

import dataclasses

import pytest
import yaml

from mpt_engine.models import STAGE_ORDER, Stage
from mpt_engine.stages import (
    StageRegistryError,
    get_stage_definition,
    load_stage_registry,
    next_stage,
    stage_catalog,
)
from mpt_engine.yaml_config.constants import STAGES_FILE


def _raw_stages():
    with open(STAGES_FILE, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _write(tmp_path, data):
    path = tmp_path / "stages.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


class TestStageCatalog:
    """Каталог этапов"""

    def test_eleven_stages_in_protocol_order(self):
        catalog = stage_catalog()
        assert [d.stage for d in catalog] == list(STAGE_ORDER)
        assert len(catalog) == 11
        assert catalog[0].stage is Stage.START_SESSION
        assert catalog[-1].stage is Stage.FINISH

    def test_thresholds_are_consistent(self):
        for definition in stage_catalog():
            assert definition.min_responses >= 1
            if definition.max_responses is not None:
                assert definition.max_responses >= definition.min_responses

    @pytest.mark.parametrize("stage,minimum,ceiling", [
        (Stage.START_SESSION, 1, None),
        (Stage.COLLECT_CONTEXT, 2, 3),
        (Stage.CLARIFY_REQUEST, 3, 4),
        (Stage.EXPLORE_STRATEGY, 3, 3),
        (Stage.FIND_NEED, 3, 4),
        (Stage.BODYWORK, 4, 4),
        (Stage.METAPHOR, 3, 3),
        (Stage.META_POSITION, 3, 3),
        (Stage.INTEGRATION, 3, 3),
        (Stage.PLAN_ACTIONS, 2, 3),
        (Stage.FINISH, 2, None),
    ])
    def test_thresholds_table(self, stage, minimum, ceiling):
        definition = get_stage_definition(stage)
        assert definition.min_responses == minimum
        assert definition.max_responses == ceiling

    def test_target_fact_stages_have_ceiling(self):
        """Все этапы с целевым фактом имеют потолок (liveness)"""
        for definition in stage_catalog():
            if definition.stage in (Stage.START_SESSION, Stage.FINISH):
                continue
            assert definition.max_responses is not None, definition.stage

    def test_every_stage_has_evasion_hint_and_instructions(self):
        for definition in stage_catalog():
            assert definition.evasion_hint
            assert definition.instructions
            assert definition.title
            assert definition.goal

    def test_rating_targets(self):
        assert get_stage_definition(Stage.COLLECT_CONTEXT).rating_target == "importance"
        assert get_stage_definition(Stage.METAPHOR).rating_target == "energy"
        for definition in stage_catalog():
            if definition.stage is not Stage.METAPHOR:
                assert definition.rating_target == "importance", definition.stage

    def test_definition_is_immutable(self):
        definition = get_stage_definition(Stage.BODYWORK)
        with pytest.raises(dataclasses.FrozenInstanceError):
            definition.min_responses = 1

    def test_get_stage_definition_accepts_value(self):
        assert get_stage_definition("metaphor").stage is Stage.METAPHOR


class TestNextStage:

    def test_next_stage_follows_order(self):
        for current, following in zip(STAGE_ORDER, STAGE_ORDER[1:]):
            assert next_stage(current) is following

    def test_finish_has_no_next(self):
        assert next_stage(Stage.FINISH) is None


class TestRegistryValidation:
    """Ошибки в YAML ломают загрузку"""

    def test_loads_shipped_file(self):
        registry = load_stage_registry()
        assert set(registry) == set(Stage)

    def test_missing_stage(self, tmp_path):
        data = _raw_stages()
        data["stages"] = [s for s in data["stages"] if s["key"] != "metaphor"]
        with pytest.raises(StageRegistryError) as exc_info:
            load_stage_registry(_write(tmp_path, data))
        assert "metaphor" in str(exc_info.value)

    def test_wrong_order(self, tmp_path):
        data = _raw_stages()
        data["stages"][1], data["stages"][2] = data["stages"][2], data["stages"][1]
        with pytest.raises(StageRegistryError, match="order"):
            load_stage_registry(_write(tmp_path, data))

    def test_ceiling_below_minimum(self, tmp_path):
        data = _raw_stages()
        data["stages"][3]["max_responses"] = 1
        with pytest.raises(StageRegistryError) as exc_info:
            load_stage_registry(_write(tmp_path, data))
        assert exc_info.value.stage == data["stages"][3]["key"]

    def test_unknown_stage_key(self, tmp_path):
        data = _raw_stages()
        data["stages"][0]["key"] = "warmup"
        with pytest.raises(StageRegistryError):
            load_stage_registry(_write(tmp_path, data))

    def test_unknown_rating_target(self, tmp_path):
        data = _raw_stages()
        data["stages"][1]["rating_target"] = "mood"
        with pytest.raises(StageRegistryError, match="rating_target"):
            load_stage_registry(_write(tmp_path, data))

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(StageRegistryError):
            load_stage_registry(tmp_path / "missing.yaml")
