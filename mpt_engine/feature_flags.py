"""
Feature Flags для движка МПТ-сессий.

Позволяют выключить необязательные части хода без деплоя.

Использование:
    from mpt_engine.feature_flags import flags

    if flags.authorship_reframing:
        reframe = detect_authorship_projection(utterance)
"""

import os
from typing import Dict, Set

from mpt_engine.settings import settings


class FeatureFlags:
    """
    Система feature flags.

    Порядок приоритета:
    - DEFAULTS
    - settings.yaml (секция feature_flags)
    - environment FF_<NAME>
    - runtime overrides (тесты)
    """

    DEFAULTS: Dict[str, bool] = {
        "authorship_reframing": True,     # Подсказка "язык авторства" в директиве
        "scenario_detection": True,       # Поиск сценария по ключевым словам на первом ходе
        "stage_fact_capture": True,       # Извлечение фактов этапа (потребность, образ, шаг...)
        "follow_up_topics": True,         # Темы следующей сессии на этапе finish
        "bot_modes": True,                # Режимы практики, супервизии и обучения
    }

    def __init__(self):
        self._flags: Dict[str, bool] = {}
        self._overrides: Dict[str, bool] = {}
        self._load_flags()

    def _load_flags(self) -> None:
        self._flags = self.DEFAULTS.copy()

        settings_flags = settings.get_nested("feature_flags", {})
        if isinstance(settings_flags, dict):
            for key, value in settings_flags.items():
                if isinstance(value, bool):
                    self._flags[key] = value

        for key in self._flags:
            env_value = os.environ.get(f"FF_{key.upper()}")
            if env_value is not None:
                self._flags[key] = env_value.lower() in ("true", "1", "yes", "on")

    def reload(self) -> None:
        self._overrides.clear()
        self._load_flags()

    def is_enabled(self, flag: str) -> bool:
        """True если флаг включён (неизвестные флаги выключены)"""
        if flag in self._overrides:
            return self._overrides[flag]
        return self._flags.get(flag, False)

    def set_override(self, flag: str, value: bool) -> None:
        """Runtime override, используется в тестах"""
        self._overrides[flag] = value

    def clear_override(self, flag: str) -> None:
        self._overrides.pop(flag, None)

    def clear_all_overrides(self) -> None:
        self._overrides.clear()

    def get_all_flags(self) -> Dict[str, bool]:
        result = self._flags.copy()
        result.update(self._overrides)
        return result

    def get_enabled_flags(self) -> Set[str]:
        return {k for k, v in self.get_all_flags().items() if v}

    @property
    def authorship_reframing(self) -> bool:
        return self.is_enabled("authorship_reframing")

    @property
    def scenario_detection(self) -> bool:
        return self.is_enabled("scenario_detection")

    @property
    def stage_fact_capture(self) -> bool:
        return self.is_enabled("stage_fact_capture")

    @property
    def follow_up_topics(self) -> bool:
        return self.is_enabled("follow_up_topics")

    @property
    def bot_modes(self) -> bool:
        return self.is_enabled("bot_modes")


flags = FeatureFlags()
