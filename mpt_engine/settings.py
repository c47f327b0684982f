"""
Загрузчик настроек из settings.yaml

Использование:
    from mpt_engine.settings import settings

    limit = settings.session.max_utterance_chars
    model = settings.llm.model
"""

import copy

import yaml
from pathlib import Path
from typing import List, Any


# Путь к файлу настроек
SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

# Значения по умолчанию (используются если параметр не указан в YAML)
DEFAULTS = {
    "session": {
        "max_utterance_chars": 10000,
        "importance_threshold": 8,
        "history_window": 20,
    },
    "llm": {
        "model": "llama-3.3-70b",
        "base_url": "http://localhost:8000/v1",
        "api_key": "",
        "timeout": 60,
        "max_retries": 3,
        "temperature": 0.7,
        "max_tokens": 1024,
    },
    "logging": {
        "level": "INFO",
        "log_directives": False,
    },
    "locks": {
        "dir": "/tmp/mpt_engine_session_locks",
    },
    "feature_flags": {},
}


class DotDict(dict):
    """Словарь с доступом через точку: d.key вместо d['key']"""

    def __getattr__(self, key: str) -> Any:
        try:
            value = self[key]
            if isinstance(value, dict):
                return DotDict(value)
            return value
        except KeyError:
            raise AttributeError(f"Настройка '{key}' не найдена")

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Получить значение по пути: 'llm.model'"""
        keys = path.split('.')
        value = self
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Глубокое слияние словарей (override перезаписывает base)"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(filepath: Path = None) -> DotDict:
    """
    Загрузить настройки из YAML файла.

    Порядок приоритета:
    1. Значения из YAML файла (высший приоритет)
    2. Значения по умолчанию (DEFAULTS)

    Args:
        filepath: Путь к файлу настроек (по умолчанию settings.yaml)

    Returns:
        DotDict с настройками
    """
    filepath = filepath or SETTINGS_FILE

    # Начинаем с defaults
    config = copy.deepcopy(DEFAULTS)

    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        config = _deep_merge(config, yaml_config)
    else:
        print(f"[settings] Файл настроек не найден: {filepath}")
        print("[settings] Используются значения по умолчанию")

    return DotDict(config)


def validate_settings(settings: DotDict) -> List[str]:
    """
    Валидация настроек.

    Returns:
        Список ошибок (пустой если всё OK)
    """
    errors = []

    # Session
    if settings.session.max_utterance_chars < 1:
        errors.append("session.max_utterance_chars должен быть >= 1")
    if not (1 <= settings.session.importance_threshold <= 10):
        errors.append("session.importance_threshold должен быть от 1 до 10")
    if settings.session.history_window < 1:
        errors.append("session.history_window должен быть >= 1")

    # LLM
    if not settings.llm.model:
        errors.append("llm.model не указан")
    if not settings.llm.base_url:
        errors.append("llm.base_url не указан")
    if settings.llm.timeout <= 0:
        errors.append("llm.timeout должен быть > 0")
    if settings.llm.max_retries < 1:
        errors.append("llm.max_retries должен быть >= 1")

    return errors


# Глобальный экземпляр настроек (ленивая загрузка)
_settings = None


def get_settings() -> DotDict:
    """Получить глобальные настройки (singleton)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
        errors = validate_settings(_settings)
        if errors:
            print("[settings] Ошибки в настройках:")
            for err in errors:
                print(f"  - {err}")
    return _settings


def reload_settings() -> DotDict:
    """Перезагрузить настройки из файла"""
    global _settings
    _settings = None
    return get_settings()


# Для удобного импорта: from mpt_engine.settings import settings
settings = get_settings()
