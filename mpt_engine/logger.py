"""
Structured Logging для движка МПТ-сессий.

JSON-логи для production, readable для dev.
Включает session_id для трейсинга.

Использование:
    from mpt_engine.logger import logger

    logger.set_session("sess_123")
    logger.info("Client utterance received", stage="collect_context")
    logger.event("stage_transition", from_stage="bodywork", to_stage="metaphor")
"""

import logging
import json
import os
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from mpt_engine.settings import settings


# Context-local storage: параллельные сессии не видят session_id друг друга
_session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)
_extra_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar('extra_context', default=None)


class StructuredLogger:
    """
    Структурированный логгер с поддержкой JSON и session tracing.

    Особенности:
    - JSON формат для production (LOG_FORMAT=json)
    - Readable формат для development (по умолчанию)
    - Автоматический session_id в каждом логе
    - Методы event() и metric() для аналитики
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self) -> None:
        """Настройка логгера на основе settings и environment"""
        level_name = settings.get_nested("logging.level", "INFO")
        level = getattr(logging, str(level_name).upper(), logging.INFO)
        self.logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)

        if os.environ.get("LOG_FORMAT", "readable") == "json":
            formatter = logging.Formatter("%(message)s")
        else:
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(message)s",
                datefmt="%H:%M:%S"
            )

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

        # Предотвращаем дублирование логов
        self.logger.propagate = False

    @property
    def session_id(self) -> Optional[str]:
        """Context-local session_id"""
        return _session_id_var.get()

    def set_session(self, session_id: str) -> None:
        _session_id_var.set(session_id)

    def clear_session(self) -> None:
        _session_id_var.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        ctx = _extra_context_var.get()
        if ctx is None:
            ctx = {}
            _extra_context_var.set(ctx)
        return ctx

    def set_context(self, **kwargs: Any) -> None:
        """Set extra context (context-local)"""
        ctx = dict(self._extra_context)
        ctx.update(kwargs)
        _extra_context_var.set(ctx)

    def clear_context(self) -> None:
        _extra_context_var.set({})

    def _format_structured(self, level: str, message: str, **kwargs: Any) -> Dict[str, Any]:
        """Форматирование структурированного лога"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        if self.session_id:
            log_entry["session_id"] = self.session_id

        if self._extra_context:
            log_entry.update(self._extra_context)

        if kwargs:
            log_entry.update(kwargs)

        return log_entry

    def _should_use_json(self) -> bool:
        return os.environ.get("LOG_FORMAT", "readable") == "json"

    def _readable(self, message: str, **kwargs: Any) -> str:
        if kwargs:
            extras = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{message} [{extras}]"
        if self.session_id:
            message = f"[{self.session_id}] {message}"
        return message

    def _log(self, level: str, message: str, log_method, **kwargs: Any) -> None:
        """Общий метод логирования"""
        if self._should_use_json():
            structured = self._format_structured(level, message, **kwargs)
            log_method(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            log_method(self._readable(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, self.logger.debug, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, self.logger.info, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, self.logger.warning, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, self.logger.error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback"""
        if self._should_use_json():
            kwargs["traceback"] = traceback.format_exc()
            structured = self._format_structured("ERROR", message, **kwargs)
            self.logger.error(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            self.logger.exception(self._readable(message, **kwargs))

    def metric(self, name: str, value: Any, **kwargs: Any) -> None:
        """
        Structured metric for analytics.

        Example:
            logger.metric("stage_turns", 4, stage="bodywork")
        """
        self._log("METRIC", name, self.logger.info, value=value, **kwargs)

    def event(self, event_type: str, **kwargs: Any) -> None:
        """
        Log business event for analytics.

        Example:
            logger.event("stage_transition", from_stage="find_need", to_stage="bodywork")
            logger.event("category_pinned", category="burnout")
        """
        self._log("EVENT", event_type, self.logger.info, **kwargs)


# Singleton экземпляр логгера
logger = StructuredLogger("mpt_engine")


def create_test_logger(name: str = "test") -> StructuredLogger:
    """Создать изолированный логгер для тестов"""
    return StructuredLogger(f"mpt_engine.{name}")
