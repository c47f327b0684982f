"""
TherapySessionService — оркестрация хода на стороне вызывающего.

lock -> load -> advance_turn -> generate -> commit

Состояние и транскрипт коммитятся только после успешной генерации:
если генератор упал, в хранилище остаётся прежнее состояние, и ход
можно безопасно повторить.

Использование:
    from mpt_engine.service import TherapySessionService

    service = TherapySessionService()
    session_id = service.open_session(scenario_id="burnout")
    reply = service.handle_message(session_id, "Я выгорел на работе")
    print(reply.text, reply.stage)
"""

import uuid
from dataclasses import dataclass
from typing import List, Optional

from mpt_engine.directives import Directive
from mpt_engine.llm import ChatCompletionsClient, GenerationError, TextGenerator
from mpt_engine.logger import logger
from mpt_engine.models import SessionState, Stage
from mpt_engine.schemas import ChatMessage
from mpt_engine.session import advance_turn, create_session
from mpt_engine.session_lock import SessionLockManager
from mpt_engine.session_store import InMemorySessionStore, SessionRecord, SessionStore
from mpt_engine.settings import settings


class SessionNotFoundError(KeyError):
    """Raised when a session id is not present in the store."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


@dataclass
class ServiceReply:
    """Ответ сервиса на реплику клиента."""
    session_id: str
    text: str
    stage: Stage
    directive: Directive
    authorship_reframe: Optional[str] = None
    transitioned: bool = False
    session_complete: bool = False


def _last_assistant_message(transcript: List[ChatMessage]) -> Optional[str]:
    """Последний вопрос терапевта: на него отвечает клиент."""
    for message in reversed(transcript):
        if message.role == "assistant":
            return message.content
    return None


class TherapySessionService:
    """
    Сервис сессий поверх движка.

    Args:
        generator: Реализация TextGenerator (по умолчанию ChatCompletionsClient)
        store: Реализация SessionStore (по умолчанию InMemorySessionStore)
        lock_manager: Блокировки сессий (по умолчанию SessionLockManager)
        history_window: Сколько последних сообщений транскрипта отдавать генератору
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        store: Optional[SessionStore] = None,
        lock_manager: Optional[SessionLockManager] = None,
        history_window: Optional[int] = None,
    ):
        self._generator = generator or ChatCompletionsClient()
        self._store = store if store is not None else InMemorySessionStore()
        self._locks = lock_manager or SessionLockManager()
        self._history_window = history_window or settings.get_nested("session.history_window", 20)

    @property
    def store(self) -> SessionStore:
        return self._store

    def open_session(self, scenario_id: Optional[str] = None) -> str:
        """
        Создать сессию.

        scenario_id запоминается и применяется на первом ходе
        (вместе с категорией запроса).
        """
        session_id = uuid.uuid4().hex
        state = create_session()
        state.scenario_id = scenario_id
        self._store.put(session_id, SessionRecord(state=state))
        logger.event("session_created", session_id=session_id, scenario_id=scenario_id)
        return session_id

    def get_state(self, session_id: str) -> SessionState:
        return self._load(session_id).state

    def handle_message(
        self,
        session_id: str,
        text: str,
        scenario_id: Optional[str] = None,
    ) -> ServiceReply:
        """
        Обработать реплику клиента и получить ответ терапевта.

        Raises:
            SessionNotFoundError: неизвестная сессия
            InvalidUtteranceError: пустая или слишком длинная реплика
            GenerationError: генератор не ответил (состояние не изменено)
        """
        logger.set_session(session_id)
        try:
            with self._locks.lock(session_id):
                record = self._load(session_id)
                scenario = scenario_id or record.state.scenario_id

                result = advance_turn(
                    record.state,
                    text,
                    scenario_id=scenario,
                    asked_question=_last_assistant_message(record.transcript),
                )
                user_message = ChatMessage(role="user", content=result.state.last_client_response)
                messages = self.build_messages(
                    result.directive, record.transcript + [user_message]
                )

                try:
                    reply_text = self._generator.generate(messages)
                except GenerationError as e:
                    logger.event(
                        "generation_failed",
                        stage=result.state.stage.value,
                        reason=e.reason,
                        attempts=e.attempts,
                    )
                    raise

                record.state = result.state
                record.transcript = record.transcript + [
                    user_message,
                    ChatMessage(role="assistant", content=reply_text),
                ]
                self._store.put(session_id, record)

                return ServiceReply(
                    session_id=session_id,
                    text=reply_text,
                    stage=result.state.stage,
                    directive=result.directive,
                    authorship_reframe=result.authorship_reframe,
                    transitioned=result.transitioned,
                    session_complete=result.state.session_complete,
                )
        finally:
            logger.clear_session()

    def close_session(self, session_id: str) -> SessionState:
        """Удалить сессию из хранилища и вернуть её последнее состояние."""
        with self._locks.lock(session_id):
            record = self._load(session_id)
            self._store.delete(session_id)
            # Файл удаляется под блокировкой: ждущий ход увидит удалённую сессию
            self._locks.release(session_id)
        logger.info(
            "Session closed",
            session_id=session_id,
            stage=record.state.stage.value,
            total_turns=record.state.total_turns,
        )
        return record.state

    def build_messages(
        self,
        directive: Directive,
        transcript: List[ChatMessage],
    ) -> List[ChatMessage]:
        """Системная директива + хвост транскрипта (history_window сообщений)."""
        tail = transcript[-self._history_window:] if self._history_window else transcript
        return [ChatMessage(role="system", content=directive.render())] + list(tail)

    def _load(self, session_id: str) -> SessionRecord:
        record = self._store.get(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record
