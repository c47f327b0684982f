"""
Shared pytest fixtures for mpt_engine tests.

Provides fixtures for:
- Session state factories at arbitrary stages
- Mock text generator
- Temporary lock directories and services
- Feature flag overrides
"""

from contextlib import contextmanager
from typing import Any, List
from unittest.mock import MagicMock

import pytest

from mpt_engine.models import RequestCategory, SessionState, Stage, TherapyContext
from mpt_engine.session import advance_turn, create_session


# =============================================================================
# Session State Fixtures
# =============================================================================

@pytest.fixture
def fresh_state() -> SessionState:
    """Новая сессия на start_session."""
    return create_session()


@pytest.fixture
def state_at():
    """
    Фабрика состояния на произвольном этапе (первый ход уже прошёл).

    Usage:
        state = state_at(Stage.BODYWORK, response_count=2)
    """
    def _create(stage: Stage, response_count: int = 0, **kwargs: Any) -> SessionState:
        kwargs.setdefault("request_category", RequestCategory.GENERAL)
        kwargs.setdefault("session_started", True)
        kwargs.setdefault("total_turns", 5)
        kwargs.setdefault("context", TherapyContext(original_request="запрос клиента"))
        kwargs.setdefault(
            "stage_history",
            [s for s in Stage if s.position < Stage(stage).position],
        )
        return SessionState(stage=stage, response_count=response_count, **kwargs)
    return _create


@pytest.fixture
def drive():
    """Прогнать несколько реплик подряд; возвращает список TurnResult."""
    def _drive(state: SessionState, utterances: List[str]):
        results = []
        for utterance in utterances:
            result = advance_turn(state, utterance)
            results.append(result)
            state = result.state
        return results
    return _drive


# =============================================================================
# Collaborator Fixtures
# =============================================================================

@pytest.fixture
def mock_generator():
    """Mock TextGenerator."""
    generator = MagicMock()
    generator.generate.return_value = "Расскажи, что сейчас происходит?"
    return generator


@pytest.fixture
def lock_manager(tmp_path):
    from mpt_engine.session_lock import SessionLockManager
    return SessionLockManager(str(tmp_path / "locks"))


@pytest.fixture
def service(mock_generator, lock_manager):
    from mpt_engine.service import TherapySessionService
    from mpt_engine.session_store import InMemorySessionStore
    return TherapySessionService(
        generator=mock_generator,
        store=InMemorySessionStore(),
        lock_manager=lock_manager,
        history_window=4,
    )


# =============================================================================
# Feature Flags Fixtures
# =============================================================================

@pytest.fixture
def feature_flags_override():
    """Context manager for temporary feature flag overrides."""
    from mpt_engine.feature_flags import flags

    @contextmanager
    def _override(**kwargs):
        for flag, value in kwargs.items():
            flags.set_override(flag, value)
        try:
            yield flags
        finally:
            for flag in kwargs:
                flags.clear_override(flag)

    return _override


@pytest.fixture(autouse=False)
def clean_feature_flags():
    """Cleanup feature flags after test."""
    from mpt_engine.feature_flags import flags
    yield
    flags.clear_all_overrides()
