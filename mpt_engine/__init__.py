"""
mpt_engine — движок МПТ-сессий (метаформная психотерапия).

Детерминированный конечный автомат по 11 этапам протокола:
извлекает факты из реплик клиента, решает, когда переходить к
следующему этапу, и собирает директиву для внешнего генератора.

Использование:
    from mpt_engine import create_session, advance_turn, stage_catalog

    state = create_session()
    result = advance_turn(state, "Я всё время откладываю диплом")
    prompt = result.directive.render()
"""

from mpt_engine.classifier import classify_request
from mpt_engine.directives import (
    Directive,
    DirectiveComposer,
    compose_directive,
    helping_question,
    select_homework,
)
from mpt_engine.extractors import (
    AuthorshipRule,
    AUTHORSHIP_RULE_LIST,
    capture_stage_facts,
    detect_authorship_projection,
    detect_bot_mode,
    detect_evasion,
    detect_mode_exit,
    extract_client_name,
    extract_importance_rating,
)
from mpt_engine.llm import ChatCompletionsClient, GenerationError, TextGenerator
from mpt_engine.models import (
    BotMode,
    RequestCategory,
    SessionState,
    Stage,
    StageDefinition,
    TherapyContext,
)
from mpt_engine.schemas import ChatCompletionResponse, ChatMessage
from mpt_engine.scripts import ScriptSelection, describe_script, detect_scenario, select_script
from mpt_engine.service import ServiceReply, SessionNotFoundError, TherapySessionService
from mpt_engine.session import InvalidUtteranceError, TurnResult, advance_turn, create_session
from mpt_engine.session_store import InMemorySessionStore, SessionRecord, SessionStore
from mpt_engine.stages import StageRegistryError, get_stage_definition, stage_catalog
from mpt_engine.transitions import apply_transition, evaluate_transition, should_advance

__version__ = "1.0.0"

__all__ = [
    # Core
    "create_session",
    "advance_turn",
    "stage_catalog",
    "get_stage_definition",
    "TurnResult",
    # Models
    "Stage",
    "RequestCategory",
    "BotMode",
    "StageDefinition",
    "TherapyContext",
    "SessionState",
    # Components
    "classify_request",
    "select_script",
    "detect_scenario",
    "describe_script",
    "ScriptSelection",
    "detect_evasion",
    "extract_client_name",
    "extract_importance_rating",
    "detect_authorship_projection",
    "capture_stage_facts",
    "detect_bot_mode",
    "detect_mode_exit",
    "AuthorshipRule",
    "AUTHORSHIP_RULE_LIST",
    "evaluate_transition",
    "should_advance",
    "apply_transition",
    "Directive",
    "DirectiveComposer",
    "compose_directive",
    "select_homework",
    "helping_question",
    # Collaborators
    "ChatMessage",
    "ChatCompletionResponse",
    "TextGenerator",
    "ChatCompletionsClient",
    "SessionStore",
    "SessionRecord",
    "InMemorySessionStore",
    "TherapySessionService",
    "ServiceReply",
    # Errors
    "InvalidUtteranceError",
    "StageRegistryError",
    "GenerationError",
    "SessionNotFoundError",
]
