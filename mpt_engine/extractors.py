"""
Fact Extractors — извлечение фактов из реплик клиента по шаблонам.

Все экстракторы тотальные: на любой вход возвращают None/False/{}
и никогда не бросают исключений. Неоднозначность решается порядком
списков в constants.yaml (первое совпадение побеждает).

Экстракторы:
- detect_evasion: "не знаю" / "I don't know"
- extract_client_name: имя по всей истории реплик
- extract_importance_rating: оценка 1-10
- detect_authorship_projection: переформулировка на язык авторства
- capture_stage_facts: факты текущего этапа (потребность, образ, шаг...)
- detect_bot_mode / detect_mode_exit: запрос режима практики, супервизии,
  обучения и выход из него

Использование:
    from mpt_engine.extractors import detect_authorship_projection

    detect_authorship_projection("he always makes me feel small")
    # 'I hear "he always makes me feel small". In the language of
    #  authorship it would sound like: "I feel small when..."'
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern

from mpt_engine.models import BotMode, Stage
from mpt_engine.yaml_config.constants import (
    AUTHORSHIP_RULES,
    AUTHORSHIP_TEMPLATES,
    BOT_MODES,
    EVASION_PHRASES,
    FACT_MAX_LENGTH,
    MODE_CONTEXT_WINDOW,
    MODE_EXIT_PHRASES,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    NAME_PATTERNS,
    NAME_STOP_WORDS,
    RATING_MAX,
    RATING_MIN,
    RATING_PATTERNS,
    STAGE_FACT_RULES,
)

_FLAGS = re.IGNORECASE | re.UNICODE

# Типографские апострофы -> ASCII, чтобы "don’t" совпадало с "don't"
_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "ʼ": "'", "´": "'"})

# Поля-флаги: любое совпадение ставит True
FLAG_FIELDS = frozenset({"integration.movement_done"})

_TRIM_CHARS = " \t\n.,;:!?—-\"'«»"


def normalize_text(text: str) -> str:
    return text.translate(_APOSTROPHES).strip()


# =============================================================================
# EVASION
# =============================================================================

def detect_evasion(utterance: Any) -> bool:
    """True если реплика содержит фразу уклонения ("не знаю", "not sure")."""
    if not isinstance(utterance, str) or not utterance:
        return False
    lowered = normalize_text(utterance).lower()
    return any(phrase in lowered for phrase in EVASION_PHRASES)


# =============================================================================
# NAME
# =============================================================================

_NAME_REGEXES: List[Pattern] = [re.compile(p, _FLAGS) for p in NAME_PATTERNS]


def _is_valid_name(token: str) -> bool:
    return (
        NAME_MIN_LENGTH <= len(token) <= NAME_MAX_LENGTH
        and token.lower() not in NAME_STOP_WORDS
    )


def extract_client_name(utterances: Iterable[str]) -> Optional[str]:
    """
    Найти имя клиента.

    Реплики просматриваются в хронологическом порядке, для каждой
    шаблоны проверяются в порядке NAME_PATTERNS. Первый токен длиной
    2-20 символов, не входящий в стоп-слова, возвращается с заглавной.
    """
    if isinstance(utterances, str):
        utterances = [utterances]
    for utterance in utterances or []:
        if not isinstance(utterance, str):
            continue
        text = normalize_text(utterance)
        for regex in _NAME_REGEXES:
            match = regex.search(text)
            if not match:
                continue
            token = match.group(1)
            if token and _is_valid_name(token):
                return token[0].upper() + token[1:].lower()
    return None


# =============================================================================
# IMPORTANCE RATING
# =============================================================================

_RATING_REGEXES: List[Pattern] = [re.compile(p, _FLAGS) for p in RATING_PATTERNS]


def extract_importance_rating(utterance: Any) -> Optional[int]:
    """Оценка по шкале 1-10; числа вне шкалы пропускаются."""
    if not isinstance(utterance, str) or not utterance:
        return None
    text = normalize_text(utterance)
    for regex in _RATING_REGEXES:
        match = regex.search(text)
        if not match:
            continue
        value = int(match.group(1))
        if RATING_MIN <= value <= RATING_MAX:
            return value
    return None


# =============================================================================
# AUTHORSHIP
# =============================================================================

@dataclass(frozen=True)
class AuthorshipRule:
    """Правило языка авторства: шаблон проекции -> переформулировка."""
    pattern: Pattern
    reframe: str
    lang: str = "ru"

    @classmethod
    def from_config(cls, raw: Dict[str, str]) -> "AuthorshipRule":
        return cls(
            pattern=re.compile(raw["pattern"], _FLAGS),
            reframe=raw["reframe"],
            lang=raw.get("lang", "ru"),
        )

    def apply(self, utterance: str) -> Optional[str]:
        """Переформулировка с подставленными группами или None."""
        match = self.pattern.search(utterance)
        if not match:
            return None
        return match.expand(self.reframe)


# Порядок = публичный контракт: конкретные правила выше общих
AUTHORSHIP_RULE_LIST: List[AuthorshipRule] = [
    AuthorshipRule.from_config(raw) for raw in AUTHORSHIP_RULES
]


def detect_authorship_projection(
    utterance: Any,
    rules: Optional[List[AuthorshipRule]] = None,
) -> Optional[str]:
    """
    Найти проекцию ответственности и предложить язык авторства.

    Returns:
        Готовую подсказку для директивы или None
    """
    if not isinstance(utterance, str) or not utterance.strip():
        return None
    text = normalize_text(utterance)
    for rule in AUTHORSHIP_RULE_LIST if rules is None else rules:
        reframe = rule.apply(text)
        if reframe is None:
            continue
        template = AUTHORSHIP_TEMPLATES.get(rule.lang) or AUTHORSHIP_TEMPLATES.get("en", "{reframe}")
        return template.format(utterance=text, reframe=reframe)
    return None


# =============================================================================
# STAGE FACTS
# =============================================================================

@dataclass(frozen=True)
class FactRule:
    field: str
    pattern: Pattern


STAGE_FACT_RULE_TABLE: Dict[Stage, List[FactRule]] = {
    Stage(stage_key): [
        FactRule(field=raw["field"], pattern=re.compile(raw["pattern"], _FLAGS))
        for raw in rules
    ]
    for stage_key, rules in STAGE_FACT_RULES.items()
}


def _clean_fact(value: str) -> Optional[str]:
    value = value.strip(_TRIM_CHARS)
    if not value:
        return None
    return value[:FACT_MAX_LENGTH]


def capture_stage_facts(stage: Stage, utterance: Any) -> Dict[str, Any]:
    """
    Факты этапа из одной реплики.

    Returns:
        {путь поля контекста: значение}; для каждого поля побеждает
        первое совпавшее правило
    """
    if not isinstance(utterance, str) or not utterance:
        return {}
    text = normalize_text(utterance)
    facts: Dict[str, Any] = {}
    for rule in STAGE_FACT_RULE_TABLE.get(stage, []):
        if rule.field in facts:
            continue
        match = rule.pattern.search(text)
        if not match:
            continue
        if rule.field in FLAG_FIELDS:
            facts[rule.field] = True
            continue
        value = _clean_fact(match.group(1) or "")
        if value:
            facts[rule.field] = value
    return facts


# =============================================================================
# BOT MODE
# =============================================================================

def detect_bot_mode(utterance: Any, previous: Optional[List[str]] = None) -> Optional[BotMode]:
    """
    Режим, который просит пользователь.

    Args:
        utterance: Текущая реплика
        previous: Предыдущие реплики клиента; режимы со scope "context"
            смотрят ещё на последние MODE_CONTEXT_WINDOW из них

    Returns:
        BotMode первого совпавшего режима или None (режим не запрошен)
    """
    if not isinstance(utterance, str) or not utterance:
        return None
    lowered = normalize_text(utterance).lower()
    recent = [p for p in (previous or [])[-MODE_CONTEXT_WINDOW:] if isinstance(p, str)]
    context = " ".join([lowered] + [normalize_text(p).lower() for p in recent])

    for entry in BOT_MODES:
        haystack = context if entry.get("scope") == "context" else lowered
        if any(kw.lower() in haystack for kw in entry.get("keywords", [])):
            return BotMode(entry["mode"])
    return None


def detect_mode_exit(utterance: Any) -> bool:
    """True если пользователь просит вернуться к обычной сессии."""
    if not isinstance(utterance, str) or not utterance:
        return False
    lowered = normalize_text(utterance).lower()
    return any(phrase in lowered for phrase in MODE_EXIT_PHRASES)
