"""
Category Classifier — категория запроса по ключевым словам.

Категории проверяются в порядке constants.yaml, первая с совпавшим
ключевым словом побеждает; без совпадений — general. Вызывается только
на первом ходе, результат закрепляется за сессией.
"""

from typing import Any, Optional, Tuple

from mpt_engine.extractors import normalize_text
from mpt_engine.models import RequestCategory
from mpt_engine.yaml_config.constants import CATEGORY_KEYWORDS


def match_category(utterance: Any) -> Tuple[RequestCategory, Optional[str]]:
    """Категория и сработавшее ключевое слово (None для general)."""
    if not isinstance(utterance, str) or not utterance:
        return RequestCategory.GENERAL, None
    lowered = normalize_text(utterance).lower()
    for category_key, keywords in CATEGORY_KEYWORDS.items():
        for keyword in keywords:
            if keyword in lowered:
                return RequestCategory(category_key), keyword
    return RequestCategory.GENERAL, None


def classify_request(utterance: Any) -> RequestCategory:
    return match_category(utterance)[0]
