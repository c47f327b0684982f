"""
Тесты языка авторства (detect_authorship_projection).

Порядок AUTHORSHIP_RULE_LIST — публичный контракт: первое сработавшее
правило побеждает, конкретные правила стоят выше общих.
"""

import re

import pytest

from mpt_engine.extractors import (
    AUTHORSHIP_RULE_LIST,
    AuthorshipRule,
    detect_authorship_projection,
)


def _index(pattern_fragment: str) -> int:
    for i, rule in enumerate(AUTHORSHIP_RULE_LIST):
        if pattern_fragment in rule.pattern.pattern:
            return i
    raise AssertionError(f"rule with '{pattern_fragment}' not found")


class TestAuthorshipReframe:
    """Переформулировка проекций"""

    def test_makes_me_feel(self):
        result = detect_authorship_projection("he always makes me feel small")
        assert result == (
            'I hear "he always makes me feel small". '
            'In the language of authorship it would sound like: "I feel small when..."'
        )

    def test_capture_group_substituted(self):
        result = detect_authorship_projection("She really makes me feel stupid")
        assert '"I feel stupid when..."' in result

    def test_general_makes_me(self):
        result = detect_authorship_projection("She makes me angry")
        assert '"I go along with it when..."' in result

    def test_forced(self):
        result = detect_authorship_projection("I was forced to quit")
        assert "I chose, under pressure, to..." in result

    def test_cant(self):
        result = detect_authorship_projection("I can't sleep at night")
        assert '"it is hard for me to..."' in result

    def test_typographic_apostrophe(self):
        result = detect_authorship_projection("I can’t stop")
        assert result is not None
        assert "it is hard for me to" in result

    def test_russian_rule_uses_russian_template(self):
        result = detect_authorship_projection("Меня бесит начальник")
        assert result == (
            'Я слышу "Меня бесит начальник". '
            'В языке авторства это звучало бы как: "я раздражаюсь на..."'
        )

    def test_no_projection(self):
        assert detect_authorship_projection("The weather is nice today") is None

    @pytest.mark.parametrize("value", ["", "   ", None, 17])
    def test_total_on_bad_input(self, value):
        assert detect_authorship_projection(value) is None


class TestAuthorshipRuleOrder:
    """Порядок правил как контракт"""

    def test_specific_before_general_english(self):
        assert _index(r"makes?\s+me\s+feel") < _index(r"makes?\s+me\b")

    def test_cant_is_last_english_rule(self):
        english = [r for r in AUTHORSHIP_RULE_LIST if r.lang == "en"]
        assert "can't" in english[-1].pattern.pattern

    def test_first_match_wins_on_overlap(self):
        """'я не могу' стоит раньше 'меня заставили' и побеждает"""
        assert _index("я не могу") < _index("меня заставили")
        result = detect_authorship_projection("Я не могу, меня заставили")
        assert '"мне сложно..."' in result

    def test_overlapping_russian_pair_keeps_order(self):
        """Пара 'он/она виноват' / 'он/она виноват(а)?' сохраняет порядок"""
        first = _index("он/она виноват")
        second = _index("он/она виноват(а)?")
        assert first < second

    def test_all_rules_have_language(self):
        assert {rule.lang for rule in AUTHORSHIP_RULE_LIST} == {"ru", "en"}

    def test_custom_rule_list(self):
        rules = [AuthorshipRule(pattern=re.compile(r"\bthey ignore me\b", re.I),
                                reframe="I withdraw when", lang="en")]
        result = detect_authorship_projection("They ignore me at work", rules=rules)
        assert '"I withdraw when..."' in result
        assert detect_authorship_projection("he makes me feel small", rules=rules) is None

    def test_rule_apply(self):
        rule = AuthorshipRule(
            pattern=re.compile(r"makes me feel (\w+)", re.I),
            reframe=r"I feel \1 when",
            lang="en",
        )
        assert rule.apply("it makes me feel tiny") == "I feel tiny when"
        assert rule.apply("nothing here") is None
