import logging

import pytest

from onboarding.core.conditions import evaluate_conditional, filter_visible, is_visible, referenced_fields
from onboarding.models.schema import Question


def make_question(conditional=None, question_id="q"):
    return Question(id=question_id, text="Question", type="short-text", conditional=conditional)


class TestEvaluateConditional:
    def test_no_expression_is_always_visible(self):
        for answers in ({}, {"a": "x"}, {"a": {"selected": []}}):
            assert evaluate_conditional(None, answers) is True
            assert evaluate_conditional("", answers) is True
            assert is_visible(make_question(), answers) is True

    def test_equality_is_strict_string_match(self):
        assert evaluate_conditional("tem_plantao == 'sim'", {"tem_plantao": "sim"}) is True
        assert evaluate_conditional("tem_plantao == 'sim'", {"tem_plantao": "nao"}) is False
        assert evaluate_conditional("tem_plantao == 'sim'", {}) is False
        assert evaluate_conditional("count == '5'", {"count": 5}) is False

    def test_inequality_counts_unset_as_different(self):
        assert evaluate_conditional("tipo_bloqueio != 'nenhum'", {"tipo_bloqueio": "total"}) is True
        assert evaluate_conditional("tipo_bloqueio != 'nenhum'", {"tipo_bloqueio": "nenhum"}) is False
        assert evaluate_conditional("tipo_bloqueio != 'nenhum'", {}) is True

    def test_or_of_whole_clauses(self):
        expression = "taxa == 'sim' || taxa == 'promocional'"
        assert evaluate_conditional(expression, {"taxa": "sim"}) is True
        assert evaluate_conditional(expression, {"taxa": "promocional"}) is True
        assert evaluate_conditional(expression, {"taxa": "nao"}) is False

    @pytest.mark.parametrize("answer, expected", [
        (["a", "outro"], True),
        ({"selected": ["outro"], "otherText": "x"}, True),
        ({"selected": ["a"], "otherText": "outro"}, False),
        (["a"], False),
        ("outro", False),
        ({"otherText": "outro"}, False),
        (None, False),
    ])
    def test_includes_only_looks_into_lists_and_selections(self, answer, expected):
        answers = {} if answer is None else {"lista": answer}
        assert evaluate_conditional("lista includes 'outro'", answers) is expected

    def test_malformed_expression_fails_open_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="onboarding.core.conditions"):
            assert evaluate_conditional("tem_plantao sim", {"tem_plantao": "nao"}) is True
            assert evaluate_conditional("a == 'x' || ", {"a": "y"}) is True
            assert evaluate_conditional("== 'x'", {}) is True
        assert len(caplog.records) == 3

    def test_evaluation_is_pure(self):
        answers = {"lista": {"selected": ["a"], "otherText": ""}, "b": "x"}
        snapshot = {"lista": {"selected": ["a"], "otherText": ""}, "b": "x"}
        first = evaluate_conditional("lista includes 'a' || b != 'x'", answers)
        second = evaluate_conditional("lista includes 'a' || b != 'x'", answers)
        assert first == second
        assert answers == snapshot


def test_filter_visible_preserves_order():
    questions = [
        make_question(question_id="q1"),
        make_question("q1 == 'yes'", question_id="q2"),
        make_question(question_id="q3"),
    ]
    assert [q.id for q in filter_visible(questions, {"q1": "no"})] == ["q1", "q3"]
    assert [q.id for q in filter_visible(questions, {"q1": "yes"})] == ["q1", "q2", "q3"]


def test_referenced_fields():
    assert referenced_fields("a == 'x' || b includes 'y'") == ["a", "b"]
    assert referenced_fields(None) == []
    assert referenced_fields("garbage") == []
