import pytest

from onboarding.models.schema import Question
from onboarding.utils.validation import (
    INVALID_URL_MESSAGE,
    REQUIRED_MESSAGE,
    SELECT_AT_LEAST_ONE_MESSAGE,
    sanitize_input,
    validate_answer,
    validate_email,
)


def make_question(qtype, required=False, **kwargs):
    return Question(id="q", text="Question", type=qtype, required=required, **kwargs)


class TestValidateAnswer:
    @pytest.mark.parametrize("value", [None, ""])
    def test_required_rejects_empty(self, value):
        assert validate_answer(make_question("short-text", required=True), value) == (False, REQUIRED_MESSAGE)

    def test_required_accepts_zero(self):
        assert validate_answer(make_question("number", required=True), 0) == (True, None)

    def test_required_multi_select_needs_a_selection(self):
        question = make_question("multi-select", required=True, options=[{"value": "a", "label": "A"}])
        assert validate_answer(question, {"selected": [], "otherText": "typed"}) == (False, SELECT_AT_LEAST_ONE_MESSAGE)
        assert validate_answer(question, []) == (False, SELECT_AT_LEAST_ONE_MESSAGE)
        assert validate_answer(question, {"selected": ["a"], "otherText": ""}) == (True, None)

    def test_info_questions_are_skipped(self):
        assert validate_answer(make_question("info", required=True), None) == (True, None)

    def test_url_must_be_absolute(self):
        question = make_question("url")
        assert validate_answer(question, "www.example.com") == (False, INVALID_URL_MESSAGE)
        assert validate_answer(question, "https://www.example.com/plans") == (True, None)
        assert validate_answer(question, "") == (True, None)

    def test_optional_url_sentinel_is_not_checked(self):
        assert validate_answer(make_question("optional-url"), "NAO_POSSUI") == (True, None)

    def test_min_length(self):
        question = make_question("long-text", validation="min:10")
        assert validate_answer(question, "short") == (False, "Minimum 10 characters")
        assert validate_answer(question, "long enough text") == (True, None)
        assert validate_answer(question, "") == (True, None)


def test_sanitize_input_strips_markup():
    assert sanitize_input("  <b>Acme</b> Fiber  ") == "Acme Fiber"
    with pytest.raises(ValueError):
        sanitize_input("x" * 11, max_length=10)


def test_validate_email():
    assert validate_email("ceo@example.com") == (True, None)
    assert validate_email("not-an-email")[0] is False
