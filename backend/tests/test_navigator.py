import pytest

from onboarding.core.answers import AnswerError
from onboarding.core.data_loader import parse_schema
from onboarding.core.exceptions import NavigationError, SubmissionError
from onboarding.core.navigator import (
    COMPANY_NAME_REQUIRED,
    DEPARTMENT_REQUIRED,
    SUBMIT_FAILED_MESSAGE,
    SUBMITTER_REQUIRED,
    OnboardingNavigator,
)
from onboarding.models.session import NavigationState, Step
from onboarding.utils.validation import SELECT_AT_LEAST_ONE_MESSAGE
from tests.conftest import make_schema_document


def start_questions(schema, department_id="geral", **kwargs):
    navigator = OnboardingNavigator(schema, **kwargs)
    navigator.set_company_name("Acme Fiber")
    assert navigator.next()
    navigator.select_department(department_id)
    assert navigator.next()
    return navigator


def two_section_schema():
    return parse_schema(make_schema_document({
        "geral": {
            "name": "General",
            "sections": {
                "first": {
                    "title": "First",
                    "questions": [
                        {"id": "mode", "text": "Mode", "type": "single-select",
                         "options": [{"value": "full", "label": "Full"}, {"value": "short", "label": "Short"}]},
                        {"id": "a1", "text": "A1", "type": "short-text"},
                    ],
                },
                "hidden": {
                    "title": "Only in full mode",
                    "questions": [
                        {"id": "h1", "text": "H1", "type": "short-text", "conditional": "mode == 'full'"},
                    ],
                },
                "last": {
                    "title": "Last",
                    "questions": [
                        {"id": "b1", "text": "B1", "type": "short-text"},
                        {"id": "b2", "text": "B2", "type": "short-text", "conditional": "mode == 'full'"},
                        {"id": "b3", "text": "B3", "type": "short-text"},
                    ],
                },
            },
        }
    }))


class TestEntrySteps:
    def test_company_name_is_required(self, small_schema):
        navigator = OnboardingNavigator(small_schema)
        assert navigator.next() is False
        assert navigator.state.error == COMPANY_NAME_REQUIRED
        navigator.set_company_name("Acme")
        assert navigator.state.error is None
        assert navigator.next() is True
        assert navigator.state.step == Step.DEPARTMENT_SELECTION

    def test_department_is_required(self, small_schema):
        navigator = OnboardingNavigator(small_schema)
        navigator.set_company_name("Acme")
        navigator.next()
        assert navigator.next() is False
        assert navigator.state.error == DEPARTMENT_REQUIRED

    def test_unknown_department(self, small_schema):
        navigator = OnboardingNavigator(small_schema)
        with pytest.raises(NavigationError):
            navigator.select_department("juridico")

    def test_back_from_first_question_returns_to_department_selection(self, small_schema):
        navigator = start_questions(small_schema)
        assert navigator.is_first_question
        assert navigator.previous() is True
        assert navigator.state.step == Step.DEPARTMENT_SELECTION
        assert navigator.previous() is True
        assert navigator.state.step == Step.COMPANY_NAME


class TestConditionalSequence:
    def test_hidden_question_is_skipped_and_restored(self, small_schema):
        navigator = start_questions(small_schema)
        navigator.set_answer("q1", "no")
        assert [q.id for q in navigator.visible_questions] == ["q1", "q3"]

        assert navigator.next()
        assert navigator.current_question.id == "q3"

        assert navigator.previous()
        assert navigator.current_question.id == "q1"
        navigator.set_answer("q1", "yes")
        assert [q.id for q in navigator.visible_questions] == ["q1", "q2", "q3"]

        assert navigator.next()
        assert navigator.current_question.id == "q2"

    def test_index_is_clamped_when_sequence_shrinks(self, small_schema):
        navigator = start_questions(small_schema)
        navigator.set_answer("q1", "yes")
        navigator.next()
        navigator.set_answer("q2", "filled")
        navigator.next()
        assert navigator.state.question_index == 2

        navigator.set_answer("q1", "no")
        assert navigator.state.question_index == 1
        assert navigator.current_question.id == "q3"
        assert navigator.is_last_question

    def test_empty_section_is_skipped_both_ways(self):
        navigator = start_questions(two_section_schema())
        navigator.set_answer("mode", "short")
        navigator.next()
        navigator.next()
        assert navigator.current_section.key == "last"
        assert navigator.current_question.id == "b1"

        navigator.previous()
        assert navigator.current_section.key == "first"
        assert navigator.current_question.id == "a1"

    def test_back_across_sections_lands_on_last_visible_question(self):
        navigator = start_questions(two_section_schema())
        navigator.set_answer("mode", "short")
        for _ in range(2):
            navigator.next()
        assert navigator.current_question.id == "b1"
        navigator.next()
        assert navigator.current_question.id == "b3"

        # Reach the review step, then come back through every section
        navigator.next()
        assert navigator.state.step == Step.REVIEW
        navigator.previous()
        assert navigator.current_question.id == "b3"

        navigator.previous()
        navigator.previous()
        assert navigator.current_question.id == "a1"
        navigator.previous()
        navigator.set_answer("mode", "full")
        navigator.next()
        navigator.next()
        assert navigator.current_section.key == "hidden"
        navigator.next()
        navigator.previous()
        navigator.previous()
        assert navigator.current_question.id == "a1"

    def test_first_and_last_flags_follow_visibility(self):
        navigator = start_questions(two_section_schema())
        assert navigator.is_first_question
        assert not navigator.is_last_question
        navigator.set_answer("mode", "short")
        for _ in range(3):
            navigator.next()
        assert navigator.current_question.id == "b3"
        assert navigator.is_last_question


class TestProgress:
    def test_counts_visible_questions_and_info_as_answered(self):
        schema = parse_schema(make_schema_document({
            "geral": {
                "name": "General",
                "sections": {
                    "s": {
                        "title": "S",
                        "questions": [
                            {"id": "intro", "text": "Intro", "type": "info", "info_text": "Read"},
                            {"id": "q1", "text": "Q1", "type": "short-text"},
                            {"id": "q2", "text": "Q2", "type": "short-text", "conditional": "q1 == 'more'"},
                            {"id": "q3", "text": "Q3", "type": "number"},
                        ],
                    }
                },
            }
        }))
        navigator = start_questions(schema)
        assert navigator.total_questions == 3
        assert navigator.answered_questions == 1

        navigator.set_answer("q1", "more")
        assert navigator.total_questions == 4
        assert navigator.answered_questions == 2
        assert navigator.progress == 50.0

        navigator.set_answer("q3", "0")
        assert navigator.answered_questions == 3

    def test_zero_total_is_zero_percent(self):
        schema = parse_schema(make_schema_document({
            "geral": {"name": "Empty", "sections": {}}
        }))
        navigator = start_questions(schema)
        assert navigator.total_questions == 0
        assert navigator.progress == 0.0
        assert navigator.next()
        assert navigator.state.step == Step.REVIEW

    def test_observing_schedule_commits_default(self, schema):
        navigator = start_questions(schema, "vendas")
        assert "horario_vendas" not in navigator.state.answers
        navigator.set_answer("planos_descricao", "Fiber 500 for 99.90")
        navigator.set_answer("taxa_instalacao", "nao")
        for _ in range(3):
            assert navigator.next(), navigator.state.error
        assert navigator.current_question.id == "horario_vendas"
        assert navigator.state.answers["horario_vendas"]["weekday"] == {
            "start": "08:00", "end": "18:00", "closed": False
        }


class TestValidationGate:
    def test_required_multi_select_error_clears_after_selection(self, schema):
        navigator = start_questions(schema, "suporte")
        navigator.set_answer("sequencia_customizada", "nao")
        navigator.next()
        navigator.next()
        navigator.next()
        navigator.next()
        navigator.set_answer("protocolo_tr069", "sim")
        navigator.next()
        navigator.set_answer("troca_senha_wifi", "sim")
        navigator.next()
        assert navigator.current_question.id == "validacao_troca_senha"

        assert navigator.next() is False
        assert navigator.state.error == SELECT_AT_LEAST_ONE_MESSAGE
        assert navigator.current_question.id == "validacao_troca_senha"

        navigator.toggle_option("validacao_troca_senha", "cpf")
        assert navigator.state.error is None
        assert navigator.next() is True
        assert navigator.current_question.id == "login_senha_app"

    def test_previous_never_validates(self, small_schema):
        navigator = start_questions(small_schema)
        navigator.set_answer("q1", "yes")
        navigator.next()
        assert navigator.next() is False
        assert navigator.previous() is True
        assert navigator.state.error is None
        assert navigator.current_question.id == "q1"


class TestAnswerActions:
    def test_rejects_wrong_question_types(self, schema):
        navigator = start_questions(schema, "sac_geral")
        with pytest.raises(AnswerError):
            navigator.toggle_option("empresa_nome_oficial", "x")
        with pytest.raises(AnswerError):
            navigator.toggle_not_available("empresa_site")
        with pytest.raises(AnswerError):
            navigator.set_answer("nao_existe", "x")
        with pytest.raises(AnswerError):
            navigator.toggle_option("departamentos_lista", "juridico")

    def test_action_helpers(self, schema):
        navigator = start_questions(schema, "sac_geral")
        assert navigator.toggle_not_available("empresa_portal_cliente") == "NAO_POSSUI"
        assert navigator.step_time("horario_aciona_plantao", "hours", -1) == "07:00"
        schedule = navigator.update_schedule("horario_atendimento", "saturday", "closed", True)
        assert schedule["saturday"]["closed"] is True
        navigator.toggle_option("departamentos_lista", "outro")
        value = navigator.set_other_text("departamentos_lista", "Legal")
        assert value == {"selected": ["outro"], "otherText": "Legal"}


class TestReview:
    def fill(self, navigator):
        navigator.set_answer("q1", "yes")
        navigator.next()
        navigator.set_answer("q2", "Second")
        navigator.next()
        navigator.next()
        assert navigator.state.step == Step.REVIEW

    def test_summary_skips_hidden_and_empty_answers(self, small_schema):
        navigator = start_questions(small_schema)
        self.fill(navigator)
        navigator.state.answers["q1"] = "no"
        summary = navigator.summary()
        assert len(summary) == 1
        assert [item["id"] for item in summary[0]["items"]] == ["q1"]
        assert summary[0]["items"][0]["value"] == "No"

    def test_confirm_requires_submitter(self, small_schema):
        navigator = start_questions(small_schema)
        self.fill(navigator)
        assert navigator.next() is False
        assert navigator.state.error == SUBMITTER_REQUIRED
        navigator.set_submitter_name("Maria")
        assert navigator.next() is True
        assert navigator.state.step == Step.SUCCESS

    def test_submit_failure_keeps_review_and_answers(self, small_schema):
        calls = []

        def failing_handler(state):
            calls.append(dict(state.answers))
            raise SubmissionError("store offline")

        navigator = start_questions(small_schema, submit_handler=failing_handler)
        self.fill(navigator)
        navigator.set_submitter_name("Maria")
        assert navigator.confirm() is False
        assert navigator.state.step == Step.REVIEW
        assert navigator.state.error == SUBMIT_FAILED_MESSAGE
        assert navigator.state.answers["q2"] == "Second"
        assert len(calls) == 1

    def test_back_from_review(self, small_schema):
        navigator = start_questions(small_schema)
        self.fill(navigator)
        assert navigator.previous()
        assert navigator.state.step == Step.QUESTIONS
        assert navigator.current_question.id == "q3"


class TestReset:
    def test_anonymous_reset_clears_everything(self, small_schema):
        navigator = start_questions(small_schema)
        navigator.set_answer("q1", "yes")
        navigator.reset()
        assert navigator.state.step == Step.DEPARTMENT_SELECTION
        assert navigator.state.answers == {}
        assert navigator.state.company_name == ""
        assert navigator.state.department_id is None

    def test_token_bound_flow_keeps_session(self, small_schema):
        state = NavigationState(step=Step.QUESTIONS, company_name="Acme", department_id="geral",
                                session_id="session-1")
        navigator = OnboardingNavigator(small_schema, state)
        assert navigator.previous() is False
        assert navigator.state.step == Step.QUESTIONS

        navigator.reset()
        assert navigator.state.session_id == "session-1"
        assert navigator.state.company_name == "Acme"
        assert navigator.state.step == Step.DEPARTMENT_SELECTION
        assert navigator.previous() is False


def test_view_snapshot(small_schema):
    navigator = start_questions(small_schema)
    view = navigator.view()
    assert view["step"] == "questions"
    assert view["question"]["id"] == "q1"
    assert view["section"]["key"] == "basico"
    assert view["total_questions"] == 2
    assert view["progress"] == 0.0
    assert view["is_first_question"] is True
