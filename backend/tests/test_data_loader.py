import json

import pytest

from onboarding.core.data_loader import SchemaError, load_schema, parse_schema, validate_schema_integrity
from onboarding.models.schema import QuestionType
from tests.conftest import make_schema_document


def write_document(tmp_path, document):
    path = tmp_path / "questions.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


def single_section(questions):
    return make_schema_document({"geral": {"name": "General", "sections": {"s": {"title": "S", "questions": questions}}}})


class TestPackagedSchema:
    def test_departments_in_declared_order(self, schema):
        assert schema.department_ids() == ["sac_geral", "financeiro", "suporte", "vendas"]
        assert list(schema.suggested_order) == schema.department_ids()

    def test_every_question_type_is_used(self, schema):
        used = {q.type for d in schema.departments for q in d.all_questions()}
        assert used == set(QuestionType)

    def test_integrity_is_clean(self, schema):
        is_valid, errors, warnings = validate_schema_integrity(schema)
        assert is_valid, errors
        assert warnings == []

    def test_sections_keep_document_order(self, schema):
        department = schema.get_department("sac_geral")
        assert [s.key for s in department.sections] == [
            "empresa", "identidade", "horarios", "transferencias", "solicitacoes"
        ]


class TestLoadFailures:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_schema(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "questions.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SchemaError):
            load_schema(str(path))

    def test_unknown_type_and_missing_fields_are_all_reported(self, tmp_path):
        document = single_section([
            {"id": "a", "text": "A", "type": "signature"},
            {"id": "b", "type": "short-text"},
        ])
        with pytest.raises(SchemaError) as exc_info:
            load_schema(write_document(tmp_path, document))
        assert len(exc_info.value.errors) == 2

    def test_duplicate_question_ids(self, tmp_path):
        document = single_section([
            {"id": "a", "text": "A", "type": "short-text"},
            {"id": "a", "text": "A again", "type": "long-text"},
        ])
        with pytest.raises(SchemaError) as exc_info:
            load_schema(write_document(tmp_path, document))
        assert "duplicate question id: a" in str(exc_info.value)

    def test_duplicate_option_values(self):
        document = single_section([
            {"id": "a", "text": "A", "type": "single-select",
             "options": [{"value": "x", "label": "X"}, {"value": "x", "label": "Y"}]},
        ])
        with pytest.raises(SchemaError):
            parse_schema(document)

    def test_select_without_options_and_bad_rule(self, tmp_path):
        document = single_section([
            {"id": "a", "text": "A", "type": "multi-select"},
            {"id": "b", "text": "B", "type": "long-text", "validation": "min:ten"},
        ])
        with pytest.raises(SchemaError) as exc_info:
            load_schema(write_document(tmp_path, document))
        assert len(exc_info.value.errors) == 2


def test_legacy_type_tags_are_accepted():
    schema = parse_schema(single_section([
        {"id": "a", "text": "A", "type": "text"},
        {"id": "b", "text": "B", "type": "horario_semanal"},
        {"id": "c", "text": "C", "type": "checkbox_multiple", "options": [{"value": "x", "label": "X"}]},
        {"id": "d", "text": "D", "type": "url_optional"},
    ]))
    types = [q.type for q in schema.get_department("geral").all_questions()]
    assert types == [
        QuestionType.SHORT_TEXT, QuestionType.WEEKLY_SCHEDULE, QuestionType.MULTI_SELECT, QuestionType.OPTIONAL_URL
    ]


def test_unknown_conditional_reference_is_a_warning():
    schema = parse_schema(single_section([
        {"id": "a", "text": "A", "type": "short-text", "conditional": "ghost == 'x'"},
    ]))
    is_valid, errors, warnings = validate_schema_integrity(schema)
    assert is_valid
    assert errors == []
    assert len(warnings) == 1


def test_models_are_immutable(schema):
    question = schema.get_department("vendas").all_questions()[0]
    with pytest.raises(Exception):
        question.required = False
