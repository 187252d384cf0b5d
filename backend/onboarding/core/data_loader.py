import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

from pydantic import ValidationError as PydanticValidationError

from onboarding.core.conditions import referenced_fields
from onboarding.models.schema import Department, OnboardingSchema, QuestionType
from onboarding.utils.validation import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_FILE = Path(__file__).resolve().parent.parent / "data" / "questions.json"


class SchemaError(ValidationError):
    """The questionnaire document cannot be used"""


def _parse_department(dept_id: str, dept_data: Dict[str, Any]) -> Department:
    # Sections arrive as an ordered object keyed by section key
    sections = []
    for key, section_data in (dept_data.get("sections") or {}).items():
        sections.append({**section_data, "key": key})

    return Department(**{**dept_data, "id": dept_id, "sections": sections})


def parse_schema(data: Dict[str, Any]) -> OnboardingSchema:
    """
    Build the immutable schema model from the decoded JSON document

    Raises:
        SchemaError: with one entry per problem found
    """
    if not isinstance(data, dict) or not isinstance(data.get("departments"), dict):
        raise SchemaError("Invalid questionnaire document", ["'departments' object is missing"])

    departments = []
    errors = []
    for dept_id, dept_data in data["departments"].items():
        try:
            departments.append(_parse_department(dept_id, dept_data))
        except PydanticValidationError as e:
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                errors.append(f"Department {dept_id}: {location}: {error['msg']}")
        except (TypeError, AttributeError) as e:
            errors.append(f"Department {dept_id}: {e}")

    if errors:
        raise SchemaError("Invalid questionnaire document", errors)

    meta = data.get("meta") or {}
    return OnboardingSchema(
        departments=departments,
        suggested_order=meta.get("suggested_order") or [d.id for d in departments],
        total_estimated_time=meta.get("total_estimated_time", ""),
        description=meta.get("description", ""),
    )


def validate_schema_integrity(schema: OnboardingSchema) -> Tuple[bool, List[str], List[str]]:
    """
    Cross-question checks the field validators cannot see

    Returns:
        Tuple of (is_valid, errors, warnings)
    """
    errors = []
    warnings = []

    if not schema.departments:
        errors.append("Schema declares no departments")

    for dept_id in schema.suggested_order:
        if not schema.has_department(dept_id):
            errors.append(f"Suggested order references unknown department: {dept_id}")

    for department in schema.departments:
        seen = set()
        question_ids = {q.id for q in department.all_questions()}

        for question in department.all_questions():
            if question.id in seen:
                errors.append(f"Department {department.id} has duplicate question id: {question.id}")
            seen.add(question.id)

            if question.is_select() and not question.options:
                errors.append(f"Question {department.id}.{question.id} is {question.type.value} without options")

            if question.validation:
                try:
                    minimum = question.get_min_length()
                except ValueError:
                    minimum = -1
                if minimum is None or minimum < 0:
                    errors.append(f"Question {department.id}.{question.id} has invalid validation rule: {question.validation}")

            if question.type == QuestionType.INFO_WITH_LINK and not question.link:
                warnings.append(f"Question {department.id}.{question.id} is info-with-link without a link")

            for field in referenced_fields(question.conditional):
                if field not in question_ids:
                    warnings.append(f"Question {department.id}.{question.id} conditional references unknown question: {field}")

    is_valid = len(errors) == 0
    if is_valid:
        logger.info("Schema validation passed")
    else:
        logger.warning(f"Schema validation failed with {len(errors)} errors")

    for warning in warnings:
        logger.warning(warning)

    return is_valid, errors, warnings


def load_schema(file_path: Optional[str] = None) -> OnboardingSchema:
    """Load, parse and check the questionnaire; any problem is fatal"""
    path = Path(file_path) if file_path else DEFAULT_SCHEMA_FILE
    try:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Schema file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        schema = parse_schema(data)
        is_valid, errors, _ = validate_schema_integrity(schema)
        if not is_valid:
            raise SchemaError("Invalid questionnaire document", errors)

        question_count = sum(d.question_count() for d in schema.departments)
        logger.info(f"Successfully loaded {len(schema.departments)} departments ({question_count} questions)")
        return schema

    except json.JSONDecodeError as e:
        logger.error(f"Failed to load schema: {e}")
        raise SchemaError("Schema file is not valid JSON", [str(e)])
    except Exception as e:
        logger.error(f"Failed to load schema: {e}")
        raise
