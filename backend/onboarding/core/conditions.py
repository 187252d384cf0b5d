"""
Conditional visibility of questions

Expressions are plain strings over other answers, parsed on every evaluation:

    tem_plantao == 'sim'
    taxa_instalacao == 'sim' || taxa_instalacao == 'promocional'
    departamentos_lista includes 'outro'
    tipo_bloqueio != 'nenhum'

Clauses joined by " || " are OR-ed left to right; there is no "&&" and no
precedence beyond that. An expression that cannot be parsed leaves the
question visible and logs a warning. Evaluation never raises and has no side
effects, so the same answers always yield the same visibility.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from onboarding.models.schema import Question

logger = logging.getLogger(__name__)

OR_TOKEN = " || "
# Checked in this order so that "!=" is never read as part of "=="
OPERATORS = (" includes ", " != ", " == ")


class ConditionSyntaxError(ValueError):
    """Raised internally when an expression does not match the grammar"""


def _split_clause(clause: str):
    for operator in OPERATORS:
        if operator in clause:
            field, raw_value = clause.split(operator, 1)
            field = field.strip()
            if not field or operator in raw_value:
                raise ConditionSyntaxError(f"Malformed clause: {clause!r}")
            value = raw_value.replace("'", "").strip()
            return field, operator.strip(), value
    raise ConditionSyntaxError(f"No operator in clause: {clause!r}")


def _selected_values(answer: Any) -> Optional[List[Any]]:
    """Values an 'includes' clause can look into, or None for any other shape"""
    if isinstance(answer, dict):
        selected = answer.get("selected")
        return selected if isinstance(selected, list) else None
    if isinstance(answer, list):
        return answer
    return None


def _evaluate_clause(clause: str, answers: Mapping[str, Any]) -> bool:
    field, operator, value = _split_clause(clause)
    answer = answers.get(field)

    if operator == "includes":
        selected = _selected_values(answer)
        return selected is not None and value in selected
    if operator == "==":
        return isinstance(answer, str) and answer == value
    # "!="
    return not (isinstance(answer, str) and answer == value)


def evaluate_conditional(expression: Optional[str], answers: Mapping[str, Any]) -> bool:
    """
    Evaluate a visibility expression against the current answers

    Args:
        expression: Conditional string, or None/empty for "always visible"
        answers: Current answer map

    Returns:
        True when the question should be shown
    """
    if not expression or not expression.strip():
        return True

    try:
        clauses = expression.split(OR_TOKEN)
        if any(not clause.strip() for clause in clauses):
            raise ConditionSyntaxError(f"Empty clause in {expression!r}")
        return any(_evaluate_clause(clause.strip(), answers) for clause in clauses)
    except Exception as e:
        logger.warning(f"Could not evaluate conditional {expression!r}, showing question: {e}")
        return True


def is_visible(question: Question, answers: Mapping[str, Any]) -> bool:
    """Whether a question is part of the visible sequence for these answers"""
    return evaluate_conditional(question.conditional, answers)


def referenced_fields(expression: Optional[str]) -> List[str]:
    """Question ids an expression reads, used for schema integrity warnings"""
    if not expression:
        return []

    fields = []
    for clause in expression.split(OR_TOKEN):
        try:
            field, _, _ = _split_clause(clause.strip())
        except ConditionSyntaxError:
            continue
        fields.append(field)
    return fields


def filter_visible(questions, answers: Dict[str, Any]) -> List[Question]:
    """Order-preserving filter of the questions visible for these answers"""
    return [q for q in questions if is_visible(q, answers)]
