from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
from pydantic import BaseModel, Field, field_validator


class QuestionType(str, Enum):
    """Types of questions a department schema can declare"""
    SHORT_TEXT = "short-text"
    LONG_TEXT = "long-text"
    NUMBER = "number"
    CURRENCY = "currency"
    URL = "url"
    OPTIONAL_URL = "optional-url"
    TIME_OF_DAY = "time-of-day"
    WEEKLY_SCHEDULE = "weekly-schedule"
    SINGLE_SELECT = "single-select"
    MULTI_SELECT = "multi-select"
    INFO = "info"
    INFO_WITH_LINK = "info-with-link"


# Tags used by older schema documents
TYPE_ALIASES: Dict[str, str] = {
    "text": QuestionType.SHORT_TEXT.value,
    "textarea": QuestionType.LONG_TEXT.value,
    "url_optional": QuestionType.OPTIONAL_URL.value,
    "time": QuestionType.TIME_OF_DAY.value,
    "horario_semanal": QuestionType.WEEKLY_SCHEDULE.value,
    "select": QuestionType.SINGLE_SELECT.value,
    "checkbox_multiple": QuestionType.MULTI_SELECT.value,
    "info_link": QuestionType.INFO_WITH_LINK.value,
}

INFO_TYPES = frozenset({QuestionType.INFO, QuestionType.INFO_WITH_LINK})
SELECT_TYPES = frozenset({QuestionType.SINGLE_SELECT, QuestionType.MULTI_SELECT})


class QuestionOption(BaseModel):
    """One choice of a select question"""
    value: str
    label: str

    class Config:
        frozen = True


class Question(BaseModel):
    """Individual onboarding question"""
    id: str = Field(..., min_length=1, description="Identifier, unique within a department")
    text: str = Field(..., description="Prompt shown to the user")
    type: QuestionType = Field(..., description="Type tag driving input and formatting")
    required: bool = False
    options: Tuple[QuestionOption, ...] = ()
    validation: Optional[str] = Field(None, description="Validation rule, e.g. 'min:10'")
    placeholder: Optional[str] = None
    hint: Optional[str] = None
    link: Optional[str] = None
    info_text: Optional[str] = Field(None, description="Body of info questions")
    conditional: Optional[str] = Field(None, description="Visibility expression over other answers")

    class Config:
        frozen = True

    @field_validator("type", mode="before")
    @classmethod
    def resolve_type_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return TYPE_ALIASES.get(value, value)
        return value

    @field_validator("options")
    @classmethod
    def check_unique_option_values(cls, options: Tuple[QuestionOption, ...]) -> Tuple[QuestionOption, ...]:
        values = [option.value for option in options]
        duplicates = sorted({v for v in values if values.count(v) > 1})
        if duplicates:
            raise ValueError(f"duplicate option values: {duplicates}")
        return options

    def is_info(self) -> bool:
        return self.type in INFO_TYPES

    def is_select(self) -> bool:
        return self.type in SELECT_TYPES

    def option_values(self) -> List[str]:
        return [option.value for option in self.options]

    def get_option_label(self, value: Any) -> Any:
        """Label of the option with this value, or the raw value when no option matches"""
        for option in self.options:
            if option.value == value:
                return option.label
        return value

    def get_min_length(self) -> Optional[int]:
        """Parse a 'min:N' validation rule"""
        if not self.validation or not self.validation.startswith("min:"):
            return None
        return int(self.validation.split(":", 1)[1])

    def format_for_display(self) -> Dict[str, Any]:
        """Format question for the form UI"""
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "required": self.required,
            "options": [{"value": o.value, "label": o.label} for o in self.options],
            "placeholder": self.placeholder,
            "hint": self.hint,
            "link": self.link,
            "info_text": self.info_text,
        }


class Section(BaseModel):
    """Named, ordered group of questions inside a department"""
    key: str
    title: str
    icon: str = ""
    description: Optional[str] = None
    questions: Tuple[Question, ...] = ()

    class Config:
        frozen = True

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class Department(BaseModel):
    """One of the independent question tracks"""
    id: str
    name: str
    suggested_owner: str = ""
    estimated_time: str = ""
    description: str = ""
    order: int = 0
    sections: Tuple[Section, ...] = ()

    class Config:
        frozen = True

    def all_questions(self) -> List[Question]:
        return [q for section in self.sections for q in section.questions]

    def get_question(self, question_id: str) -> Optional[Question]:
        for section in self.sections:
            question = section.get_question(question_id)
            if question is not None:
                return question
        return None

    def question_count(self) -> int:
        return len(self.all_questions())

    def format_for_listing(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "suggested_owner": self.suggested_owner,
            "estimated_time": self.estimated_time,
            "description": self.description,
            "order": self.order,
            "sections": len(self.sections),
            "questions": self.question_count(),
        }


class OnboardingSchema(BaseModel):
    """Every department of the questionnaire, in declared order"""
    departments: Tuple[Department, ...]
    suggested_order: Tuple[str, ...] = ()
    total_estimated_time: str = ""
    description: str = ""

    class Config:
        frozen = True

    def department_ids(self) -> List[str]:
        return [d.id for d in self.departments]

    def get_department(self, department_id: str) -> Department:
        for department in self.departments:
            if department.id == department_id:
                return department
        raise KeyError(f"Unknown department: {department_id}")

    def has_department(self, department_id: str) -> bool:
        return department_id in self.department_ids()
