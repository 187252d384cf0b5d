"""
Progress and navigation state machine for one department flow

    company_name -> department_selection -> questions -> review -> success

Positions (section index, question index) always point into the *visible*
question sequence, which is recomputed from the answers on every read. After
each answer change the question index is clamped back into range, and the
first/last flags are derived from the current sequence rather than cached.

Flows opened from a session link (state.session_id set) skip the first two
steps and never navigate back out of the question sequence.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from onboarding.core import answers as answer_ops
from onboarding.core.conditions import filter_visible
from onboarding.core.exceptions import NavigationError, SubmissionError
from onboarding.models.schema import Department, OnboardingSchema, Question, QuestionType, Section
from onboarding.models.session import NavigationState, Step
from onboarding.utils.validation import is_empty_answer, validate_answer

logger = logging.getLogger(__name__)

COMPANY_NAME_REQUIRED = "Company name is required"
DEPARTMENT_REQUIRED = "Select a department"
SUBMITTER_REQUIRED = "Submitter name is required"
SUBMIT_FAILED_MESSAGE = "Submission failed, please try again"

SubmitHandler = Callable[[NavigationState], Any]


class OnboardingNavigator:
    """Owns one NavigationState and applies user actions to it"""

    def __init__(self, schema: OnboardingSchema,
                 state: Optional[NavigationState] = None,
                 submit_handler: Optional[SubmitHandler] = None):
        self.schema = schema
        self.state = state or NavigationState()
        self.submit_handler = submit_handler
        self.last_submission: Any = None

        if self.state.department_id and not schema.has_department(self.state.department_id):
            raise NavigationError(f"Unknown department: {self.state.department_id}")

        if self.state.step == Step.QUESTIONS:
            self._settle()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def is_token_bound(self) -> bool:
        return self.state.session_id is not None

    @property
    def department(self) -> Optional[Department]:
        if not self.state.department_id:
            return None
        return self.schema.get_department(self.state.department_id)

    @property
    def sections(self) -> Tuple[Section, ...]:
        department = self.department
        return department.sections if department else ()

    @property
    def current_section(self) -> Optional[Section]:
        sections = self.sections
        if 0 <= self.state.section_index < len(sections):
            return sections[self.state.section_index]
        return None

    def _visible_in(self, section_index: int) -> List[Question]:
        return filter_visible(self.sections[section_index].questions, self.state.answers)

    @property
    def visible_questions(self) -> List[Question]:
        section = self.current_section
        if section is None:
            return []
        return filter_visible(section.questions, self.state.answers)

    @property
    def current_question(self) -> Optional[Question]:
        visible = self.visible_questions
        if 0 <= self.state.question_index < len(visible):
            return visible[self.state.question_index]
        return None

    @property
    def all_visible_questions(self) -> List[Question]:
        return [q for i in range(len(self.sections)) for q in self._visible_in(i)]

    @property
    def total_questions(self) -> int:
        return len(self.all_visible_questions)

    @property
    def answered_questions(self) -> int:
        count = 0
        for question in self.all_visible_questions:
            if question.is_info() or not is_empty_answer(self.state.answers.get(question.id)):
                count += 1
        return count

    @property
    def progress(self) -> float:
        total = self.total_questions
        if total == 0:
            return 0.0
        return self.answered_questions / total * 100

    @property
    def is_first_question(self) -> bool:
        return self._previous_position() is None

    @property
    def is_last_question(self) -> bool:
        return self._next_position() is None

    def _next_position(self) -> Optional[Tuple[int, int]]:
        section_index = self.state.section_index
        if self.state.question_index + 1 < len(self.visible_questions):
            return section_index, self.state.question_index + 1
        for index in range(section_index + 1, len(self.sections)):
            if self._visible_in(index):
                return index, 0
        return None

    def _previous_position(self) -> Optional[Tuple[int, int]]:
        section_index = self.state.section_index
        if self.state.question_index > 0 and self.visible_questions:
            return section_index, min(self.state.question_index, len(self.visible_questions)) - 1
        for index in range(section_index - 1, -1, -1):
            visible = self._visible_in(index)
            if visible:
                # Recomputed against the current answers, not the last visit
                return index, len(visible) - 1
        return None

    def _first_position(self) -> Tuple[int, int]:
        for index in range(len(self.sections)):
            if self._visible_in(index):
                return index, 0
        return 0, 0

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _clamp(self):
        """Pull the position back into the visible sequence"""
        sections = self.sections
        if not sections:
            self.state.section_index = 0
            self.state.question_index = 0
            return

        self.state.section_index = max(0, min(self.state.section_index, len(sections) - 1))
        visible = self.visible_questions
        if visible:
            self.state.question_index = max(0, min(self.state.question_index, len(visible) - 1))
            return

        # Current section emptied out; move to the nearest section that has questions
        for index in list(range(self.state.section_index + 1, len(sections))) + \
                list(range(self.state.section_index - 1, -1, -1)):
            if self._visible_in(index):
                self.state.section_index = index
                self.state.question_index = 0
                return
        self.state.question_index = 0

    def _observe_current(self):
        """Commit the default value of the question now on screen"""
        question = self.current_question
        if question is None:
            return
        value, changed = answer_ops.observe_answer(question, self.state.answers.get(question.id))
        if changed:
            self.state.answers[question.id] = value

    def _settle(self):
        self._clamp()
        self._observe_current()

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_company_name(self, name: str):
        self.state.company_name = name
        self.state.error = None

    def select_department(self, department_id: str, answers: Optional[Dict[str, Any]] = None):
        """
        Choose the department to fill in

        Args:
            department_id: Department identifier
            answers: Previously saved answers to resume from, if any
        """
        if self.state.step not in (Step.DEPARTMENT_SELECTION, Step.COMPANY_NAME):
            raise NavigationError(f"Cannot change department during step {self.state.step.value}")
        if not self.schema.has_department(department_id):
            raise NavigationError(f"Unknown department: {department_id}")

        self.state.department_id = department_id
        self.state.section_index = 0
        self.state.question_index = 0
        self.state.error = None
        if answers is not None:
            department = self.schema.get_department(department_id)
            self.state.answers = answer_ops.migrate_answers(department.all_questions(), answers)

    def set_submitter_name(self, name: str):
        self.state.submitter_name = name
        self.state.error = None

    def get_question(self, question_id: str) -> Question:
        department = self.department
        question = department.get_question(question_id) if department else None
        if question is None:
            raise answer_ops.AnswerError(f"Unknown question: {question_id}")
        return question

    def _store(self, question: Question, value: Any) -> Any:
        self.state.answers[question.id] = value
        self.state.error = None
        self._settle()
        return value

    def set_answer(self, question_id: str, raw: Any) -> Any:
        """Normalize and store an answer, then re-clamp the position"""
        question = self.get_question(question_id)
        return self._store(question, answer_ops.normalize_answer(question, raw))

    def _require_type(self, question_id: str, *types: QuestionType) -> Question:
        question = self.get_question(question_id)
        if question.type not in types:
            raise answer_ops.AnswerError(
                f"Question {question_id} is {question.type.value}, expected {' or '.join(t.value for t in types)}"
            )
        return question

    def toggle_option(self, question_id: str, option: str) -> Any:
        question = self._require_type(question_id, QuestionType.MULTI_SELECT)
        if option not in question.option_values():
            raise answer_ops.AnswerError(f"'{option}' is not an option of {question_id}")
        value = answer_ops.toggle_option(self.state.answers.get(question_id), option)
        return self._store(question, value)

    def set_other_text(self, question_id: str, text: str) -> Any:
        question = self._require_type(question_id, QuestionType.MULTI_SELECT)
        value = answer_ops.set_other_text(self.state.answers.get(question_id), text)
        return self._store(question, value)

    def toggle_not_available(self, question_id: str) -> Any:
        question = self._require_type(question_id, QuestionType.OPTIONAL_URL)
        value = answer_ops.toggle_not_available(self.state.answers.get(question_id))
        return self._store(question, value)

    def step_time(self, question_id: str, unit: str, delta: int) -> Any:
        question = self._require_type(question_id, QuestionType.TIME_OF_DAY)
        value = answer_ops.step_time(self.state.answers.get(question_id), unit, delta)
        return self._store(question, value)

    def update_schedule(self, question_id: str, period: str, field: str, value: Any) -> Any:
        question = self._require_type(question_id, QuestionType.WEEKLY_SCHEDULE)
        schedule = answer_ops.update_schedule(self.state.answers.get(question_id), period, field, value)
        return self._store(question, schedule)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def next(self) -> bool:
        """
        Move forward one step

        Returns:
            True when the position or step changed, False when blocked
            (the reason is left in state.error)
        """
        step = self.state.step

        if step == Step.COMPANY_NAME:
            if not self.state.company_name.strip():
                self.state.error = COMPANY_NAME_REQUIRED
                return False
            self.state.step = Step.DEPARTMENT_SELECTION
            self.state.error = None
            return True

        if step == Step.DEPARTMENT_SELECTION:
            if not self.state.department_id:
                self.state.error = DEPARTMENT_REQUIRED
                return False
            self.state.section_index, self.state.question_index = self._first_position()
            self.state.step = Step.QUESTIONS
            self.state.error = None
            self._settle()
            return True

        if step == Step.QUESTIONS:
            question = self.current_question
            if question is not None:
                is_valid, error = validate_answer(question, self.state.answers.get(question.id))
                if not is_valid:
                    self.state.error = error
                    return False

            position = self._next_position()
            self.state.error = None
            if position is None:
                self.state.step = Step.REVIEW
                logger.debug(f"Department {self.state.department_id} reached review")
            else:
                self.state.section_index, self.state.question_index = position
                self._observe_current()
            return True

        if step == Step.REVIEW:
            return self.confirm()

        return False

    def previous(self) -> bool:
        """Move back one step; never validates"""
        step = self.state.step

        if step == Step.DEPARTMENT_SELECTION:
            if self.is_token_bound:
                return False
            self.state.step = Step.COMPANY_NAME
            self.state.error = None
            return True

        if step == Step.QUESTIONS:
            position = self._previous_position()
            self.state.error = None
            if position is not None:
                self.state.section_index, self.state.question_index = position
                self._observe_current()
                return True
            if self.is_token_bound:
                return False
            self.state.step = Step.DEPARTMENT_SELECTION
            return True

        if step == Step.REVIEW:
            self.state.step = Step.QUESTIONS
            self.state.error = None
            self._settle()
            return True

        return False

    def confirm(self) -> bool:
        """Submit the reviewed answers and move to success"""
        if self.state.step != Step.REVIEW:
            raise NavigationError(f"Cannot submit during step {self.state.step.value}")

        if not self.state.submitter_name.strip():
            self.state.error = SUBMITTER_REQUIRED
            return False

        if self.submit_handler is not None:
            try:
                self.last_submission = self.submit_handler(self.state)
            except SubmissionError as e:
                logger.error(f"Submit failed for department {self.state.department_id}: {e}")
                self.state.error = SUBMIT_FAILED_MESSAGE
                return False

        self.state.step = Step.SUCCESS
        self.state.error = None
        return True

    def reset(self):
        """Start over at department selection"""
        if self.is_token_bound:
            self.state = NavigationState(
                step=Step.DEPARTMENT_SELECTION,
                company_name=self.state.company_name,
                session_id=self.state.session_id,
            )
        else:
            self.state = NavigationState(step=Step.DEPARTMENT_SELECTION)
        self.last_submission = None

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def summary(self) -> List[Dict[str, Any]]:
        """Review items per section: visible, answerable questions that have an answer"""
        result = []
        for index, section in enumerate(self.sections):
            items = []
            for question in self._visible_in(index):
                if question.is_info():
                    continue
                value = self.state.answers.get(question.id)
                if is_empty_answer(value):
                    continue
                items.append({
                    "id": question.id,
                    "text": question.text,
                    "type": question.type.value,
                    "value": answer_ops.format_answer(question, value),
                })
            if items:
                result.append({
                    "key": section.key,
                    "title": section.title,
                    "icon": section.icon,
                    "items": items,
                })
        return result

    def _question_view(self, question: Question) -> Dict[str, Any]:
        view = question.format_for_display()
        value = self.state.answers.get(question.id)
        view["value"] = value
        view["display_value"] = answer_ops.format_answer(question, value)
        if question.is_info():
            view["steps"] = answer_ops.parse_numbered_steps(question.info_text)
        return view

    def view(self) -> Dict[str, Any]:
        """JSON-ready snapshot of the flow for the form UI"""
        department = self.department
        section = self.current_section
        question = self.current_question if self.state.step == Step.QUESTIONS else None

        return {
            "step": self.state.step.value,
            "company_name": self.state.company_name,
            "session_id": self.state.session_id,
            "department": department.format_for_listing() if department else None,
            "section": {
                "index": self.state.section_index,
                "count": len(self.sections),
                "key": section.key,
                "title": section.title,
                "icon": section.icon,
                "description": section.description,
            } if section is not None else None,
            "question": self._question_view(question) if question else None,
            "question_index": self.state.question_index,
            "visible_in_section": len(self.visible_questions),
            "total_questions": self.total_questions,
            "answered_questions": self.answered_questions,
            "progress": round(self.progress, 1),
            "is_first_question": self.is_first_question,
            "is_last_question": self.is_last_question,
            "submitter_name": self.state.submitter_name,
            "error": self.state.error,
        }
