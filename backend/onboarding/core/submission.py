"""
Submission service: binds flows to onboarding sessions and performs the
submit side effects

On submit the visible answers are upserted, the department notification is
sent and only then is the department marked completed. When that completion
is the last one, the merged notification is sent exactly once per session.
"""

import logging
import threading
from typing import Any, Dict, Optional

from pydantic import BaseModel

from onboarding.core.answers import migrate_answers
from onboarding.core.conditions import filter_visible
from onboarding.core.exceptions import (
    DepartmentAlreadyCompletedError,
    IncompleteSessionError,
    NotificationError,
    PersistenceError,
    SessionNotFoundError,
    SubmissionError,
)
from onboarding.core.navigator import OnboardingNavigator
from onboarding.core.notifications import (
    NotificationDispatcher,
    build_department_notification,
    build_merged_notification,
)
from onboarding.core.session_manager import AnswerStore, OnboardingSessionStore
from onboarding.models.schema import Department, OnboardingSchema
from onboarding.models.session import NavigationState, OnboardingSession, Step
from onboarding.utils.validation import is_empty_answer

logger = logging.getLogger(__name__)


class SubmitResult(BaseModel):
    """Outcome of a successful department submit"""
    session_id: str
    department: str
    answers_saved: int
    all_completed: bool
    merged_dispatched: bool


def submittable_answers(department: Department, answers: Dict[str, Any]) -> Dict[str, Any]:
    """Answers of the visible, answerable questions of a department"""
    visible = filter_visible(department.all_questions(), answers)
    return {
        q.id: answers[q.id]
        for q in visible
        if not q.is_info() and q.id in answers and not is_empty_answer(answers[q.id])
    }


class OnboardingService:
    def __init__(self, schema: OnboardingSchema, sessions: OnboardingSessionStore,
                 answers: AnswerStore, dispatcher: NotificationDispatcher):
        self.schema = schema
        self.sessions = sessions
        self.answers = answers
        self.dispatcher = dispatcher
        self._merge_lock = threading.Lock()

    def new_navigator(self, state: Optional[NavigationState] = None) -> OnboardingNavigator:
        return OnboardingNavigator(self.schema, state, submit_handler=self.submit_department)

    def _ensure_pending(self, session: OnboardingSession, department_id: str):
        if not self.schema.has_department(department_id):
            raise SessionNotFoundError(f"Unknown department: {department_id}")
        if session.is_department_completed(department_id):
            raise DepartmentAlreadyCompletedError(session.id, department_id)

    def open_flow(self, key: Optional[str] = None,
                  department_id: Optional[str] = None) -> OnboardingNavigator:
        """
        Start a flow, anonymous or from a session link

        Args:
            key: Session slug or access token; None for an anonymous flow
            department_id: Department to jump into (session links only)

        Raises:
            SessionNotFoundError: unknown key or department
            DepartmentAlreadyCompletedError: department (or every department) already done
        """
        if key is None:
            return self.new_navigator()

        if department_id:
            return self.start_department(key, department_id)

        session = self.sessions.find_session(key)
        if session.all_completed(self.schema.department_ids()):
            raise DepartmentAlreadyCompletedError(session.id, "*")

        state = NavigationState(
            step=Step.DEPARTMENT_SELECTION,
            company_name=session.company_name,
            session_id=session.id,
        )
        return self.new_navigator(state)

    def start_department(self, key: str, department_id: str) -> OnboardingNavigator:
        """Load a session and jump straight into a department's questions"""
        session = self.sessions.find_session(key)
        self._ensure_pending(session, department_id)

        department = self.schema.get_department(department_id)
        saved = self.answers.get_answers(session.id, department_id)
        state = NavigationState(
            step=Step.QUESTIONS,
            company_name=session.company_name,
            department_id=department_id,
            answers=migrate_answers(department.all_questions(), saved),
            session_id=session.id,
        )
        logger.info(f"Session {session.id}: resuming {department_id} with {len(saved)} saved answers")
        return self.new_navigator(state)

    def select_department(self, navigator: OnboardingNavigator, department_id: str):
        """Department choice that respects the bound session's progress"""
        if not navigator.is_token_bound:
            navigator.select_department(department_id)
            return

        session = self.sessions.get_session(navigator.state.session_id)
        if session is None:
            raise SessionNotFoundError(f"No onboarding session with id '{navigator.state.session_id}'")
        self._ensure_pending(session, department_id)
        navigator.select_department(department_id, answers=self.answers.get_answers(session.id, department_id))

    def save_answers(self, navigator: OnboardingNavigator) -> int:
        """Autosave the answers of a session-bound flow; anonymous flows keep them in memory"""
        state = navigator.state
        if not state.session_id or not state.department_id:
            return 0
        department = self.schema.get_department(state.department_id)
        return self.answers.replace_answers(
            state.session_id, state.department_id, submittable_answers(department, state.answers)
        )

    def submit_department(self, state: NavigationState) -> SubmitResult:
        """
        Persist and announce a reviewed department

        Raises:
            SubmissionError: storing or notifying failed; nothing is marked completed
            DepartmentAlreadyCompletedError: another owner finished it first
        """
        department = self.schema.get_department(state.department_id)
        submitter = state.submitter_name.strip()
        created = None

        try:
            if state.session_id:
                session = self.sessions.get_session(state.session_id)
                if session is None:
                    raise SessionNotFoundError(f"No onboarding session with id '{state.session_id}'")
                self._ensure_pending(session, department.id)
            else:
                session = created = self.sessions.create_session(state.company_name)

            submitted = submittable_answers(department, state.answers)
            saved = self.answers.replace_answers(session.id, department.id, submitted)

            payload = build_department_notification(
                department, session.company_name, submitter, submitted, session.id
            )
            self.dispatcher.send_department(payload)

        except (PersistenceError, NotificationError, SessionNotFoundError) as e:
            if created is not None:
                self.delete_session(created.id)
                logger.info(f"Discarded session {created.id} after failed anonymous submit")
            raise SubmissionError(f"Could not submit {department.id}: {e}") from e

        session = self.sessions.mark_department_completed(session.id, department.id, submitter)
        all_completed = session.all_completed(self.schema.department_ids())
        merged = self._dispatch_merged_once(session) if all_completed else False

        return SubmitResult(
            session_id=session.id,
            department=department.id,
            answers_saved=saved,
            all_completed=all_completed,
            merged_dispatched=merged,
        )

    def _dispatch_merged_once(self, session: OnboardingSession) -> bool:
        with self._merge_lock:
            if session.merged_dispatched_at is not None:
                return False
            try:
                self._send_merged(session)
            except NotificationError as e:
                logger.error(f"Merged notification failed for session {session.id}: {e}")
                return False
        return True

    def _send_merged(self, session: OnboardingSession):
        payload = build_merged_notification(self.schema, session, self.answers.get_all_answers(session.id))
        self.dispatcher.send_merged(payload)
        self.sessions.mark_merged_dispatched(session.id)
        logger.info(f"Merged notification sent for session {session.id}")

    def resend_merged(self, session_id: str):
        """Send the merged notification again, whether or not it went out before"""
        session = self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"No onboarding session with id '{session_id}'")
        if not session.all_completed(self.schema.department_ids()):
            raise IncompleteSessionError(f"Session {session_id} has pending departments")
        with self._merge_lock:
            self._send_merged(session)

    def delete_session(self, session_id: str) -> bool:
        deleted = self.sessions.delete_session(session_id)
        self.answers.delete_session_answers(session_id)
        return deleted
