import copy
import re
import threading
import unicodedata
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from onboarding.core.exceptions import PersistenceError, SessionNotFoundError
from onboarding.models.session import DepartmentProgress, DepartmentStatus, OnboardingSession

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    """ASCII, lowercase, dash separated form of a company name"""
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")
    return slug or "onboarding"


class OnboardingSessionStore:
    """In-memory onboarding sessions, addressable by id, slug or access token"""

    def __init__(self):
        self.sessions: Dict[str, OnboardingSession] = {}
        self._lock = threading.Lock()

    def _unique_slug(self, company_name: str) -> str:
        base = slugify(company_name)
        taken = {s.slug for s in self.sessions.values()}
        slug = base
        suffix = 2
        while slug in taken:
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def create_session(self, company_name: str, email: Optional[str] = None) -> OnboardingSession:
        """Create a session with a human-readable slug and a secret token"""
        company_name = company_name.strip()
        if not company_name:
            raise PersistenceError("Company name is required to create a session")

        with self._lock:
            session = OnboardingSession(
                company_name=company_name,
                ceo_email=email or None,
                slug=self._unique_slug(company_name),
            )
            self.sessions[session.id] = session

        logger.info(f"Created onboarding session {session.id} ({session.slug})")
        return session

    def get_session(self, session_id: str) -> Optional[OnboardingSession]:
        """Retrieve session by ID"""
        return self.sessions.get(session_id)

    def find_session(self, key: str) -> OnboardingSession:
        """
        Look a session up by slug or access token

        Raises:
            SessionNotFoundError: when nothing matches
        """
        with self._lock:
            for session in self.sessions.values():
                if key in (session.slug, session.access_token, session.id):
                    return session
        raise SessionNotFoundError(f"No onboarding session for '{key}'")

    def list_sessions(self) -> List[OnboardingSession]:
        """All sessions, newest first"""
        return sorted(self.sessions.values(), key=lambda s: s.created_at, reverse=True)

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            removed = self.sessions.pop(session_id, None)
        if removed is not None:
            logger.info(f"Deleted onboarding session {session_id}")
        return removed is not None

    def mark_department_completed(self, session_id: str, department_id: str,
                                  completed_by: str) -> OnboardingSession:
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"No onboarding session with id '{session_id}'")
            session.departments[department_id] = DepartmentProgress(
                status=DepartmentStatus.COMPLETED,
                completed_by=completed_by,
                completed_at=datetime.now(),
            )
        logger.info(f"Session {session_id}: department {department_id} completed by {completed_by}")
        return session

    def mark_merged_dispatched(self, session_id: str) -> OnboardingSession:
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"No onboarding session with id '{session_id}'")
            session.merged_dispatched_at = datetime.now()
        return session


class AnswerStore:
    """
    In-memory answers keyed by (session, department, question)

    Upserts overwrite, so re-submitting the same answers is idempotent.
    """

    def __init__(self):
        self.answers: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def upsert_answers(self, session_id: str, department_id: str, answers: Dict[str, Any]) -> int:
        """
        Write answers for one department

        Returns:
            Number of answers written
        """
        if not session_id or not department_id:
            raise PersistenceError("Session and department are required to store answers")

        with self._lock:
            department_answers = self.answers.setdefault(session_id, {}).setdefault(department_id, {})
            department_answers.update(copy.deepcopy(answers))

        logger.debug(f"Session {session_id}: stored {len(answers)} answers for {department_id}")
        return len(answers)

    def replace_answers(self, session_id: str, department_id: str, answers: Dict[str, Any]) -> int:
        """
        Make answers the whole stored set for one department

        Keys missing from answers are dropped, so hidden or cleared
        questions do not come back on resume or in the merged payload.
        """
        if not session_id or not department_id:
            raise PersistenceError("Session and department are required to store answers")

        with self._lock:
            self.answers.setdefault(session_id, {})[department_id] = copy.deepcopy(answers)

        logger.debug(f"Session {session_id}: replaced answers for {department_id} ({len(answers)} kept)")
        return len(answers)

    def get_answers(self, session_id: str, department_id: str) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self.answers.get(session_id, {}).get(department_id, {}))

    def get_all_answers(self, session_id: str) -> Dict[str, Dict[str, Any]]:
        """Answers of every department of a session"""
        with self._lock:
            return copy.deepcopy(self.answers.get(session_id, {}))

    def delete_session_answers(self, session_id: str):
        with self._lock:
            self.answers.pop(session_id, None)
