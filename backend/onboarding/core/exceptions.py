class OnboardingError(Exception):
    """Base class for onboarding flow errors"""


class NavigationError(OnboardingError):
    """A navigation call that the current step does not allow"""


class SubmissionError(OnboardingError):
    """Persistence or notification failed while submitting a department"""


class SessionNotFoundError(OnboardingError):
    """No onboarding session matches the slug, token or id"""


class DepartmentAlreadyCompletedError(OnboardingError):
    """The department was already submitted for this session"""

    def __init__(self, session_id: str, department_id: str):
        super().__init__(f"Department {department_id} already completed for session {session_id}")
        self.session_id = session_id
        self.department_id = department_id


class PersistenceError(OnboardingError):
    """The answer or session store rejected an operation"""


class NotificationError(OnboardingError):
    """A notification could not be delivered"""


class IncompleteSessionError(OnboardingError):
    """The merged notification needs every department completed"""
