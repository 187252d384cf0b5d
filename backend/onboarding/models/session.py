import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class Step(str, Enum):
    """Steps of the onboarding form"""
    COMPANY_NAME = "company_name"
    DEPARTMENT_SELECTION = "department_selection"
    QUESTIONS = "questions"
    REVIEW = "review"
    SUCCESS = "success"


class DepartmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class NavigationState(BaseModel):
    """In-memory state of one browser session filling one department"""
    step: Step = Step.COMPANY_NAME
    company_name: str = ""
    department_id: Optional[str] = None
    section_index: int = 0
    question_index: int = 0
    answers: Dict[str, Any] = Field(default_factory=dict)
    submitter_name: str = ""
    error: Optional[str] = None
    # Set when the flow was opened from a session link
    session_id: Optional[str] = None


class DepartmentProgress(BaseModel):
    """Completion status of one department inside a session"""
    status: DepartmentStatus = DepartmentStatus.PENDING
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None

    def is_completed(self) -> bool:
        return self.status == DepartmentStatus.COMPLETED


class OnboardingSession(BaseModel):
    """A company's onboarding, shared by every department owner through its link"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    company_name: str
    ceo_email: Optional[str] = None
    slug: str
    access_token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=datetime.now)
    departments: Dict[str, DepartmentProgress] = Field(default_factory=dict)
    merged_dispatched_at: Optional[datetime] = None

    def get_progress(self, department_id: str) -> DepartmentProgress:
        return self.departments.get(department_id) or DepartmentProgress()

    def is_department_completed(self, department_id: str) -> bool:
        return self.get_progress(department_id).is_completed()

    def completed_departments(self) -> List[str]:
        return [d for d, progress in self.departments.items() if progress.is_completed()]

    def all_completed(self, department_ids: List[str]) -> bool:
        return all(self.is_department_completed(d) for d in department_ids)

    def get_status_summary(self, department_ids: List[str]) -> Dict[str, Any]:
        """Per-department status for the session landing page"""
        departments = {}
        for department_id in department_ids:
            progress = self.get_progress(department_id)
            departments[department_id] = {
                "status": progress.status.value,
                "completed_by": progress.completed_by,
                "completed_at": progress.completed_at.isoformat() if progress.completed_at else None,
            }

        completed = sum(1 for d in department_ids if self.is_department_completed(d))
        return {
            "session_id": self.id,
            "company_name": self.company_name,
            "slug": self.slug,
            "departments": departments,
            "completed_count": completed,
            "total_departments": len(department_ids),
            "all_completed": completed == len(department_ids),
        }
