from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from onboarding.models.session import OnboardingSession

# API Request Models


class CreateSessionRequest(BaseModel):
    """Admin request to open an onboarding for a company"""
    company_name: str = Field(..., min_length=1, max_length=200, description="Company display name")
    ceo_email: Optional[str] = Field(default=None, description="Optional contact email")


class CreateFlowRequest(BaseModel):
    """Request to open a form flow"""
    session_key: Optional[str] = Field(
        default=None,
        description="Session slug or access token; omitted for an anonymous flow"
    )
    department_id: Optional[str] = Field(
        default=None,
        description="Department to jump straight into (session flows only)"
    )


class CompanyNameRequest(BaseModel):
    company_name: str = Field(..., max_length=200)


class DepartmentRequest(BaseModel):
    department_id: str


class AnswerRequest(BaseModel):
    """Raw input for one question; normalized server-side"""
    value: Any = None


class AnswerActionRequest(BaseModel):
    """
    Incremental edits that depend on the stored value

    - toggle_option: option
    - other_text: text
    - not_available: no fields
    - time_step: unit ("hours" | "minutes"), delta
    - schedule: period, field ("start" | "end" | "closed"), value
    """
    action: Literal["toggle_option", "other_text", "not_available", "time_step", "schedule"]
    option: Optional[str] = None
    text: Optional[str] = None
    unit: Optional[Literal["hours", "minutes"]] = None
    delta: int = Field(default=1, ge=-1, le=1)
    period: Optional[str] = None
    field: Optional[str] = None
    value: Any = None


class SubmitterRequest(BaseModel):
    submitter_name: str = Field(..., max_length=200)


# API Response Models


class SessionResponse(BaseModel):
    """Session as shown on the admin page"""
    id: str
    company_name: str
    ceo_email: Optional[str] = None
    slug: str
    access_token: str
    link: str
    created_at: datetime
    merged_dispatched_at: Optional[datetime] = None
    departments: Dict[str, Dict[str, Any]]
    completed_count: int
    total_departments: int
    all_completed: bool

    @classmethod
    def from_session(cls, session: OnboardingSession, department_ids: List[str],
                     base_url: str) -> "SessionResponse":
        summary = session.get_status_summary(department_ids)
        return cls(
            id=session.id,
            company_name=session.company_name,
            ceo_email=session.ceo_email,
            slug=session.slug,
            access_token=session.access_token,
            link=f"{base_url.rstrip('/')}/onboarding/{session.slug}",
            created_at=session.created_at,
            merged_dispatched_at=session.merged_dispatched_at,
            departments=summary["departments"],
            completed_count=summary["completed_count"],
            total_departments=summary["total_departments"],
            all_completed=summary["all_completed"],
        )


class FlowResponse(BaseModel):
    """Flow id plus the navigator snapshot"""
    flow_id: str
    flow: Dict[str, Any]
    submission: Optional[Dict[str, Any]] = None
