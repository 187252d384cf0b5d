from abc import ABC, abstractmethod
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from onboarding.core.answers import expand_weekly_schedule, format_answer, format_raw_value, is_weekly_schedule
from onboarding.core.exceptions import NotificationError
from onboarding.models.schema import Department, OnboardingSchema
from onboarding.models.session import OnboardingSession

logger = logging.getLogger(__name__)


class AnswerRow(BaseModel):
    """One formatted line of a department notification"""
    question_id: str
    question: str
    value: str


class DepartmentNotification(BaseModel):
    """Sent once per completed department"""
    company_name: str
    department: str
    department_name: str
    submitter_name: str
    answers: Dict[str, Any]
    session_id: Optional[str] = None
    rows: List[AnswerRow] = Field(default_factory=list)
    sent_at: datetime = Field(default_factory=datetime.now)


class MergedNotification(BaseModel):
    """Sent once per session, after every department is completed"""
    session: Dict[str, Any]
    answers: Dict[str, Dict[str, Any]]


def build_department_notification(department: Department, company_name: str, submitter_name: str,
                                  answers: Dict[str, Any],
                                  session_id: Optional[str] = None) -> DepartmentNotification:
    """
    Department payload with formatted rows in schema order

    Answers whose question is no longer in the schema are kept and rendered
    without their question.
    """
    rows = []
    listed = set()
    for question in department.all_questions():
        if question.is_info() or question.id not in answers:
            continue
        rows.append(AnswerRow(
            question_id=question.id,
            question=question.text,
            value=format_answer(question, answers[question.id]),
        ))
        listed.add(question.id)

    for question_id, value in answers.items():
        if question_id not in listed:
            rows.append(AnswerRow(question_id=question_id, question=question_id,
                                  value=format_raw_value(value)))

    return DepartmentNotification(
        company_name=company_name,
        department=department.id,
        department_name=department.name,
        submitter_name=submitter_name,
        answers=answers,
        session_id=session_id,
        rows=rows,
    )


def build_merged_notification(schema: OnboardingSchema, session: OnboardingSession,
                              all_answers: Dict[str, Dict[str, Any]]) -> MergedNotification:
    """Full answer set grouped by department, schedules expanded to one entry per day"""
    grouped = {}
    for department_id in schema.department_ids():
        department_answers = {}
        for question_id, value in all_answers.get(department_id, {}).items():
            department_answers[question_id] = expand_weekly_schedule(value) if is_weekly_schedule(value) else value
        grouped[department_id] = department_answers

    progress = {d: session.get_progress(d) for d in schema.department_ids()}
    return MergedNotification(
        session={
            "id": session.id,
            "company_name": session.company_name,
            "ceo_email": session.ceo_email,
            "access_token": session.access_token,
            "created_at": session.created_at.isoformat(),
            "submitters": {d: p.completed_by for d, p in progress.items()},
            "completed_at": {
                d: p.completed_at.isoformat() if p.completed_at else None for d, p in progress.items()
            },
        },
        answers=grouped,
    )


class NotificationDispatcher(ABC):
    """Delivery contract for the two onboarding notifications"""

    @abstractmethod
    def send_department(self, payload: DepartmentNotification):
        pass

    @abstractmethod
    def send_merged(self, payload: MergedNotification):
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log and keeps them for inspection"""

    def __init__(self):
        self.department_notifications: List[DepartmentNotification] = []
        self.merged_notifications: List[MergedNotification] = []

    def send_department(self, payload: DepartmentNotification):
        self.department_notifications.append(payload)
        logger.info(
            f"Department {payload.department} completed for {payload.company_name} "
            f"by {payload.submitter_name} ({len(payload.rows)} answers)"
        )
        for row in payload.rows:
            logger.debug(f"  {row.question}: {row.value}")

    def send_merged(self, payload: MergedNotification):
        self.merged_notifications.append(payload)
        logger.info(f"All departments completed for session {payload.session['id']}")
        logger.debug(json.dumps(payload.model_dump(mode="json"), indent=2, ensure_ascii=False))


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs notifications as JSON to configured URLs"""

    def __init__(self, department_url: Optional[str] = None, complete_url: Optional[str] = None,
                 api_token: Optional[str] = None, timeout: float = 10.0):
        self.department_url = department_url
        self.complete_url = complete_url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"

    def _post(self, url: Optional[str], payload: BaseModel):
        if not url:
            logger.warning(f"No webhook URL configured for {type(payload).__name__}, skipping")
            return

        try:
            resp = requests.post(url, headers=self.headers,
                                 json=payload.model_dump(mode="json"), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Webhook {url} failed: {e}") from e

        logger.info(f"Webhook {url} accepted {type(payload).__name__} ({resp.status_code})")

    def send_department(self, payload: DepartmentNotification):
        self._post(self.department_url, payload)

    def send_merged(self, payload: MergedNotification):
        self._post(self.complete_url, payload)
