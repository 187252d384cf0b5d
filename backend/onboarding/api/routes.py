from fastapi import APIRouter, HTTPException, Depends, Response, status
from typing import Any, Dict, List
import logging
import os
import sys
from datetime import datetime

import psutil

from onboarding.api.dependencies import get_flow_registry, get_schema, get_service
from onboarding.api.models import (
    AnswerActionRequest,
    AnswerRequest,
    CompanyNameRequest,
    CreateFlowRequest,
    CreateSessionRequest,
    DepartmentRequest,
    FlowResponse,
    SessionResponse,
    SubmitterRequest,
)
from onboarding.config import settings
from onboarding.core.answers import AnswerError
from onboarding.core.data_loader import validate_schema_integrity
from onboarding.core.exceptions import (
    DepartmentAlreadyCompletedError,
    IncompleteSessionError,
    NavigationError,
    NotificationError,
    PersistenceError,
    SessionNotFoundError,
)
from onboarding.core.flow_manager import FlowRegistry
from onboarding.core.navigator import OnboardingNavigator
from onboarding.core.submission import OnboardingService
from onboarding.models.schema import OnboardingSchema
from onboarding.utils.validation import sanitize_input, validate_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    """Map domain errors to HTTP responses"""
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (DepartmentAlreadyCompletedError, IncompleteSessionError, NavigationError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (AnswerError, PersistenceError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotificationError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


def _flow_response(flow_id: str, navigator: OnboardingNavigator) -> FlowResponse:
    submission = navigator.last_submission
    return FlowResponse(
        flow_id=flow_id,
        flow=navigator.view(),
        submission=submission.model_dump() if submission is not None else None,
    )


def _get_navigator(flow_id: str, flows: FlowRegistry) -> OnboardingNavigator:
    navigator = flows.get(flow_id)
    if navigator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Flow {flow_id} not found")
    return navigator


# HEALTH ENDPOINTS

@router.get("/health")
async def health_check(schema: OnboardingSchema = Depends(get_schema)):
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "Onboarding Questionnaire",
        "components": {
            "departments_loaded": len(schema.departments),
            "questions_loaded": sum(d.question_count() for d in schema.departments),
        }
    }


@router.get("/health/detailed")
async def detailed_health_check(
    schema: OnboardingSchema = Depends(get_schema),
    flows: FlowRegistry = Depends(get_flow_registry),
    service: OnboardingService = Depends(get_service)
):
    """Detailed health check with system metrics"""
    try:
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('/')

        is_valid, errors, warnings = validate_schema_integrity(schema)

        return {
            "status": "healthy" if is_valid else "degraded",
            "timestamp": datetime.now().isoformat(),
            "system": {
                "memory_percent": memory.percent,
                "memory_available_gb": memory.available / (1024**3),
                "disk_percent": disk.percent,
                "disk_free_gb": disk.free / (1024**3),
                "cpu_count": psutil.cpu_count(),
                "python_version": f"{sys.version_info.major}.{sys.version_info.minor}",
                "pid": os.getpid(),
            },
            "data": {
                "departments_count": len(schema.departments),
                "schema_valid": is_valid,
                "validation_errors": errors,
                "validation_warnings": warnings,
            },
            "runtime": {
                "active_flows": len(flows),
                "sessions": len(service.sessions.sessions),
                "notification_backend": settings.NOTIFICATION_BACKEND,
            }
        }

    except Exception as e:
        logger.error(f"Detailed health check failed: {e}")
        return {
            "status": "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "error": str(e)
        }


# DEPARTMENT ENDPOINTS

@router.get("/departments", response_model=List[dict])
async def list_departments(schema: OnboardingSchema = Depends(get_schema)):
    """All departments in declared order"""
    result = [department.format_for_listing() for department in schema.departments]
    logger.info(f"Retrieved {len(result)} departments")
    return result


@router.get("/departments/{department_id}")
async def get_department(department_id: str, schema: OnboardingSchema = Depends(get_schema)):
    """Department with its sections and questions"""
    if not schema.has_department(department_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Department '{department_id}' not found. Available: {schema.department_ids()}"
        )

    department = schema.get_department(department_id)
    result = department.format_for_listing()
    result["sections"] = [
        {
            "key": section.key,
            "title": section.title,
            "icon": section.icon,
            "description": section.description,
            "questions": [
                {**q.format_for_display(), "conditional": q.conditional} for q in section.questions
            ],
        }
        for section in department.sections
    ]
    return result


# SESSION ENDPOINTS (admin)

@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    service: OnboardingService = Depends(get_service)
):
    """Open an onboarding for a company and return its shareable link"""
    try:
        company_name = sanitize_input(request.company_name, max_length=200)
        email = request.ceo_email.strip() if request.ceo_email else None
        if email:
            is_valid, error = validate_email(email)
            if not is_valid:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

        session = service.sessions.create_session(company_name, email)
        return SessionResponse.from_session(session, service.schema.department_ids(), settings.PUBLIC_BASE_URL)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create session: {e}")
        raise _http_error(e)


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(service: OnboardingService = Depends(get_service)):
    """Sessions, newest first"""
    department_ids = service.schema.department_ids()
    return [
        SessionResponse.from_session(s, department_ids, settings.PUBLIC_BASE_URL)
        for s in service.sessions.list_sessions()
    ]


@router.get("/sessions/{key}", response_model=SessionResponse)
async def get_session(key: str, service: OnboardingService = Depends(get_service)):
    """Session status by slug or access token"""
    try:
        session = service.sessions.find_session(key)
        return SessionResponse.from_session(session, service.schema.department_ids(), settings.PUBLIC_BASE_URL)
    except SessionNotFoundError as e:
        raise _http_error(e)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, service: OnboardingService = Depends(get_service)):
    if not service.delete_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/webhook")
def resend_merged_notification(session_id: str, service: OnboardingService = Depends(get_service)):
    """Send the all-departments notification again"""
    try:
        service.resend_merged(session_id)
        session = service.sessions.get_session(session_id)
        return {
            "session_id": session_id,
            "merged_dispatched_at": session.merged_dispatched_at.isoformat(),
        }
    except Exception as e:
        logger.error(f"Failed to resend merged notification for {session_id}: {e}")
        raise _http_error(e)


# FLOW ENDPOINTS (form UI)

@router.post("/flows", response_model=FlowResponse, status_code=status.HTTP_201_CREATED)
async def create_flow(
    request: CreateFlowRequest,
    service: OnboardingService = Depends(get_service),
    flows: FlowRegistry = Depends(get_flow_registry)
):
    """Open an anonymous flow, or a flow bound to a session link"""
    try:
        navigator = service.open_flow(request.session_key, request.department_id)
        flow_id = flows.add(navigator)
        logger.info(f"Started flow {flow_id} (session={navigator.state.session_id})")
        return _flow_response(flow_id, navigator)
    except Exception as e:
        logger.error(f"Failed to start flow: {e}")
        raise _http_error(e)


@router.get("/flows/{flow_id}", response_model=FlowResponse)
async def get_flow(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)):
    return _flow_response(flow_id, _get_navigator(flow_id, flows))


@router.delete("/flows/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_flow(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)):
    """Leaving the form discards its in-memory state"""
    if not flows.remove(flow_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Flow {flow_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/flows/{flow_id}/company", response_model=FlowResponse)
async def set_company_name(
    flow_id: str,
    request: CompanyNameRequest,
    flows: FlowRegistry = Depends(get_flow_registry)
):
    navigator = _get_navigator(flow_id, flows)
    if navigator.is_token_bound:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Company name comes from the session")
    navigator.set_company_name(request.company_name)
    return _flow_response(flow_id, navigator)


@router.put("/flows/{flow_id}/department", response_model=FlowResponse)
async def select_department(
    flow_id: str,
    request: DepartmentRequest,
    service: OnboardingService = Depends(get_service),
    flows: FlowRegistry = Depends(get_flow_registry)
):
    navigator = _get_navigator(flow_id, flows)
    try:
        service.select_department(navigator, request.department_id)
        return _flow_response(flow_id, navigator)
    except Exception as e:
        raise _http_error(e)


@router.put("/flows/{flow_id}/answers/{question_id}", response_model=FlowResponse)
def set_answer(
    flow_id: str,
    question_id: str,
    request: AnswerRequest,
    service: OnboardingService = Depends(get_service),
    flows: FlowRegistry = Depends(get_flow_registry)
):
    """Store raw input for a question; session flows are autosaved"""
    navigator = _get_navigator(flow_id, flows)
    try:
        navigator.set_answer(question_id, request.value)
        service.save_answers(navigator)
        return _flow_response(flow_id, navigator)
    except Exception as e:
        logger.warning(f"Rejected answer for {question_id} in flow {flow_id}: {e}")
        raise _http_error(e)


def _apply_action(navigator: OnboardingNavigator, question_id: str, request: AnswerActionRequest) -> Any:
    if request.action == "toggle_option":
        if request.option is None:
            raise AnswerError("'option' is required")
        return navigator.toggle_option(question_id, request.option)
    if request.action == "other_text":
        return navigator.set_other_text(question_id, request.text or "")
    if request.action == "not_available":
        return navigator.toggle_not_available(question_id)
    if request.action == "time_step":
        if request.unit is None or request.delta == 0:
            raise AnswerError("'unit' and a non-zero 'delta' are required")
        return navigator.step_time(question_id, request.unit, request.delta)
    # schedule
    if request.period is None or request.field is None:
        raise AnswerError("'period' and 'field' are required")
    return navigator.update_schedule(question_id, request.period, request.field, request.value)


@router.post("/flows/{flow_id}/answers/{question_id}/actions", response_model=FlowResponse)
def answer_action(
    flow_id: str,
    question_id: str,
    request: AnswerActionRequest,
    service: OnboardingService = Depends(get_service),
    flows: FlowRegistry = Depends(get_flow_registry)
):
    """Toggle, step or patch an answer in place"""
    navigator = _get_navigator(flow_id, flows)
    try:
        _apply_action(navigator, question_id, request)
        service.save_answers(navigator)
        return _flow_response(flow_id, navigator)
    except Exception as e:
        logger.warning(f"Rejected {request.action} for {question_id} in flow {flow_id}: {e}")
        raise _http_error(e)


@router.post("/flows/{flow_id}/next", response_model=FlowResponse)
def next_step(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)):
    """Advance; validation failures come back in flow.error

    Plain def: confirming from review may call the notification webhooks.
    """
    navigator = _get_navigator(flow_id, flows)
    try:
        moved = navigator.next()
        logger.debug(f"Flow {flow_id} next: moved={moved} step={navigator.state.step.value}")
        return _flow_response(flow_id, navigator)
    except Exception as e:
        logger.error(f"Flow {flow_id} next failed: {e}")
        raise _http_error(e)


@router.post("/flows/{flow_id}/previous", response_model=FlowResponse)
async def previous_step(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)):
    navigator = _get_navigator(flow_id, flows)
    navigator.previous()
    return _flow_response(flow_id, navigator)


@router.post("/flows/{flow_id}/reset", response_model=FlowResponse)
async def reset_flow(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)):
    """Fill in another department"""
    navigator = _get_navigator(flow_id, flows)
    navigator.reset()
    return _flow_response(flow_id, navigator)


@router.put("/flows/{flow_id}/submitter", response_model=FlowResponse)
async def set_submitter_name(
    flow_id: str,
    request: SubmitterRequest,
    flows: FlowRegistry = Depends(get_flow_registry)
):
    navigator = _get_navigator(flow_id, flows)
    navigator.set_submitter_name(request.submitter_name)
    return _flow_response(flow_id, navigator)


@router.get("/flows/{flow_id}/summary")
async def get_summary(flow_id: str, flows: FlowRegistry = Depends(get_flow_registry)) -> Dict[str, Any]:
    """Formatted answers for the review screen"""
    navigator = _get_navigator(flow_id, flows)
    department = navigator.department
    return {
        "flow_id": flow_id,
        "company_name": navigator.state.company_name,
        "department": department.format_for_listing() if department else None,
        "sections": navigator.summary(),
    }
