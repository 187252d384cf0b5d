import logging
from typing import Optional

from fastapi import HTTPException, status

from onboarding.config import settings
from onboarding.core.data_loader import load_schema
from onboarding.core.flow_manager import FlowRegistry
from onboarding.core.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    WebhookNotificationDispatcher,
)
from onboarding.core.session_manager import AnswerStore, OnboardingSessionStore
from onboarding.core.submission import OnboardingService
from onboarding.models.schema import OnboardingSchema

logger = logging.getLogger(__name__)

# Global instances
_schema_instance: Optional[OnboardingSchema] = None
_service_instance: Optional[OnboardingService] = None
_flow_registry_instance: Optional[FlowRegistry] = None


def build_dispatcher() -> NotificationDispatcher:
    if settings.NOTIFICATION_BACKEND == "webhook":
        return WebhookNotificationDispatcher(
            department_url=settings.DEPARTMENT_WEBHOOK_URL,
            complete_url=settings.COMPLETE_WEBHOOK_URL,
            api_token=settings.WEBHOOK_API_TOKEN,
            timeout=settings.WEBHOOK_TIMEOUT,
        )
    if settings.NOTIFICATION_BACKEND != "log":
        logger.warning(f"Unknown NOTIFICATION_BACKEND {settings.NOTIFICATION_BACKEND!r}, logging notifications")
    return LoggingNotificationDispatcher()


def get_schema() -> OnboardingSchema:
    """Dependency to get the loaded questionnaire"""
    global _schema_instance
    if _schema_instance is None:
        _schema_instance = load_schema(settings.SCHEMA_FILE)
    return _schema_instance


def get_service() -> OnboardingService:
    """Dependency to get the onboarding service instance"""
    global _service_instance
    if _service_instance is None:
        try:
            _service_instance = OnboardingService(
                get_schema(), OnboardingSessionStore(), AnswerStore(), build_dispatcher()
            )
        except Exception as e:
            logger.error(f"Failed to initialize onboarding service: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Onboarding service initialization failed"
            )
    return _service_instance


def get_flow_registry() -> FlowRegistry:
    """Dependency to get the live flow registry"""
    global _flow_registry_instance
    if _flow_registry_instance is None:
        _flow_registry_instance = FlowRegistry(settings.MAX_FLOWS)
    return _flow_registry_instance
