import pytest
from fastapi.testclient import TestClient

from onboarding.api.dependencies import get_flow_registry, get_schema, get_service
from onboarding.core.data_loader import load_schema, parse_schema
from onboarding.core.flow_manager import FlowRegistry
from onboarding.core.notifications import LoggingNotificationDispatcher
from onboarding.core.session_manager import AnswerStore, OnboardingSessionStore
from onboarding.core.submission import OnboardingService
from onboarding.main import create_app


def make_schema_document(departments=None):
    """Small questionnaire: one department, three questions, q2 depends on q1"""
    if departments is None:
        departments = {
            "geral": {
                "name": "General",
                "sections": {
                    "basico": {
                        "title": "Basics",
                        "icon": "Info",
                        "questions": [
                            {"id": "q1", "text": "Question 1", "type": "single-select", "required": True,
                             "options": [{"value": "yes", "label": "Yes"}, {"value": "no", "label": "No"}]},
                            {"id": "q2", "text": "Question 2", "type": "short-text", "required": True,
                             "conditional": "q1 == 'yes'"},
                            {"id": "q3", "text": "Question 3", "type": "short-text"},
                        ],
                    }
                },
            }
        }
    return {"departments": departments}


@pytest.fixture(scope="session")
def schema():
    return load_schema()


@pytest.fixture
def small_schema():
    return parse_schema(make_schema_document())


@pytest.fixture
def dispatcher():
    return LoggingNotificationDispatcher()


@pytest.fixture
def service(schema, dispatcher):
    return OnboardingService(schema, OnboardingSessionStore(), AnswerStore(), dispatcher)


@pytest.fixture
def client(schema, service):
    app = create_app()
    flows = FlowRegistry()
    app.dependency_overrides[get_schema] = lambda: schema
    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_flow_registry] = lambda: flows
    with TestClient(app) as test_client:
        yield test_client
