import re
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse
import logging

from onboarding.models.schema import Question, QuestionType

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This field is required"
SELECT_AT_LEAST_ONE_MESSAGE = "Select at least one option"
INVALID_URL_MESSAGE = "Invalid URL"
MIN_LENGTH_MESSAGE = "Minimum {min} characters"


def is_empty_answer(value: Any) -> bool:
    """Unset, null and empty-string answers count as not answered"""
    return value is None or (isinstance(value, str) and value == "")


def validate_url(value: str) -> Tuple[bool, Optional[str]]:
    """
    Check that a value is a well-formed absolute URL

    Args:
        value: Raw URL text

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, INVALID_URL_MESSAGE

    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False, INVALID_URL_MESSAGE

    if not parsed.scheme or not parsed.netloc:
        return False, INVALID_URL_MESSAGE

    return True, None


def validate_min_length(value: Any, minimum: int) -> Tuple[bool, Optional[str]]:
    if len(str(value)) < minimum:
        return False, MIN_LENGTH_MESSAGE.format(min=minimum)
    return True, None


def validate_answer(question: Question, value: Any) -> Tuple[bool, Optional[str]]:
    """
    Run the forward-navigation checks for one question

    Only invoked when the user moves forward; going back never validates.

    Args:
        question: Question being left
        value: Normalized answer currently stored for it

    Returns:
        Tuple of (is_valid, error_message)
    """
    if question.is_info():
        return True, None

    if question.required:
        if is_empty_answer(value):
            return False, REQUIRED_MESSAGE

        if question.type == QuestionType.MULTI_SELECT:
            if isinstance(value, dict):
                selected = value.get("selected") or []
            elif isinstance(value, list):
                selected = value
            else:
                selected = []
            if not selected:
                return False, SELECT_AT_LEAST_ONE_MESSAGE

    if question.type == QuestionType.URL and not is_empty_answer(value):
        is_valid, error = validate_url(value)
        if not is_valid:
            return False, error

    minimum = question.get_min_length()
    if minimum is not None and isinstance(value, (str, int, float)) and not is_empty_answer(value):
        is_valid, error = validate_min_length(value, minimum)
        if not is_valid:
            return False, error

    return True, None


def sanitize_input(input_str: str, max_length: int = 1000, allow_html: bool = False) -> str:

    if not isinstance(input_str, str):
        raise ValueError(f"Input must be string, got {type(input_str)}")

    # Trim whitespace
    sanitized = input_str.strip()

    if len(sanitized) > max_length:
        raise ValueError(f"Input too long: {len(sanitized)} > {max_length}")

    if not allow_html:
        sanitized = re.sub(r'<[^>]+>', '', sanitized)
        sanitized = sanitized.replace('<', '&lt;').replace('>', '&gt;')

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', sanitized)

    return sanitized


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email address format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(email, str):
        return False, "Email must be a string"

    email = email.strip().lower()

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

    if not re.match(pattern, email):
        return False, "Invalid email format"

    if len(email) > 254:  # RFC 5321 limit
        return False, "Email address too long"

    return True, None


class ValidationError(Exception):
    """Custom exception for validation errors"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self):
        if self.errors:
            return f"{super().__str__()}: {'; '.join(self.errors)}"
        return super().__str__()
