"""
Answer normalization and formatting

Every question type has one canonical stored shape and one display
formatter. The same formatter feeds the form, the review screen and the
notification payloads, so a value must render identically everywhere.

Stored shapes:
- short-text / long-text / url: str
- number / currency: int or float, "" when blank
- optional-url: str, or the NOT_AVAILABLE sentinel
- time-of-day: "HH:MM", minutes multiple of 5
- weekly-schedule: {period: {"start", "end", "closed"}} for the three periods
- single-select: the chosen option value
- multi-select: {"selected": [...], "otherText": str}
- info / info-with-link: nothing stored
"""

import copy
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from onboarding.models.schema import Question, QuestionType

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "NAO_POSSUI"
NOT_AVAILABLE_LABEL = "Not available"
OTHER_OPTION = "outro"
SELECTED_KEY = "selected"
OTHER_TEXT_KEY = "otherText"
CURRENCY_MARKER = "R$"
NOT_PROVIDED_LABEL = "<not provided>"
LIST_SEPARATOR = ", "

DEFAULT_TIME = "08:00"
MINUTE_STEP = 5

SCHEDULE_PERIODS: Tuple[str, ...] = ("weekday", "saturday", "sunday_or_holiday")
SCHEDULE_LABELS = {
    "weekday": "Mon-Fri",
    "saturday": "Sat",
    "sunday_or_holiday": "Sun/Holiday",
}
SCHEDULE_SEPARATOR = " | "
DEFAULT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    "weekday": {"start": "08:00", "end": "18:00", "closed": False},
    "saturday": {"start": "08:00", "end": "12:00", "closed": False},
    "sunday_or_holiday": {"start": "08:00", "end": "12:00", "closed": False},
}
# Calendar days each period stands for in the merged payload
PERIOD_DAYS = {
    "weekday": ("monday", "tuesday", "wednesday", "thursday", "friday"),
    "saturday": ("saturday",),
    "sunday_or_holiday": ("sunday", "holiday"),
}

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{1,2})\s*$")
_STEP_PATTERN = re.compile(r"(\d+)\.\s*([^0-9]+?)(?=\s*\d+\.|$)")


class AnswerError(ValueError):
    """An answer operation that the question does not allow"""


# =========================================================================
# Scalars
# =========================================================================

def coerce_numeric(raw: Any) -> Any:
    """Number/currency input: blank becomes "", numeric text becomes a number"""
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return int(raw) if isinstance(raw, float) and raw.is_integer() else raw

    text = str(raw).strip()
    if not text:
        return ""

    try:
        number = float(text.replace(",", ".")) if "," in text and "." not in text else float(text)
    except ValueError:
        logger.debug(f"Keeping non-numeric input as text: {text!r}")
        return text

    return int(number) if number.is_integer() else number


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def toggle_not_available(current: Any) -> str:
    """The 'does not have' control: sentinel on, editable empty string off"""
    return "" if current == NOT_AVAILABLE else NOT_AVAILABLE


# =========================================================================
# Time of day
# =========================================================================

def parse_time(value: Any) -> Tuple[int, int]:
    """Hours and minutes of an "HH:MM" value, 08:00 when unset or unreadable"""
    if isinstance(value, str):
        match = _TIME_PATTERN.match(value)
        if match:
            hours, minutes = int(match.group(1)), int(match.group(2))
            if 0 <= hours <= 23 and 0 <= minutes <= 59:
                return hours, minutes
    return 8, 0


def format_time(hours: int, minutes: int) -> str:
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(value: Any) -> str:
    """Canonical "HH:MM" with minutes snapped down to the 5 minute grid"""
    if value is None or value == "":
        return ""
    hours, minutes = parse_time(value)
    return format_time(hours, minutes - minutes % MINUTE_STEP)


def step_time(value: Any, unit: str, delta: int) -> str:
    """
    Move a time one click up or down

    Hours wrap 23 -> 0 -> 23. Minutes move in steps of 5 and wrap 55 -> 0 -> 55
    without carrying into the hour.

    Args:
        value: Current "HH:MM" (unset starts from 08:00)
        unit: "hours" or "minutes"
        delta: +1 or -1 clicks
    """
    hours, minutes = parse_time(value)
    minutes -= minutes % MINUTE_STEP

    if unit == "hours":
        hours += delta
        if hours < 0:
            hours = 23
        if hours > 23:
            hours = 0
    elif unit == "minutes":
        minutes += delta * MINUTE_STEP
        if minutes < 0:
            minutes = 60 - MINUTE_STEP
        if minutes > 60 - MINUTE_STEP:
            minutes = 0
    else:
        raise AnswerError(f"Unknown time unit: {unit}")

    return format_time(hours, minutes)


# =========================================================================
# Weekly schedule
# =========================================================================

def default_schedule() -> Dict[str, Dict[str, Any]]:
    return copy.deepcopy(DEFAULT_SCHEDULE)


def _valid_period(period: Any) -> bool:
    return (
        isinstance(period, dict)
        and isinstance(period.get("start"), str)
        and isinstance(period.get("end"), str)
    )


def is_weekly_schedule(value: Any) -> bool:
    return isinstance(value, dict) and any(p in value for p in SCHEDULE_PERIODS)


def normalize_weekly_schedule(value: Any) -> Dict[str, Dict[str, Any]]:
    """
    Canonical schedule; anything unreadable falls back to the default

    A non-dict value is replaced by the whole default schedule. Inside a dict,
    each period that is missing or malformed gets its default.
    """
    if not isinstance(value, dict):
        return default_schedule()

    schedule = {}
    for period in SCHEDULE_PERIODS:
        entry = value.get(period)
        if _valid_period(entry):
            schedule[period] = {
                "start": normalize_time(entry["start"]) or DEFAULT_SCHEDULE[period]["start"],
                "end": normalize_time(entry["end"]) or DEFAULT_SCHEDULE[period]["end"],
                "closed": bool(entry.get("closed", False)),
            }
        else:
            schedule[period] = copy.deepcopy(DEFAULT_SCHEDULE[period])
    return schedule


def update_schedule(value: Any, period: str, field: str, field_value: Any) -> Dict[str, Dict[str, Any]]:
    """New schedule with one field of one period changed"""
    if period not in SCHEDULE_PERIODS:
        raise AnswerError(f"Unknown schedule period: {period}")

    schedule = normalize_weekly_schedule(value)
    if field == "closed":
        schedule[period]["closed"] = bool(field_value)
    elif field in ("start", "end"):
        time_value = normalize_time(field_value)
        if not time_value:
            raise AnswerError(f"Invalid time for {period}.{field}: {field_value!r}")
        schedule[period][field] = time_value
    else:
        raise AnswerError(f"Unknown schedule field: {field}")
    return schedule


def format_weekly_schedule(value: Any) -> str:
    schedule = normalize_weekly_schedule(value)
    parts = []
    for period in SCHEDULE_PERIODS:
        entry = schedule[period]
        label = SCHEDULE_LABELS[period]
        if entry["closed"]:
            parts.append(f"{label}: closed")
        else:
            parts.append(f"{label}: {entry['start']} to {entry['end']}")
    return SCHEDULE_SEPARATOR.join(parts)


def expand_weekly_schedule(value: Any) -> Dict[str, Dict[str, Any]]:
    """One entry per calendar day (plus holidays) for downstream consumers"""
    schedule = normalize_weekly_schedule(value)
    days = {}
    for period in SCHEDULE_PERIODS:
        for day in PERIOD_DAYS[period]:
            days[day] = dict(schedule[period])
    return days


# =========================================================================
# Multi select
# =========================================================================

def normalize_multi_select(value: Any) -> Dict[str, Any]:
    """
    Canonical {"selected", "otherText"} object

    Legacy answers stored as a plain list are migrated without losing values.
    """
    if isinstance(value, list):
        selected = value
        other_text = ""
    elif isinstance(value, dict) and SELECTED_KEY in value:
        selected = value.get(SELECTED_KEY) or []
        other_text = value.get(OTHER_TEXT_KEY) or ""
    else:
        selected = []
        other_text = ""

    unique = []
    for item in selected:
        if item not in unique:
            unique.append(item)

    return {SELECTED_KEY: unique, OTHER_TEXT_KEY: other_text}


def toggle_option(value: Any, option: str) -> Dict[str, Any]:
    """Add or remove an option; deselecting "other" clears its text"""
    current = normalize_multi_select(value)
    selected = list(current[SELECTED_KEY])
    other_text = current[OTHER_TEXT_KEY]

    if option in selected:
        selected.remove(option)
        if option == OTHER_OPTION:
            other_text = ""
    else:
        selected.append(option)

    return {SELECTED_KEY: selected, OTHER_TEXT_KEY: other_text}


def set_other_text(value: Any, text: str) -> Dict[str, Any]:
    current = normalize_multi_select(value)
    if OTHER_OPTION not in current[SELECTED_KEY]:
        raise AnswerError("Other text can only be edited while 'other' is selected")
    current[OTHER_TEXT_KEY] = text
    return current


def format_multi_select(question: Optional[Question], value: Any) -> str:
    current = normalize_multi_select(value)
    labels = [
        question.get_option_label(v) if question is not None else v
        for v in current[SELECTED_KEY]
    ]
    if current[OTHER_TEXT_KEY]:
        labels.append(current[OTHER_TEXT_KEY])
    return LIST_SEPARATOR.join(str(label) for label in labels)


# =========================================================================
# Info text
# =========================================================================

def parse_numbered_steps(text: Optional[str]) -> Optional[List[Tuple[str, str]]]:
    """
    Split "1. Do this 2. Do that" into ordered steps

    Returns:
        List of (number, text) pairs, or None when the text is a single paragraph
    """
    if not text:
        return None
    steps = [(m.group(1), m.group(2).strip()) for m in _STEP_PATTERN.finditer(text)]
    return steps if len(steps) > 1 else None


# =========================================================================
# Per-type dispatch
# =========================================================================

def normalize_answer(question: Question, raw: Any) -> Any:
    """
    Canonical stored value for raw input to a question

    Raises:
        AnswerError: for display-only questions and single-select values
            outside the declared options
    """
    qtype = question.type

    if question.is_info():
        raise AnswerError(f"Question {question.id} is display-only")

    if qtype in (QuestionType.NUMBER, QuestionType.CURRENCY):
        return coerce_numeric(raw)

    if qtype == QuestionType.OPTIONAL_URL:
        if raw == NOT_AVAILABLE:
            return NOT_AVAILABLE
        return "" if raw is None else str(raw)

    if qtype == QuestionType.TIME_OF_DAY:
        return normalize_time(raw)

    if qtype == QuestionType.WEEKLY_SCHEDULE:
        return normalize_weekly_schedule(raw)

    if qtype == QuestionType.SINGLE_SELECT:
        if raw is None or raw == "":
            return ""
        if raw not in question.option_values():
            raise AnswerError(f"'{raw}' is not an option of {question.id}")
        return raw

    if qtype == QuestionType.MULTI_SELECT:
        return normalize_multi_select(raw)

    return "" if raw is None else raw


def observe_answer(question: Question, value: Any) -> Tuple[Any, bool]:
    """
    Value to hold for a question the moment it is shown

    Weekly schedules get their default and multi-selects their canonical
    object even before the user touches them.

    Returns:
        Tuple of (value, changed); changed means the caller must store it
    """
    if question.type == QuestionType.WEEKLY_SCHEDULE:
        normalized = normalize_weekly_schedule(value)
    elif question.type == QuestionType.MULTI_SELECT:
        normalized = normalize_multi_select(value)
    else:
        return value, False
    return normalized, normalized != value


def format_answer(question: Question, value: Any) -> str:
    """Human-readable rendering of a stored answer"""
    qtype = question.type

    if question.is_info():
        return question.info_text or question.hint or ""

    if value is None or value == "":
        return ""

    if qtype == QuestionType.CURRENCY:
        return f"{CURRENCY_MARKER} {_format_number(value)}"
    if qtype == QuestionType.NUMBER:
        return _format_number(value)
    if qtype == QuestionType.OPTIONAL_URL and value == NOT_AVAILABLE:
        return NOT_AVAILABLE_LABEL
    if qtype == QuestionType.WEEKLY_SCHEDULE:
        return format_weekly_schedule(value)
    if qtype == QuestionType.SINGLE_SELECT:
        return str(question.get_option_label(value))
    if qtype == QuestionType.MULTI_SELECT:
        return format_multi_select(question, value)
    if isinstance(value, list):
        return LIST_SEPARATOR.join(str(v) for v in value)
    return str(value)


def format_raw_value(value: Any) -> str:
    """Render a stored value when its question is not at hand"""
    if value is None:
        return NOT_PROVIDED_LABEL
    if value == NOT_AVAILABLE:
        return NOT_AVAILABLE_LABEL
    if isinstance(value, dict):
        if isinstance(value.get(SELECTED_KEY), list):
            return format_multi_select(None, value)
        if is_weekly_schedule(value):
            return format_weekly_schedule(value)
    if isinstance(value, list):
        return LIST_SEPARATOR.join(str(v) for v in value)
    if isinstance(value, float):
        return _format_number(value)
    return str(value)


def migrate_answers(questions: List[Question], answers: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of loaded answers with legacy list multi-selects in object form"""
    migrated = dict(answers)
    for question in questions:
        if question.type == QuestionType.MULTI_SELECT and isinstance(migrated.get(question.id), list):
            migrated[question.id] = normalize_multi_select(migrated[question.id])
            logger.debug(f"Migrated legacy multi-select answer for {question.id}")
    return migrated
