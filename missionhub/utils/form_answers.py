# missionhub/utils/form_answers.py
"""Server-side coercion of attendance answers against a form definition."""
import re
from datetime import date, time, datetime
from typing import Any, Dict, List, Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from ..core.exceptions import InvalidInputError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{6,20}$")
TRUE_VALUES = {"true", "yes", "y", "1", "on"}
FALSE_VALUES = {"false", "no", "n", "0", "off"}

# Bounds used when a rating/scale question declares none
DEFAULT_BOUNDS = {
    "rating": (1, 5),
    "scale": (1, 10),
}

_url_adapter = TypeAdapter(AnyHttpUrl)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _invalid(question: Dict[str, Any], reason: str) -> InvalidInputError:
    label = question.get("label") or question["key"]
    return InvalidInputError(f"Invalid answer for '{label}': {reason}", field=question["key"])


def _to_number(question: Dict[str, Any], value: Any):
    if isinstance(value, bool):
        raise _invalid(question, "expected a number")
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            raise _invalid(question, "expected a number")
    if isinstance(number, float) and number.is_integer():
        number = int(number)
    return number


def _check_bounds(question: Dict[str, Any], number, default: Optional[tuple] = None):
    validation = question.get("validation") or {}
    low = validation.get("min")
    high = validation.get("max")
    if default:
        low = default[0] if low is None else low
        high = default[1] if high is None else high
    if low is not None and number < low:
        raise _invalid(question, f"must be at least {low}")
    if high is not None and number > high:
        raise _invalid(question, f"must be at most {high}")
    return number


def _check_text(question: Dict[str, Any], text: str) -> str:
    validation = question.get("validation") or {}
    if validation.get("min_length") is not None and len(text) < validation["min_length"]:
        raise _invalid(question, f"must be at least {validation['min_length']} characters")
    if validation.get("max_length") is not None and len(text) > validation["max_length"]:
        raise _invalid(question, f"must be at most {validation['max_length']} characters")
    if validation.get("pattern"):
        try:
            matched = re.fullmatch(validation["pattern"], text)
        except re.error:
            raise _invalid(question, "the form declares an invalid pattern")
        if not matched:
            raise _invalid(question, "does not match the expected format")
    return text


def _to_boolean(question: Dict[str, Any], value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise _invalid(question, "expected true or false")


def _check_options(question: Dict[str, Any], values: List[str]) -> List[str]:
    options = question.get("options")
    if options:
        unknown = [value for value in values if value not in options]
        if unknown:
            raise _invalid(question, f"unknown option(s) {', '.join(unknown)}")
    return values


def coerce_value(question: Dict[str, Any], value: Any) -> Any:
    question_type = question.get("type", "text")

    if question_type == "number":
        return _check_bounds(question, _to_number(question, value))

    if question_type in DEFAULT_BOUNDS:
        number = _to_number(question, value)
        return _check_bounds(question, number, DEFAULT_BOUNDS[question_type])

    if question_type == "boolean":
        return _to_boolean(question, value)

    if question_type == "single-select":
        if isinstance(value, (list, dict)):
            raise _invalid(question, "expected a single option")
        return _check_options(question, [str(value)])[0]

    if question_type == "multi-select":
        values = value if isinstance(value, list) else [value]
        return _check_options(question, [str(v) for v in values])

    if question_type in ("date", "time", "datetime"):
        parser = {"date": date, "time": time, "datetime": datetime}[question_type]
        if isinstance(value, parser):
            return value.isoformat()
        try:
            return parser.fromisoformat(str(value).strip()).isoformat()
        except ValueError:
            raise _invalid(question, f"expected an ISO {question_type}")

    if isinstance(value, (list, dict)):
        raise _invalid(question, "expected text")
    text = _check_text(question, str(value).strip())

    if question_type == "email" and not EMAIL_PATTERN.match(text):
        raise _invalid(question, "expected an email address")
    if question_type == "phone" and not PHONE_PATTERN.match(text):
        raise _invalid(question, "expected a phone number")
    if question_type == "url":
        try:
            _url_adapter.validate_python(text)
        except ValidationError:
            raise _invalid(question, "expected an http(s) URL")
    return text


def coerce_answers(questions: List[Dict[str, Any]], answers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Coerce answers to the declared question types.

    Required questions must be answered whenever answers are submitted; a
    mark without answers stores none. Keys that are not part of the form
    are dropped.
    """
    if answers is None:
        return {}
    coerced = {}
    for question in sorted(questions, key=lambda q: q.get("order", 0)):
        value = answers.get(question["key"])
        if _is_blank(value):
            if question.get("required"):
                label = question.get("label") or question["key"]
                raise InvalidInputError(f"Missing required answer: {label}", field=question["key"])
            continue
        coerced[question["key"]] = coerce_value(question, value)
    return coerced
