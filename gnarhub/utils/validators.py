# gnarhub/utils/validators.py
"""
Input validation for sessions, requests, counter-offers and reviews.

Every failure raises gnarhub ValidationError with the offending field so the
caller can re-prompt for exactly that input.
"""

import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

import pydantic
from pydantic import BaseModel

from gnarhub.constants.booking import (
    MESSAGE_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    RATE_MAX,
    RATE_MIN,
    RATING_MAX,
    RATING_MIN,
    REVIEW_TEXT_MAX_LENGTH,
)
from gnarhub.constants.mountains import MOUNTAINS
from gnarhub.core.exceptions import ValidationError
from gnarhub.schemas.session import TerrainTag
from gnarhub.utils.datetime_utils import today_utc
from gnarhub.utils.sanitize import sanitize_string

ModelT = TypeVar("ModelT", bound=BaseModel)

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def parse_model(model_cls: Type[ModelT], data: Any) -> ModelT:
    """
    Build a pydantic input model from a dict (or pass an instance through).

    Raises:
        ValidationError: for the first field pydantic rejects
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid {field or 'input'}: {first.get('msg')}", field=field) from e


def normalize_time(value: Optional[str], field: str = "start_time") -> str:
    """
    Validate a 24h HH:MM time and return it zero-padded ("9:05" -> "09:05").

    Zero-padding keeps stored times comparable as plain strings.
    """
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValidationError("Invalid time format (use HH:MM)", field=field)
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def validate_time_range(start_time: str, end_time: str) -> Tuple[str, str]:
    start = normalize_time(start_time, "start_time")
    end = normalize_time(end_time, "end_time")
    if end <= start:
        raise ValidationError("End time must be after start time", field="end_time")
    return start, end


def validate_session_date(value: date, today: Optional[date] = None) -> date:
    if value < (today or today_utc()):
        raise ValidationError("Date cannot be in the past", field="date")
    return value


def validate_rate(value: Any, field: str = "rate") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Rate must be a number", field=field)
    if value < RATE_MIN or value > RATE_MAX:
        raise ValidationError(f"Rate must be between ${RATE_MIN} and ${RATE_MAX}", field=field)
    return float(value)


def validate_terrain_tags(
    tags: Optional[Iterable[Any]], required: bool = True, field: str = "terrain_tags"
) -> List[str]:
    """Return the de-duplicated tag values; unknown tags are rejected."""
    result: List[str] = []
    for tag in tags or []:
        try:
            value = TerrainTag(tag).value
        except ValueError:
            raise ValidationError(f"Invalid terrain tag: {tag}", field=field)
        if value not in result:
            result.append(value)

    if required and not result:
        raise ValidationError("Select at least one terrain type", field=field)
    return result


def validate_mountain(mountain_id: str) -> str:
    if mountain_id not in MOUNTAINS:
        raise ValidationError(f"Unknown mountain: {mountain_id}", field="mountain_id")
    return mountain_id


def validate_message(
    message: Optional[str],
    field: str = "message",
    max_length: int = MESSAGE_MAX_LENGTH,
    required: bool = True,
) -> Optional[str]:
    """Sanitize free text and enforce presence and length."""
    cleaned = sanitize_string(message or "")
    if not cleaned:
        if required:
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required", field=field)
        return None
    if len(cleaned) > max_length:
        raise ValidationError(
            f"{field.replace('_', ' ').capitalize()} must be less than {max_length} characters",
            field=field,
        )
    return cleaned


def validate_notes(notes: Optional[str]) -> Optional[str]:
    return validate_message(notes, field="notes", max_length=NOTES_MAX_LENGTH, required=False)


def validate_rating(rating: Any) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number", field="rating")
    if rating < RATING_MIN or rating > RATING_MAX:
        raise ValidationError(
            f"Rating must be between {RATING_MIN} and {RATING_MAX}", field="rating"
        )
    return rating


def validate_review_text(text: Optional[str]) -> str:
    return validate_message(text, field="text", max_length=REVIEW_TEXT_MAX_LENGTH)


def reject_fields(data: Dict[str, Any], forbidden: Iterable[str], reason: str) -> None:
    for name in forbidden:
        if name in data:
            raise ValidationError(f"{name} {reason}", field=name)
