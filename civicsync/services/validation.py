# File: civicsync/services/validation.py
"""Field validation run before any issue mutation.

Every check appends to a list instead of raising, so a client gets all of
its mistakes back in one response. Callers raise ``ValidationError`` when
the list is non-empty.
"""
import math
from typing import Any, Optional

from civicsync.core.errors import FieldError
from civicsync.models.comment import COMMENT_MAX_LENGTH
from civicsync.models.issue import ISSUE_CATEGORIES, IssuePriority, IssueStatus

TITLE_MIN, TITLE_MAX = 5, 100
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 1000
ADDRESS_MAX = 300
OPTIONAL_LOCATION_MAX = {"city": 100, "state": 100, "zip_code": 20}
LOCATION_FIELD_NAMES = {"city": "location.city", "state": "location.state", "zip_code": "location.zipCode"}
STATUS_NOTE_MAX = 500

MAX_PAGE_SIZE = 100


def _text(value: Any, field: str, lo: int, hi: int, errors: list[FieldError], label: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        errors.append(FieldError(field, f"{label} is required"))
        return None
    if not isinstance(value, str):
        errors.append(FieldError(field, f"{label} must be a string"))
        return None
    value = value.strip()
    if not lo <= len(value) <= hi:
        errors.append(FieldError(field, f"{label} must be between {lo} and {hi} characters"))
        return None
    return value


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def check_coordinates(longitude: Any, latitude: Any, errors: list[FieldError],
                      field: str = "location.coordinates") -> Optional[tuple[float, float]]:
    lng, lat = _to_float(longitude), _to_float(latitude)
    ok = True
    if lng is None or not -180 <= lng <= 180:
        errors.append(FieldError(field, "Longitude must be between -180 and 180"))
        ok = False
    if lat is None or not -90 <= lat <= 90:
        errors.append(FieldError(field, "Latitude must be between -90 and 90"))
        ok = False
    return (lng, lat) if ok else None


def _check_location(location: Any, errors: list[FieldError]) -> dict:
    if not isinstance(location, dict):
        errors.append(FieldError("location", "Location is required"))
        return {}
    clean: dict = {}
    address = location.get("address")
    if address is None or not str(address).strip():
        errors.append(FieldError("location.address", "Location address is required"))
    elif len(str(address).strip()) > ADDRESS_MAX:
        errors.append(FieldError("location.address", f"Location address cannot exceed {ADDRESS_MAX} characters"))
    else:
        clean["address"] = str(address).strip()

    for key, limit in OPTIONAL_LOCATION_MAX.items():
        raw = location.get(key)
        if raw is None or not str(raw).strip():
            clean[key] = None
            continue
        if len(str(raw).strip()) > limit:
            errors.append(FieldError(LOCATION_FIELD_NAMES[key], f"Must be at most {limit} characters"))
        else:
            clean[key] = str(raw).strip()

    point = location.get("coordinates")
    if not isinstance(point, (list, tuple)) or len(point) != 2:
        errors.append(FieldError("location.coordinates", "Coordinates must be an array of [longitude, latitude]"))
    else:
        parsed = check_coordinates(point[0], point[1], errors)
        if parsed:
            clean["lng"], clean["lat"] = parsed
    return clean


def _enum(value: Any, enum_cls, field: str, label: str, errors: list[FieldError]):
    try:
        return enum_cls(value)
    except ValueError:
        errors.append(FieldError(field, f"Invalid {label}"))
        return None


def check_issue(data: dict, partial: bool = False) -> tuple[dict, list[FieldError]]:
    """Validate issue fields and return ``(clean_values, errors)``.

    With ``partial=True`` (updates) only the keys present in ``data`` are
    checked; absent keys are neither required nor returned. The same length
    rules apply to create and update.
    """
    errors: list[FieldError] = []
    clean: dict = {}

    def wanted(key: str) -> bool:
        return not partial or key in data

    if wanted("title"):
        value = _text(data.get("title"), "title", TITLE_MIN, TITLE_MAX, errors, "Title")
        if value is not None:
            clean["title"] = value
    if wanted("description"):
        value = _text(data.get("description"), "description", DESCRIPTION_MIN, DESCRIPTION_MAX, errors, "Description")
        if value is not None:
            clean["description"] = value
    if wanted("category"):
        category = data.get("category")
        if not category:
            errors.append(FieldError("category", "Category is required"))
        elif category not in ISSUE_CATEGORIES:
            errors.append(FieldError("category", "Invalid category"))
        else:
            clean["category"] = category
    if "priority" in data and data["priority"] is not None:
        priority = _enum(data["priority"], IssuePriority, "priority", "priority", errors)
        if priority is not None:
            clean["priority"] = priority
    elif not partial:
        clean["priority"] = IssuePriority.medium
    if partial and data.get("status") is not None:
        status = _enum(data["status"], IssueStatus, "status", "status", errors)
        if status is not None:
            clean["status"] = status
    if partial and data.get("status_note") is not None:
        note = str(data["status_note"]).strip()
        if len(note) > STATUS_NOTE_MAX:
            errors.append(FieldError("statusNote", f"Status note cannot exceed {STATUS_NOTE_MAX} characters"))
        else:
            clean["status_note"] = note or None
    if wanted("location"):
        clean.update(_check_location(data.get("location"), errors))
    return clean, errors


def check_comment(text: Any) -> tuple[Optional[str], list[FieldError]]:
    errors: list[FieldError] = []
    value = _text(text, "text", 1, COMMENT_MAX_LENGTH, errors, "Comment")
    return value, errors


def check_page(page: Any, limit: Any) -> list[FieldError]:
    errors: list[FieldError] = []
    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        errors.append(FieldError("page", "Page must be an integer of at least 1"))
    if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= MAX_PAGE_SIZE:
        errors.append(FieldError("limit", f"Limit must be between 1 and {MAX_PAGE_SIZE}"))
    return errors
