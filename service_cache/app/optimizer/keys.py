"""
Deterministic cache-key factories.

Keys are built from a fixed, declared field order so that two logically
equal filter sets always map to the same string, whatever order the caller
assembled them in. These strings are part of the public contract.
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ALL = "all"
NO_SEARCH = "nosearch"

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_ORDER = "desc"


class StudentQueryFilters(BaseModel):
    """Filters for student listings. Accepts snake_case or camelCase input."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    course: Optional[str] = None
    admission_year: Optional[int] = Field(default=None, alias="admissionYear")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    search: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    sort_order: Optional[Literal["asc", "desc"]] = Field(default=None, alias="sortOrder")
    include_relations: bool = Field(default=False, alias="includeRelations")
    real_time: bool = Field(default=False, alias="realTime")


StudentFilterInput = Union[StudentQueryFilters, Mapping[str, Any]]


def coerce_student_filters(filters: StudentFilterInput) -> StudentQueryFilters:
    if isinstance(filters, StudentQueryFilters):
        return filters
    return StudentQueryFilters.model_validate(dict(filters))


def student_list_key(filters: StudentFilterInput) -> str:
    """Key for a filtered, paginated student listing."""
    f = coerce_student_filters(filters)
    parts = [
        "students",
        f.course or ALL,
        f.admission_year or ALL,
        ALL if f.is_active is None else str(f.is_active).lower(),
        f.search or NO_SEARCH,
        f.page or DEFAULT_PAGE,
        f.limit or DEFAULT_LIMIT,
        f.sort_by or DEFAULT_SORT_BY,
        f.sort_order or DEFAULT_SORT_ORDER,
    ]
    return ":".join(str(part) for part in parts)


def student_key(student_id: Any) -> str:
    """Key for a single student record."""
    return f"student:{student_id}"


def course_list_key(filters: Optional[Mapping[str, Any]] = None) -> str:
    """Key for a course listing; filter order does not matter."""
    payload = json.dumps(dict(filters or {}), sort_keys=True, separators=(",", ":"), default=str)
    return f"courses:{payload}"


def iso_instant(value: Union[date, datetime]) -> str:
    """UTC instant with millisecond precision, e.g. ``2024-01-01T00:00:00.000Z``.

    Plain dates are midnight UTC; naive datetimes are taken as UTC.
    """
    if isinstance(value, datetime):
        instant = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    else:
        instant = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def attendance_key(
    student_id: Any,
    date_from: Optional[Union[date, datetime]] = None,
    date_to: Optional[Union[date, datetime]] = None,
) -> str:
    """Key for a student's attendance, optionally bounded by a date range."""
    key = f"attendance:{student_id}"
    if date_from is not None and date_to is not None:
        return f"{key}:{iso_instant(date_from)}:{iso_instant(date_to)}"
    return key


def stats_key(stat_type: str, period: Optional[str] = None) -> str:
    """Key for aggregated statistics."""
    return f"stats:{stat_type}:{period}" if period else f"stats:{stat_type}"
