"""
Query optimization package for the query cache service.
"""

from .keys import (
    StudentQueryFilters,
    attendance_key,
    course_list_key,
    stats_key,
    student_key,
    student_list_key,
)
from .query_optimizer import BatchQuery, QueryOptimizer, QueryOptions, derive_student_ttl_ms
from .cacheable import cacheable

__all__ = [
    "StudentQueryFilters",
    "attendance_key",
    "course_list_key",
    "stats_key",
    "student_key",
    "student_list_key",
    "BatchQuery",
    "QueryOptimizer",
    "QueryOptions",
    "derive_student_ttl_ms",
    "cacheable",
]
