"""
Explicit caching wrapper for async read functions.
"""

import functools
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from .query_optimizer import QueryOptions

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .query_optimizer import QueryOptimizer


def call_key(key_prefix: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    """Cache key for one call; keyword order does not matter."""
    payload = json.dumps(
        {"args": list(args), "kwargs": kwargs},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return f"{key_prefix}:{payload}"


def cacheable(
    optimizer: "QueryOptimizer",
    key_prefix: str,
    ttl_ms: Optional[int] = None,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Wrap an async function so its results are cached through ``optimizer``.

    Usage::

        load_course = cacheable(optimizer, "course", ttl_ms=60_000)(repo.load_course)
        course = await load_course(course_id)
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await optimizer.execute_optimized_query(
                call_key(key_prefix, args, kwargs),
                lambda: func(*args, **kwargs),
                QueryOptions(cache_ttl_ms=ttl_ms),
            )

        return wrapper
    return decorator
