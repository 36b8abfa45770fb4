"""
repositories/base.py

Cache-aside read helper shared by the list repositories.

Policy
------
1. Serve the cached list when it is fresh and non-empty (unless forced).
2. Otherwise fetch, replace the cache wholesale and return the result.
3. If the fetch fails, serve whatever is cached, however old.
4. With nothing cached, re-raise: ApiError / ValidationError unchanged,
   anything else wrapped in RepositoryError.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from core.errors import ApiError, RepositoryError, ValidationError
from storage.cache import TypedCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_through(
    cache: TypedCache[T],
    fetch: Callable[[], list[T]],
    *,
    what: str,
    force_refresh: bool = False,
) -> list[T]:
    """
    Return a list of *what* using the cache-aside policy above.

    Args:
        cache:         Box holding the list.
        fetch:         Zero-argument callable hitting the backend.
        what:          Noun used in log lines and wrapped errors.
        force_refresh: Skip the freshness check.
    """
    if not force_refresh and cache.is_fresh():
        cached = cache.read_all()
        if cached:
            logger.debug("Serving %d cached %s", len(cached), what)
            return cached

    try:
        items = fetch()
    except (ApiError, ValidationError) as exc:
        stale = cache.read_all()
        if stale:
            logger.warning("Fetching %s failed (%s); serving %d stale item(s)", what, exc, len(stale))
            return stale
        raise
    except Exception as exc:
        stale = cache.read_all()
        if stale:
            logger.warning("Fetching %s failed (%s); serving %d stale item(s)", what, exc, len(stale))
            return stale
        raise RepositoryError(f"Failed to get {what}: {exc}") from exc

    cache.replace_all(items)
    logger.info("Fetched %d %s from backend", len(items), what)
    return items

