from __future__ import annotations

import math
from typing import Any, Dict


# PUBLIC_INTERFACE
def pagination_envelope(page: int, limit: int, total: int) -> Dict[str, Any]:
    """
    Build the standard page-based pagination block for list endpoints.

    Args:
        page: The 1-based page that was requested.
        limit: The page size used for the query.
        total: Total number of items that match the query (ignoring pagination).

    Returns:
        Dict with keys: page, limit, total, total_pages, has_next, has_prev.
    """
    total = int(max(total, 0))
    limit = int(max(limit, 1))
    total_pages = math.ceil(total / limit)
    return {
        "page": int(page),
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))
