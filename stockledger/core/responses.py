"""Standardized API response helpers.

Paginated list endpoints return a consistent envelope:
    {"<key>": [...], "total": <int>, "page": <int>, "pageSize": <int>, "totalPages": <int>}

Error responses always carry an ``error`` message and, when available,
structured ``details``.
"""

import math
from typing import Any, Optional

from fastapi.responses import JSONResponse


def paginated_response(
    key: str,
    items: list,
    total: int,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    """Wrap a page of serialized items in the standard envelope.

    Args:
        key: Name of the list field ("items", "docs", ...).
        items: The page of serialized items.
        total: Total count across all pages.
        page: 1-based page number.
        page_size: Page size requested.
    """
    return {
        key: items,
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size) if page_size else 0,
    }


def error_body(error: str, details: Optional[Any] = None) -> dict:
    """Build the JSON body of an error response."""
    body: dict = {"error": error}
    if details is not None:
        body["details"] = details
    return body


def service_error_response(exc) -> JSONResponse:
    """Translate a StockServiceError into its JSON error response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.details),
    )
