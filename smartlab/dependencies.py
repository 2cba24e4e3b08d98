"""
Shared dependencies across the application.

This module contains dependency functions that can be used
across different features.
"""

from typing import Optional

from fastapi import Query, Request

from smartlab.shared.schemas import Pagination


def get_pagination(
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
) -> Pagination:
    """Validated page/limit query parameters."""
    return Pagination(page=page, limit=limit)


def get_client_ip(request: Request) -> Optional[str]:
    """Source address of the request, as seen by the server."""
    return request.client.host if request.client else None
