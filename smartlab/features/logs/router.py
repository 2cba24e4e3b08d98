# Activity Logs Feature - Router

from typing import Optional

from fastapi import APIRouter, Depends, Request

from smartlab.core.audit import log_activity
from smartlab.dependencies import get_client_ip
from smartlab.features.auth.dependencies import get_optional_current_user
from smartlab.features.auth.models import User
from smartlab.features.logs.schemas import ActivityLogRequest
from smartlab.shared.schemas import MessageResponse


router = APIRouter(prefix="/logs", tags=["Logs"])


@router.post("/activity", response_model=MessageResponse)
async def log_frontend_activity(
    request: ActivityLogRequest,
    http_request: Request,
    current_user: Optional[User] = Depends(get_optional_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Record a front-end activity event.

    Authentication is optional; anonymous events are kept without an actor.
    """
    details = {
        **request.details,
        "url": request.url,
        "session_id": request.session_id,
        "user_agent": http_request.headers.get("user-agent"),
    }
    log_activity(current_user, request.action, details, ip)
    return MessageResponse(message="Activity logged successfully")
