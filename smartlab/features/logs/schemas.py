# Activity Logs Feature - Schemas

from typing import Any, Dict, Optional

from pydantic import Field

from smartlab.shared.schemas import CamelModel


class ActivityLogRequest(CamelModel):
    """A front-end event worth keeping in the audit trail."""
    action: str = Field(..., min_length=1, max_length=100)
    details: Dict[str, Any] = Field(default_factory=dict)
    url: Optional[str] = Field(None, max_length=2000)
    session_id: Optional[str] = Field(None, max_length=100)
