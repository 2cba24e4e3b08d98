from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TimestampMixin:
    """Mixin for adding timestamp fields to documents."""

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def update_timestamp(self):
        """Update the updated_at timestamp."""
        self.updated_at = datetime.utcnow()


class RevisionMixin:
    """Counter bumped by every conditional update, so writers can detect lost races."""

    revision: int = 0


# ============== Shared value objects ==============

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class Attachment(BaseModel):
    file_name: str
    file_path: str
    file_type: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
