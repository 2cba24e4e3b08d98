import html
import math
import re
from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


PHONE_PATTERN = r"^\+?[0-9][0-9]{7,15}$"
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
NAME_PATTERN = r"^[A-Za-z\s]+$"
SPECIAL_CHARACTERS = re.compile(r"[^A-Za-z0-9]")


def escape_html(value: str) -> str:
    """Escape markup in user-supplied free text."""
    return html.escape(value, quote=False)


def validate_password_strength(value: str) -> str:
    """Require at least 8 characters with upper, lower, digit and special characters."""
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not any(c.isupper() for c in value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in value):
        raise ValueError("Password must contain at least one digit")
    if not SPECIAL_CHARACTERS.search(value):
        raise ValueError("Password must contain at least one special character")
    return value


FreeText = Annotated[str, AfterValidator(escape_html)]
StrongPassword = Annotated[str, AfterValidator(validate_password_strength)]


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class MessageResponse(CamelModel):
    """Generic message response."""
    status: str = "success"
    message: str


class TimestampSchema(CamelModel):
    """Schema for timestamp fields."""

    created_at: datetime
    updated_at: datetime


# ============== Shared value objects ==============

class AddressSchema(CamelModel):
    street: Optional[FreeText] = Field(None, max_length=200)
    city: Optional[FreeText] = Field(None, max_length=100)
    state: Optional[FreeText] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[FreeText] = Field(None, max_length=100)


class AddressView(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class AttachmentSchema(CamelModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=1000)
    file_type: Optional[str] = Field(None, max_length=100)
    uploaded_at: Optional[datetime] = None


class AttachmentView(CamelModel):
    file_name: str
    file_path: str
    file_type: Optional[str] = None
    uploaded_at: datetime


# ============== Pagination ==============

class Pagination:
    """Page/limit query parameters, validated by the route signature."""

    def __init__(self, page: int, limit: int):
        self.page = page
        self.limit = limit

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total else 0


class PageMeta(CamelModel):
    """Fields every paginated list response carries next to its resource key."""

    total: int
    current_page: int
    total_pages: int


def page_fields(pagination: Pagination, total: int) -> dict[str, Any]:
    return {
        "total": total,
        "current_page": pagination.page,
        "total_pages": pagination.total_pages(total),
    }
