# Reports Feature - Schemas

from datetime import date, datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pydantic import Field

from smartlab.features.reports.models import (
    FindingStatus,
    ReportPriority,
    ReportStatus,
    ReportType,
)
from smartlab.shared.schemas import AttachmentView, CamelModel, FreeText, PageMeta


class FindingSchema(CamelModel):
    test_name: FreeText = Field(..., min_length=1, max_length=200)
    result: FreeText = Field(..., min_length=1, max_length=500)
    normal_range: Optional[FreeText] = Field(None, max_length=200)
    unit: Optional[FreeText] = Field(None, max_length=50)
    status: FindingStatus = FindingStatus.PENDING


# ============== Requests ==============

class CreateReportRequest(CamelModel):
    patient_id: PydanticObjectId
    appointment_id: PydanticObjectId
    report_type: ReportType
    title: FreeText = Field(..., min_length=5, max_length=200)
    description: FreeText = Field(..., min_length=10, max_length=2000)
    findings: List[FindingSchema] = Field(default_factory=list)
    diagnosis: Optional[FreeText] = Field(None, max_length=2000)
    recommendations: List[FreeText] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    priority: ReportPriority = ReportPriority.MEDIUM
    is_confidential: bool = False


class UpdateReportRequest(CamelModel):
    """Content fields only; status moves through the status endpoint."""
    report_type: Optional[ReportType] = None
    title: Optional[FreeText] = Field(None, min_length=5, max_length=200)
    description: Optional[FreeText] = Field(None, min_length=10, max_length=2000)
    findings: Optional[List[FindingSchema]] = None
    diagnosis: Optional[FreeText] = Field(None, max_length=2000)
    recommendations: Optional[List[FreeText]] = None
    follow_up_required: Optional[bool] = None
    follow_up_date: Optional[date] = None
    priority: Optional[ReportPriority] = None
    is_confidential: Optional[bool] = None


class UpdateReportStatusRequest(CamelModel):
    status: ReportStatus
    review_notes: Optional[FreeText] = Field(None, max_length=1000)


# ============== Responses ==============

class FindingView(CamelModel):
    test_name: str
    result: str
    normal_range: Optional[str] = None
    unit: Optional[str] = None
    status: FindingStatus


class ReportResponse(CamelModel):
    id: str
    patient_id: str
    appointment_id: str
    created_by: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    report_type: ReportType
    title: str
    description: str
    findings: List[FindingView] = []
    diagnosis: Optional[str] = None
    recommendations: List[str] = []
    follow_up_required: bool
    follow_up_date: Optional[datetime] = None
    attachments: List[AttachmentView] = []
    status: ReportStatus
    priority: ReportPriority
    is_confidential: bool
    created_at: datetime
    updated_at: datetime


class ReportListResponse(PageMeta):
    reports: List[ReportResponse]


class ReportDownloadResponse(CamelModel):
    message: str
    report_id: str
    file_name: str
