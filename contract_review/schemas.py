"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

RiskLevel = Literal["high", "medium", "low"]


# Analysis result (wire contract with the model and with callers)
class RiskFinding(BaseModel):
    """One risk reported by the analysis engine."""
    risk_type: str = Field(alias="riskType")
    risk_level: RiskLevel = Field(alias="riskLevel")
    section_title: Optional[str] = Field(default=None, alias="sectionTitle")
    original_text: Optional[str] = Field(default=None, alias="originalText")
    suggested_text: Optional[str] = Field(default=None, alias="suggestedText")
    reason: Optional[str] = None
    legal_basis: Optional[str] = Field(default=None, alias="legalBasis")

    class Config:
        populate_by_name = True


class ChecklistItem(BaseModel):
    """Compliance checklist entry."""
    item: str
    checked: bool
    note: Optional[str] = None


class AnalysisResult(BaseModel):
    """Structured risk assessment of one contract."""
    risk_level: RiskLevel = Field(alias="riskLevel")
    overall_score: int = Field(alias="overallScore", ge=0, le=100)
    summary: str = ""
    risks: List[RiskFinding] = Field(default_factory=list)
    checklist: List[ChecklistItem] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class ArticleInput(BaseModel):
    """One numbered article of a contract, by title."""
    number: str
    title: str


class ArticleOrderSuggestion(BaseModel):
    """Proposed article order with one reason per placement."""
    suggested_order: List[str] = Field(alias="suggestedOrder")
    reasoning: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


# Contract Schemas
class UploadResponse(BaseModel):
    """Response for a contract upload."""
    id: str
    file_name: str
    status: str


class ContractSummary(BaseModel):
    """Contract row in listings."""
    id: str
    file_name: str
    contract_title: Optional[str] = None
    contract_type: Optional[str] = None
    counterparty: Optional[str] = None
    status: str
    current_version: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RiskItemResponse(BaseModel):
    """Persisted risk item."""
    id: str
    risk_type: str
    risk_level: str
    section_title: Optional[str] = None
    original_text: Optional[str] = None
    suggested_text: Optional[str] = None
    reason: Optional[str] = None
    legal_basis: Optional[str] = None

    class Config:
        from_attributes = True


class ReviewResponse(BaseModel):
    """Persisted review with its risk items."""
    id: str
    risk_level: str
    overall_score: int
    summary: Optional[str] = None
    checklist: Optional[List[ChecklistItem]] = Field(default_factory=list)
    ai_model: Optional[str] = None
    analysis_duration: Optional[float] = None
    risk_items: List[RiskItemResponse] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContractDetail(ContractSummary):
    """Full contract record, with review and a signed download URL."""
    file_path: str
    file_size: int
    file_type: Optional[str] = None
    our_position: Optional[str] = None
    edited_content: Optional[str] = None
    expiry_date: Optional[date] = None
    tags: Optional[List[str]] = Field(default_factory=list)
    folder_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    review: Optional[ReviewResponse] = None
    file_url: Optional[str] = None


class ContractUpdate(BaseModel):
    """Partial update of a contract; edited_content creates a new version."""
    contract_title: Optional[str] = None
    contract_type: Optional[str] = None
    counterparty: Optional[str] = None
    our_position: Optional[Literal["party_a", "party_b"]] = None
    expiry_date: Optional[date] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[str] = None
    edited_content: Optional[str] = None
    changes_summary: Optional[str] = Field(default=None, max_length=500)


class ContractUpdateResponse(BaseModel):
    success: bool = True
    current_version: int
    version_created: bool = False


# Extract Schemas
class ExtractResponse(BaseModel):
    """Extracted text of the original upload."""
    success: bool
    text: str = ""
    html: str = ""
    num_pages: int = 0
    info: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


# Analysis Schemas
class AnalyzeResponse(BaseModel):
    """Outcome of an analysis run."""
    review_id: str
    risk_level: str
    overall_score: int
    summary: str
    risks_count: int
    duration: float
    ai_model: str
    is_mock_analysis: bool


class SuggestOrderRequest(BaseModel):
    articles: List[ArticleInput] = Field(default_factory=list)


class SuggestOrderResponse(BaseModel):
    """Suggested article order for a contract."""
    success: bool = True
    suggested_order: List[str]
    reasoning: List[str]
    is_mock_analysis: bool


# Version Schemas
class VersionSummary(BaseModel):
    """Version metadata without content."""
    id: str
    version_number: int
    created_by: str
    changes_summary: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VersionDetail(VersionSummary):
    content: str


class VersionListResponse(BaseModel):
    versions: List[VersionSummary]
    current_version: int


class RestoreResponse(BaseModel):
    success: bool = True
    new_version: int


# Audit Schemas
class AuditLogResponse(BaseModel):
    """Audit entry as shown to admins."""
    id: int
    user_id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Error Schemas
class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int


# Health/Metrics Schemas
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    timestamp: datetime


class MetricsResponse(BaseModel):
    """Metrics response."""
    total_contracts: int
    total_reviews: int
    total_risk_items: int
    total_versions: int
    uptime_seconds: float
