from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True)


class ResponseMetadataOut(_WireModel):
    """Envelope metadata."""

    timestamp: str
    request_id: str = Field(alias="requestId")
    version: str
    processing_time: Optional[int] = Field(default=None, alias="processingTime")
    server: Optional[str] = None
    node_version: Optional[str] = Field(default=None, alias="nodeVersion")


class PaginationLinksOut(BaseModel):
    first: Optional[str] = None
    prev: Optional[str] = None
    next: Optional[str] = None
    last: Optional[str] = None


class PaginationOut(_WireModel):
    """Normalized pagination block."""

    page: int = Field(ge=1)
    limit: int = Field(ge=1, le=100)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=1, alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")
    links: Optional[PaginationLinksOut] = None


class SuccessEnvelope(BaseModel):
    """Success envelope (standard and detailed formats)."""

    success: Literal[True]
    data: Any = None
    metadata: ResponseMetadataOut
    pagination: Optional[PaginationOut] = None


class ErrorBodyOut(_WireModel):
    code: str
    message: str
    details: Any = None
    timestamp: str
    request_id: str = Field(alias="requestId")
    stack: Optional[str] = None
    help_url: Optional[str] = Field(default=None, alias="helpUrl")
    possible_causes: Optional[List[str]] = Field(default=None, alias="possibleCauses")
    violations: Optional[List[str]] = None


class ErrorEnvelope(BaseModel):
    """Error envelope."""

    success: Literal[False]
    error: ErrorBodyOut
    metadata: ResponseMetadataOut


class SanitizeIn(BaseModel):
    """Ad-hoc sanitization request."""

    payload: Any = None
    rules: Optional[List[str]] = None


class SanitizeOut(_WireModel):
    """Sanitization result."""

    sanitized: Any = None
    violations: List[str] = Field(default_factory=list)
    applied_rules: List[str] = Field(default_factory=list, alias="appliedRules")


class RuleOut(BaseModel):
    """A registered rule, as listed by GET /rules."""

    name: str
    description: str = ""
    transforms: bool = False
    validates: bool = False


class HealthOut(BaseModel):
    ok: bool = True
    sanitization_enabled: bool
    normalization_enabled: bool
    rules: List[str] = Field(default_factory=list)
    options: Dict[str, Any] = Field(default_factory=dict)
