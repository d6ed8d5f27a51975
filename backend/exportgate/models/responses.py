"""Response models for API endpoints."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .item import CanonicalItem
from .pack import Pack
from .session import SessionStatus


class ErrorResponse(BaseModel):
    """Machine-readable error body returned on every failed request."""

    code: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Client-safe message")
    request_id: str = Field(..., alias="requestId")
    timestamp: datetime

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "code": "PAYMENT_REQUIRED",
                "message": "Payment required to export data",
                "requestId": "1f2e3d4c",
                "timestamp": "2025-08-19T20:45:00Z",
            }
        }


class SessionResponse(BaseModel):
    """Public view of a session."""

    session_id: str
    status: SessionStatus
    is_paid: bool
    is_trial: bool
    pack_id: Optional[str] = None
    has_dataset: bool
    total_items: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "sess_V1StGXR8Z5jdHi6B",
                "status": "completed",
                "is_paid": True,
                "is_trial": False,
                "pack_id": "pack-decouverte",
                "has_dataset": True,
                "total_items": 48,
                "created_at": "2025-08-19T20:40:00",
                "updated_at": "2025-08-19T20:44:10",
            }
        }


class PreviewResponse(BaseModel):
    """Normalized preview items of a session."""

    session_id: str
    items: List[CanonicalItem] = Field(default_factory=list)
    total_items: Optional[int] = None
    pack_id: str


class PackListResponse(BaseModel):
    """Response model for listing packs."""

    packs: List[Pack]
    default_pack_id: str
