"""Data models for the application."""
from .item import CanonicalItem, NormalizerConfig
from .pack import Pack
from .requests import ExportFormat
from .responses import ErrorResponse, SessionResponse, PreviewResponse, PackListResponse
from .session import Session, SessionStatus

__all__ = [
    "CanonicalItem",
    "NormalizerConfig",
    "Pack",
    "ExportFormat",
    "ErrorResponse",
    "SessionResponse",
    "PreviewResponse",
    "PackListResponse",
    "Session",
    "SessionStatus",
]
