"""Services for the application."""
from .storage_service import StorageService, storage_service
from .session_manager import SessionManager, session_manager
from .provider_client import ProviderClient
from .access_gate import AccessDecision, AccessGate, AccessRequest, DeferredEffect, DenyReason, GrantBasis
from .normalizer import RecordNormalizer, normalize_record
from .export_renderer import ExportRenderer
from .pack_catalog import PackCatalog
from .export_service import ExportRequest, ExportResult, ExportService, export_service, new_request_id

__all__ = [
    "StorageService",
    "storage_service",
    "SessionManager",
    "session_manager",
    "ProviderClient",
    "AccessDecision",
    "AccessGate",
    "AccessRequest",
    "DeferredEffect",
    "DenyReason",
    "GrantBasis",
    "RecordNormalizer",
    "normalize_record",
    "ExportRenderer",
    "PackCatalog",
    "ExportRequest",
    "ExportResult",
    "ExportService",
    "export_service",
    "new_request_id",
]
