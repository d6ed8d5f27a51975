"""Export download endpoint."""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, Query
from fastapi.responses import Response

from ..config import settings
from ..errors import ExportError, InternalExportError, InvalidRequestError
from ..models import ExportFormat
from ..services.export_service import ExportRequest, export_service, new_request_id
from ..services.response_builder import build_attachment_response
from ..services.tokens import user_id_from_authorization
from ..utils.logger import request_logger

router = APIRouter(prefix="/api", tags=["export"])


@router.get("/export")
async def export_session(
    background_tasks: BackgroundTasks,
    session_id: Optional[str] = Query(None, alias="sessionId", description="Session identifier"),
    session_id_snake: Optional[str] = Query(None, alias="session_id", include_in_schema=False),
    export_format: str = Query("excel", alias="format", description="Export format: excel or csv"),
    token: Optional[str] = Query(None, description="Signed capability token or legacy download token"),
    x_session_token: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    origin: Optional[str] = Header(None),
) -> Response:
    """Download a session's dataset as a spreadsheet or CSV file.

    Args:
        background_tasks: FastAPI background tasks
        session_id: Session identifier
        session_id_snake: Same, snake_case spelling
        export_format: ``excel`` (default) or ``csv``
        token: Capability or legacy token (the X-Session-Token header also works)
        x_session_token: Token header
        authorization: Optional bearer credentials identifying the caller
        origin: Request origin, for the CORS headers

    Returns:
        The file as an attachment
    """
    request_id = new_request_id()
    log = request_logger(request_id)

    sid = (session_id or session_id_snake or "").strip()
    if not sid:
        raise InvalidRequestError("Session ID is required", request_id=request_id)

    try:
        fmt = ExportFormat(export_format.strip().lower())
    except ValueError:
        raise InvalidRequestError(
            f"Unsupported export format: {export_format}. Use 'excel' or 'csv'", request_id=request_id
        )

    try:
        result = await export_service.export(
            ExportRequest(
                session_id=sid,
                export_format=fmt,
                token=token or x_session_token,
                user_id=user_id_from_authorization(authorization, settings.auth_jwt_secret),
                request_id=request_id,
            )
        )
    except ExportError:
        raise
    except Exception as e:
        log.exception(f"Export failed for session {sid}: {e}")
        raise InternalExportError(request_id=request_id)

    if result.cleanup_dataset_id:
        background_tasks.add_task(export_service.cleanup_dataset, result.cleanup_dataset_id, request_id)

    return build_attachment_response(
        result.content,
        result.filename,
        result.media_type,
        origin=origin,
        allowed_origins=settings.allowed_origins,
        default_extension=fmt.extension,
    )
