"""Session status API endpoints."""
from fastapi import APIRouter, Path, Query

from ..errors import SessionNotFoundError
from ..models import PreviewResponse, SessionResponse
from ..services import session_manager
from ..services.export_service import PREVIEW_SIZE, export_service
from ..utils.logger import logger

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str = Path(..., description="Session identifier")
) -> SessionResponse:
    """Get the public status of a session.

    Args:
        session_id: Session identifier

    Returns:
        Session status; the download token and owner are never exposed
    """
    logger.info(f"Getting session: {session_id}")
    session = await session_manager.get_session(session_id)

    if not session:
        raise SessionNotFoundError()

    return SessionResponse(
        session_id=session.id,
        status=session.status,
        is_paid=session.is_paid,
        is_trial=session.is_trial,
        pack_id=session.pack_id,
        has_dataset=bool(session.dataset_id),
        total_items=session.total_items,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


@router.get("/{session_id}/preview", response_model=PreviewResponse)
async def preview_session(
    session_id: str = Path(..., description="Session identifier"),
    limit: int = Query(PREVIEW_SIZE, ge=1, le=10, description="Number of items"),
) -> PreviewResponse:
    """Preview the first normalized items of a paid or temporary session.

    Args:
        session_id: Session identifier
        limit: Number of items to return

    Returns:
        Preview items (empty if the provider is unavailable)
    """
    logger.info(f"Previewing session: {session_id}")
    return await export_service.preview(session_id, limit=limit)
