"""Pack catalogue endpoint."""
from fastapi import APIRouter

from ..models import PackListResponse
from ..services.export_service import export_service

router = APIRouter(prefix="/api", tags=["packs"])


@router.get("/packs", response_model=PackListResponse)
async def list_packs() -> PackListResponse:
    """List the commercial packs and their row limits."""
    catalog = export_service.catalog
    return PackListResponse(packs=catalog.all(), default_pack_id=catalog.default_pack_id)
