"""Audit trail API endpoints (read-only)."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...services import Services
from ..dependencies import get_services

router = APIRouter(tags=["trail"])


@router.get("/", response_model=schemas.TrailListResponse)
async def list_trail(
    idea_id: Optional[int] = Query(None, description="Only events for this idea"),
    limit: Optional[int] = Query(None, ge=1),
    services: Services = Depends(get_services),
):
    """Trail events, most recent first."""
    items = await services.trail.collect(idea_id=idea_id, limit=limit)
    return schemas.TrailListResponse(items=items, total=len(items))
