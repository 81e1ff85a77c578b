"""Notification feed for clients that poll."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...services import Services
from ..dependencies import get_services

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=list[schemas.Notification])
async def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=50),
    services: Services = Depends(get_services),
):
    """Recent notifications, most recent first."""
    return services.notifications.recent(limit)
