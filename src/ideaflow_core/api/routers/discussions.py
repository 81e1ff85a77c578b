"""Discussion API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ... import schemas
from ...workflow import WorkflowEngine
from ..dependencies import get_current_user, get_workflow

logger = logging.getLogger("ideaflow-core.discussions")

router = APIRouter(tags=["discussions"])


@router.get("/", response_model=list[schemas.Discussion])
async def list_discussions(
    idea_id: Optional[int] = Query(None, description="Only threads belonging to this idea"),
    participant_id: Optional[int] = Query(None, description="Only threads this user has posted in"),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """List discussion threads, most recently active first."""
    return await workflow.discussions.list_threads(idea_id=idea_id, participant_id=participant_id)


@router.get("/{discussion_id}", response_model=schemas.Discussion)
async def get_discussion(discussion_id: int, workflow: WorkflowEngine = Depends(get_workflow)):
    return await workflow.discussions.get_thread(discussion_id)


@router.post("/", response_model=schemas.Discussion, status_code=status.HTTP_201_CREATED)
async def open_discussion(
    data: schemas.DiscussionCreate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """
    Open the discussion thread for an idea or task.

    If the owner already has a thread, that thread is returned (and the
    optional **body** is posted to it).
    """
    return await workflow.open_discussion(data, actor)


@router.post("/{discussion_id}/messages", response_model=schemas.Discussion, status_code=status.HTTP_201_CREATED)
async def post_message(
    discussion_id: int,
    data: schemas.MessageCreate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """Post a message. Locked threads answer 423."""
    return await workflow.post_message(discussion_id, data, actor)


@router.post("/{discussion_id}/lock", response_model=schemas.Discussion)
async def set_discussion_lock(
    discussion_id: int,
    data: schemas.DiscussionLockUpdate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """Lock or unlock a thread (moderators only)."""
    return await workflow.set_discussion_lock(discussion_id, data.locked, actor)
