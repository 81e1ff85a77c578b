"""Approval queue API endpoints: review decisions and undo."""
import logging

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...approvals import ApprovalCoordinator
from ...workflow import WorkflowEngine
from ..dependencies import get_coordinator, get_current_user, get_workflow

logger = logging.getLogger("ideaflow-core.approvals")

router = APIRouter(tags=["approvals"])


@router.get("/pending", response_model=schemas.PendingIdeasResponse)
async def list_pending(
    refresh: bool = Query(False, description="Reload the queue from the store first"),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Ideas awaiting review, oldest first (an undone decision comes back at the top)."""
    if refresh:
        await coordinator.refresh_pending()
    items = coordinator.pending
    return schemas.PendingIdeasResponse(items=items, total=len(items), busy=coordinator.busy)


async def _review(
    idea_id: int,
    action: schemas.ApprovalAction,
    actor: schemas.Actor,
    workflow: WorkflowEngine,
    coordinator: ApprovalCoordinator,
) -> schemas.ApprovalResponse:
    idea = await workflow.get_idea(idea_id)
    return await coordinator.handle_approval_action(idea, action, actor)


@router.post("/{idea_id}/approve", response_model=schemas.ApprovalResponse)
async def approve_idea(
    idea_id: int,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Approve a pending idea. Answers 409 while another review action is running."""
    return await _review(idea_id, schemas.ApprovalAction.APPROVE, actor, workflow, coordinator)


@router.post("/{idea_id}/reject", response_model=schemas.ApprovalResponse)
async def reject_idea(
    idea_id: int,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Reject a pending idea. Answers 409 while another review action is running."""
    return await _review(idea_id, schemas.ApprovalAction.REJECT, actor, workflow, coordinator)


@router.get("/undo", response_model=schemas.UndoStatus)
async def get_undo_status(coordinator: ApprovalCoordinator = Depends(get_coordinator)):
    record = coordinator.undo_cache.peek()
    return schemas.UndoStatus(available=record is not None, record=record)


@router.post("/undo", response_model=schemas.ApprovalResponse)
async def undo_last_action(
    actor: schemas.Actor = Depends(get_current_user),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """
    Undo the last approve or reject.

    The idea returns to pending_approval and to the top of the queue. With
    nothing to undo, the response carries an info notification and no idea.
    """
    return await coordinator.handle_undo(actor)
