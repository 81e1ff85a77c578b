"""Idea API endpoints: submission, listing, transitions, tasks and trail."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from ... import schemas
from ...approvals import ApprovalCoordinator
from ...models import IdeaStatus
from ...workflow import WorkflowEngine
from ..dependencies import get_coordinator, get_current_user, get_workflow

logger = logging.getLogger("ideaflow-core.ideas")

router = APIRouter(tags=["ideas"])

# Reviewer decisions go through the approval coordinator so they can be undone
REVIEW_ACTIONS: dict[IdeaStatus, schemas.ApprovalAction] = {
    IdeaStatus.APPROVED: schemas.ApprovalAction.APPROVE,
    IdeaStatus.REJECTED: schemas.ApprovalAction.REJECT,
}


@router.post("/", response_model=schemas.Idea, status_code=status.HTTP_201_CREATED)
async def submit_idea(
    data: schemas.IdeaCreate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """
    Submit a new idea for review.

    - **title**: Idea title
    - **description**: What the idea proposes
    - **category**: Free-form category (default "Other")
    - **priority**: low, medium, high or critical
    """
    idea = await workflow.submit_idea(data, actor)
    coordinator.add_pending(idea)
    return idea


@router.get("/", response_model=schemas.IdeaListResponse)
async def list_ideas(
    status: Optional[IdeaStatus] = Query(None, description="Filter by status"),
    created_by: Optional[int] = Query(None, description="Only ideas submitted by this user id"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """List ideas, optionally filtered by status or submitter."""
    items, total = await workflow.list_ideas(status=status, created_by=created_by, limit=limit, offset=offset)
    return schemas.IdeaListResponse(items=items, total=total)


@router.get("/{idea_id}", response_model=schemas.Idea)
async def get_idea(idea_id: int, workflow: WorkflowEngine = Depends(get_workflow)):
    return await workflow.get_idea(idea_id)


@router.post("/{idea_id}/attachments", response_model=schemas.Attachment, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    idea_id: int,
    file: UploadFile = File(...),
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """Attach a file to an idea."""
    content = await file.read()
    return await workflow.attach_file(idea_id, file.filename or "attachment", content, actor)


@router.post("/{idea_id}/transition", response_model=schemas.Idea)
async def transition_idea(
    idea_id: int,
    data: schemas.IdeaTransition,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """
    Move an idea to a new status.

    Valid transitions:
    - pending_approval → approved, rejected
    - approved → completed (in_progress starts when the first task is created)
    - in_progress → completed (all tasks must be completed)

    pending_approval is reachable only through undo (POST /approvals/undo).
    """
    action = REVIEW_ACTIONS.get(data.new_status)
    if action is not None:
        idea = await workflow.get_idea(idea_id)
        response = await coordinator.handle_approval_action(idea, action, actor)
        return response.idea
    return await workflow.transition(idea_id, data.new_status, actor)


@router.get("/{idea_id}/tasks", response_model=list[schemas.Task])
async def list_tasks(idea_id: int, workflow: WorkflowEngine = Depends(get_workflow)):
    return await workflow.list_tasks(idea_id)


@router.post("/{idea_id}/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
async def create_task(
    idea_id: int,
    data: schemas.TaskCreate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """
    Create a task under an approved or in-progress idea (admin only).

    The first task on an approved idea moves it to in_progress.
    """
    return await workflow.create_task(idea_id, data, actor)


@router.get("/{idea_id}/trail", response_model=schemas.TrailListResponse)
async def get_idea_trail(
    idea_id: int,
    limit: Optional[int] = Query(None, ge=1),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """Audit trail for one idea, most recent first."""
    await workflow.get_idea(idea_id)
    items = await workflow.trail.collect(idea_id=idea_id, limit=limit)
    return schemas.TrailListResponse(items=items, total=len(items))
