"""Task API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ... import schemas
from ...models import TaskStatus
from ...workflow import WorkflowEngine
from ..dependencies import get_current_user, get_workflow

logger = logging.getLogger("ideaflow-core.tasks")

router = APIRouter(tags=["tasks"])


@router.get("/", response_model=list[schemas.Task])
async def list_assigned_tasks(
    assigned_to: int = Query(..., description="User id of the assignee"),
    status: Optional[TaskStatus] = Query(None, description="Filter by task status"),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """Tasks assigned to a user, soonest due first."""
    return await workflow.list_tasks_for_user(assigned_to, status=status)


@router.get("/{task_id}", response_model=schemas.Task)
async def get_task(task_id: int, workflow: WorkflowEngine = Depends(get_workflow)):
    return await workflow.get_task(task_id)


@router.patch("/{task_id}", response_model=schemas.Task)
async def update_task(
    task_id: int,
    data: schemas.TaskUpdate,
    actor: schemas.Actor = Depends(get_current_user),
    workflow: WorkflowEngine = Depends(get_workflow),
):
    """
    Update a task.

    Any task status may follow any other. Admins can change every field;
    assignees can change only **status** and **percent_complete**.
    """
    return await workflow.update_task(task_id, data, actor)
