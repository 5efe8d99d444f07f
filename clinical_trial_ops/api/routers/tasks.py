"""
Tasks API Router
Task workflow, task comments and task notifications
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
import logging

from clinical_trial_ops.api.dependencies import get_task_service
from clinical_trial_ops.core.error_handling import ClinicalDataError
from clinical_trial_ops.db.models import Task

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Enums ==============

class TaskStatusValue(str, Enum):
    NOT_STARTED = "not_started"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESPONDED = "responded"
    CLOSED = "closed"


# ============== Pydantic Models ==============

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    trial_id: int
    priority: str = "Medium"
    description: Optional[str] = None
    task_id: Optional[str] = None
    status: TaskStatusValue = TaskStatusValue.NOT_STARTED
    site_id: Optional[str] = None
    detection_id: Optional[int] = None
    assigned_to: Optional[str] = None
    created_by: str = "System"
    due_date: Optional[datetime] = None
    domain: Optional[str] = None
    record_id: Optional[str] = None
    source: Optional[str] = None
    data_context: Optional[Dict[str, Any]] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[TaskStatusValue] = None
    assigned_to: Optional[str] = None
    due_date: Optional[datetime] = None
    data_context: Optional[Dict[str, Any]] = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: str
    title: str
    description: Optional[str] = None
    priority: str
    status: str
    trial_id: int
    site_id: Optional[str] = None
    detection_id: Optional[int] = None
    assigned_to: Optional[str] = None
    created_by: str
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_comment_at: Optional[datetime] = None
    last_comment_by: Optional[str] = None
    domain: Optional[str] = None
    record_id: Optional[str] = None
    source: Optional[str] = None
    data_context: Optional[Dict[str, Any]] = None
    study_name: Optional[str] = None


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1)
    created_by: str
    role: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    comment: str
    created_by: str
    role: Optional[str] = None
    attachments: Optional[List[str]] = None
    created_at: Optional[datetime] = None


class NotificationResult(BaseModel):
    message: str
    count: int


def task_out(task: Task, study_name: str) -> TaskOut:
    out = TaskOut.model_validate(task)
    out.study_name = study_name
    return out


# ============== Endpoints ==============

@router.get("", response_model=List[TaskOut])
async def list_tasks(
    assigned_to: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    trial_id: Optional[int] = Query(None),
    service=Depends(get_task_service)
):
    """List tasks with optional filters; each carries its study name"""
    logger.debug(f"Getting tasks with filters: assigned_to={assigned_to}, status={status}, trial_id={trial_id}")
    tasks = service.list_tasks(assigned_to=assigned_to, status=status, trial_id=trial_id)
    names: Dict[int, str] = {}
    results = []
    for task in tasks:
        if task.trial_id not in names:
            names[task.trial_id] = service.study_name(task.trial_id)
        results.append(task_out(task, names[task.trial_id]))
    return results


# Declared before /{task_pk} routes so "comments" is never parsed as a task id
@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(comment_id: int, service=Depends(get_task_service)):
    """Delete a task comment"""
    if not service.delete_comment(comment_id):
        raise HTTPException(status_code=404, detail="Comment not found")
    return Response(status_code=204)


@router.get("/{task_pk}", response_model=TaskOut)
async def get_task(task_pk: int, service=Depends(get_task_service)):
    task = service.get_task(task_pk)
    return task_out(task, service.study_name(task.trial_id))


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(payload: TaskCreate, service=Depends(get_task_service)):
    """Create a task and notify its assignee"""
    try:
        data = payload.model_dump()
        data['status'] = payload.status.value
        task = service.create_task(data)
        return task_out(task, service.study_name(task.trial_id))
    except ClinicalDataError:
        raise
    except Exception as e:
        logger.error(f"Task creation error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create task")


@router.patch("/{task_pk}", response_model=TaskOut)
async def update_task(task_pk: int, payload: TaskUpdate, service=Depends(get_task_service)):
    """Update a task; closing it stamps completed_at"""
    changes = payload.model_dump(exclude_unset=True)
    if payload.status is not None:
        changes['status'] = payload.status.value
    task = service.update_task(task_pk, changes)
    return task_out(task, service.study_name(task.trial_id))


@router.post("/{task_pk}/notifications", response_model=NotificationResult)
async def create_task_notifications(task_pk: int, service=Depends(get_task_service)):
    count = service.regenerate_notifications(task_pk)
    return NotificationResult(message=f"Created {count} notification(s) for task {task_pk}", count=count)


@router.get("/{task_pk}/comments", response_model=List[CommentOut])
async def list_comments(task_pk: int, service=Depends(get_task_service)):
    return service.list_comments(task_pk)


@router.post("/{task_pk}/comments", response_model=CommentOut, status_code=201)
async def add_comment(task_pk: int, payload: CommentCreate, service=Depends(get_task_service)):
    return service.add_comment(task_pk, payload.model_dump())
