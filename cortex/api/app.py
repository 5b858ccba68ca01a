"""FastAPI web application for Cortex."""

import logging
from datetime import date, datetime
from typing import List, Optional
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cortex.auth.dependencies import get_current_user
from cortex.database.database import get_db
from cortex.database.conditional_repository import ConditionalRepository
from cortex.database.repository import TaskRepository
from cortex.engine import (
    delete_conditional,
    recompute_parent_progress,
    resolve_conditional,
    rollup_progress,
    scope_key_to_date,
    with_store_retry,
)
from cortex.errors import (
    AlreadyResolvedError,
    CortexError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from cortex.models.conditional import (
    Conditional,
    ConditionalStatus,
    CreateConditionalInput,
    UpdateConditionalInput,
)
from cortex.models.task import Task, TaskPriority, TaskScope, TaskStatus
from cortex.models.task_factory import create_task_base
from cortex.models.user import User

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Cortex API",
    description="Tasks that wait on uncertain events, rescheduled when those events resolve",
    version="0.1.0",
)


@app.exception_handler(CortexError)
async def cortex_error_handler(request: Request, exc: CortexError):
    """Map domain errors to HTTP status codes."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, AlreadyResolvedError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, StoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})


# Request models
class TaskCreateRequest(BaseModel):
    """Request to create a task."""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    deadline: Optional[datetime] = None
    scope: TaskScope
    scope_key: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    parent_task_id: Optional[str] = None
    contribution_percent: Optional[float] = Field(None, ge=0, le=100)
    color: Optional[str] = None
    blocked_by_conditional_id: Optional[str] = None


class TaskUpdateRequest(BaseModel):
    """Partial task update. The conditional link is changed via /link and /unlink."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    deadline: Optional[datetime] = None
    scope: Optional[TaskScope] = None
    scope_key: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[TaskStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    parent_task_id: Optional[str] = None
    contribution_percent: Optional[float] = Field(None, ge=0, le=100)
    color: Optional[str] = None


class LinkRequest(BaseModel):
    conditional_id: str


class ProgressRequest(BaseModel):
    progress: int = Field(..., ge=0, le=100)


class ResolveRequest(BaseModel):
    outcome_id: str


# Response models
class ConditionalResponse(BaseModel):
    conditional: Conditional


class ConditionalListResponse(BaseModel):
    conditionals: List[Conditional]
    count: int


class TaskResponse(BaseModel):
    task: Task


class TaskListResponse(BaseModel):
    tasks: List[Task]
    count: int


class ResolveResponse(BaseModel):
    """Response for resolving a conditional."""
    updated_task_count: int
    switched_to_fallback_id: Optional[str] = None


class DeleteConditionalResponse(BaseModel):
    released_task_count: int


class ProgressResponse(BaseModel):
    task: Task
    updated_ancestor_ids: List[str] = Field(default_factory=list)


# Fields a partial update may not null out
_REQUIRED_TASK_FIELDS = {"title", "priority", "scope", "scope_key", "status", "progress"}


def _validate_scope_key(scope: TaskScope, scope_key: str) -> date:
    # Raises ValidationError (400) for keys that postponement could not shift.
    return scope_key_to_date(scope, scope_key)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# Conditionals

@app.post("/conditionals", response_model=ConditionalResponse, status_code=status.HTTP_201_CREATED)
def create_conditional(
    request: CreateConditionalInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a pending conditional."""
    conditional = ConditionalRepository(db).create(current_user.id, request)
    return ConditionalResponse(conditional=conditional)


@app.get("/conditionals", response_model=ConditionalListResponse)
def list_conditionals(
    status_filter: Optional[ConditionalStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List conditionals, soonest expected first."""
    conditionals = ConditionalRepository(db).list(current_user.id, status=status_filter)
    return ConditionalListResponse(conditionals=conditionals, count=len(conditionals))


@app.get("/conditionals/{conditional_id}", response_model=ConditionalResponse)
def get_conditional(
    conditional_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conditional = ConditionalRepository(db).get_or_raise(current_user.id, conditional_id)
    return ConditionalResponse(conditional=conditional)


@app.put("/conditionals/{conditional_id}", response_model=ConditionalResponse)
def update_conditional(
    conditional_id: str,
    request: UpdateConditionalInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the supplied fields of a pending conditional."""
    conditional = ConditionalRepository(db).update(current_user.id, conditional_id, request)
    return ConditionalResponse(conditional=conditional)


@app.delete("/conditionals/{conditional_id}", response_model=DeleteConditionalResponse)
def remove_conditional(
    conditional_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a conditional, releasing the tasks it blocks."""
    released = with_store_retry(delete_conditional, db, current_user.id, conditional_id)
    return DeleteConditionalResponse(released_task_count=released)


@app.get("/conditionals/{conditional_id}/blocked-tasks", response_model=TaskListResponse)
def list_blocked_tasks(
    conditional_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the tasks waiting on a conditional."""
    ConditionalRepository(db).get_or_raise(current_user.id, conditional_id)
    tasks = TaskRepository(db).get_blocked_by(current_user.id, conditional_id)
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.post("/conditionals/{conditional_id}/resolve", response_model=ResolveResponse)
def resolve(
    conditional_id: str,
    request: ResolveRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Resolve a conditional with the selected outcome."""
    result = with_store_retry(resolve_conditional, db, current_user.id, conditional_id, request.outcome_id)
    return ResolveResponse(
        updated_task_count=result.updated_task_count,
        switched_to_fallback_id=result.switched_to_fallback_id,
    )


# Tasks

@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    request: TaskCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a task. A task created with blocked_by_conditional_id starts out blocked."""
    _validate_scope_key(request.scope, request.scope_key)
    tasks = TaskRepository(db)
    if request.parent_task_id:
        tasks.get_or_raise(current_user.id, request.parent_task_id)
    task = create_task_base(
        user_id=current_user.id,
        title=request.title,
        scope=request.scope,
        scope_key=request.scope_key,
        description=request.description,
        priority=request.priority,
        deadline=request.deadline,
        start_time=request.start_time,
        end_time=request.end_time,
        parent_task_id=request.parent_task_id,
        contribution_percent=request.contribution_percent,
        color=request.color,
        blocked_by_conditional_id=request.blocked_by_conditional_id,
    )
    return TaskResponse(task=tasks.create(task))


@app.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    scope: Optional[TaskScope] = None,
    scope_key: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tasks = TaskRepository(db).get_all(current_user.id, scope=scope, scope_key=scope_key)
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TaskResponse(task=TaskRepository(db).get_or_raise(current_user.id, task_id))


@app.put("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update a task. Blocked tasks cannot leave 'blocked' through this endpoint."""
    tasks = TaskRepository(db)
    existing = tasks.get_or_raise(current_user.id, task_id)
    changes = {
        k: v for k, v in request.model_dump(exclude_unset=True).items()
        if v is not None or k not in _REQUIRED_TASK_FIELDS
    }
    if changes.get("parent_task_id"):
        if changes["parent_task_id"] == task_id:
            raise ValidationError(f"Task {task_id} cannot be its own parent")
        tasks.get_or_raise(current_user.id, changes["parent_task_id"])
    updated = existing.model_copy(update=changes)
    if "scope" in changes or "scope_key" in changes:
        _validate_scope_key(updated.scope, updated.scope_key)
    return TaskResponse(task=tasks.update(updated))


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a task and refresh its parent's progress.

    A parent left without children keeps its last progress value, which is
    from then on set directly like any leaf task's.
    """
    tasks = TaskRepository(db)
    task = tasks.get_or_raise(current_user.id, task_id)
    tasks.delete(current_user.id, task_id)
    if task.parent_task_id:
        recompute_parent_progress(db, current_user.id, task.parent_task_id)
        rollup_progress(db, current_user.id, task.parent_task_id)


@app.post("/tasks/{task_id}/link", response_model=TaskResponse)
def link_task(
    task_id: str,
    request: LinkRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Block a task on a pending conditional."""
    task = TaskRepository(db).link_to_conditional(current_user.id, task_id, request.conditional_id)
    return TaskResponse(task=task)


@app.post("/tasks/{task_id}/unlink", response_model=TaskResponse)
def unlink_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Release a task from its conditional."""
    task = TaskRepository(db).unlink_from_conditional(current_user.id, task_id)
    return TaskResponse(task=task)


@app.put("/tasks/{task_id}/progress", response_model=ProgressResponse)
def set_task_progress(
    task_id: str,
    request: ProgressRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set a task's progress and roll it up through its ancestors."""
    tasks = TaskRepository(db)
    tasks.set_progress(current_user.id, task_id, request.progress)
    ancestors = rollup_progress(db, current_user.id, task_id)
    return ProgressResponse(task=tasks.get_or_raise(current_user.id, task_id), updated_ancestor_ids=ancestors)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
