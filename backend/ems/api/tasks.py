import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems.api.notifications import notify
from ems.core.middleware import STAFF_ROLES, get_current_user, require_role
from ems.db.models import Task, User
from ems.db.session import get_db
from ems.schemas.task import TaskCreate, TaskResponse, TaskStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_response(t: Task) -> TaskResponse:
    return TaskResponse(
        id=t.id,
        title=t.title,
        description=t.description,
        status=t.status,
        priority=t.priority,
        assigneeEmail=t.assignee_email,
        assigneeName=t.assignee_name,
        createdBy=t.created_by,
        createdAt=_aware(t.created_at),
        dueDate=_aware(t.due_date),
        completedAt=_aware(t.completed_at),
    )


async def _get_task_or_404(task_id: int, db: AsyncSession) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return task


def _check_assigned(task: Task, current_user: User) -> None:
    if current_user.role in STAFF_ROLES:
        return
    if (task.assignee_email or "").lower() != current_user.email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You don't have permission to update this task",
        )


def _set_status(task: Task, new_status: str) -> None:
    if new_status == "completed" and task.status != "completed":
        task.completed_at = datetime.now(timezone.utc)
    elif new_status != "completed":
        task.completed_at = None
    task.status = new_status


@router.get("/", response_model=list[TaskResponse], summary="Tasks visible to the current user")
async def list_tasks(
    status_filter: str | None = Query(
        default=None, alias="status", pattern="^(todo|in-progress|review|completed)$"
    ),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[TaskResponse]:
    q = select(Task)
    if current_user.role not in STAFF_ROLES:
        q = q.where(func.lower(Task.assignee_email) == current_user.email.lower())
    if status_filter:
        q = q.where(Task.status == status_filter)
    result = await db.execute(q.order_by(Task.created_at.desc(), Task.id.desc()))
    return [_to_response(t) for t in result.scalars().all()]


@router.get("/my", response_model=list[TaskResponse], summary="Tasks assigned to the current user")
async def my_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[TaskResponse]:
    result = await db.execute(
        select(Task)
        .where(func.lower(Task.assignee_email) == current_user.email.lower())
        .order_by(Task.created_at.desc(), Task.id.desc())
    )
    return [_to_response(t) for t in result.scalars().all()]


@router.post(
    "/",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a task and notify its assignee (admin/hr)",
)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin", "hr")),
) -> TaskResponse:
    assignee: User | None = None
    assignee_email = body.assigneeEmail.strip().lower() if body.assigneeEmail else None
    if assignee_email:
        result = await db.execute(select(User).where(func.lower(User.email) == assignee_email))
        assignee = result.scalar_one_or_none()

    task = Task(
        title=body.title,
        description=body.description,
        priority=body.priority,
        assignee_email=assignee_email,
        assignee_name=body.assigneeName or (assignee.name if assignee else None),
        created_by=current_user.email,
        due_date=body.dueDate,
    )
    db.add(task)
    await db.flush()

    if assignee is not None:
        notify(
            db,
            assignee,
            title=f"New task: {task.title}",
            message=f"{current_user.name or current_user.email} assigned you a {task.priority} priority task.",
            type="info",
            link="/tasks",
            task_id=task.id,
        )

    await db.commit()
    await db.refresh(task)
    logger.info("Task %s created for %s", task.id, assignee_email)
    return _to_response(task)


@router.put("/{task_id}/status", response_model=TaskResponse, summary="Change task status")
async def update_task_status(
    task_id: int,
    body: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskResponse:
    task = await _get_task_or_404(task_id, db)
    _check_assigned(task, current_user)
    _set_status(task, body.status)
    await db.commit()
    await db.refresh(task)
    return _to_response(task)


@router.put("/{task_id}/complete", response_model=TaskResponse, summary="Mark a task completed")
async def complete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskResponse:
    task = await _get_task_or_404(task_id, db)
    _check_assigned(task, current_user)
    _set_status(task, "completed")
    await db.commit()
    await db.refresh(task)
    return _to_response(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a task (admin/hr)")
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin", "hr")),
) -> None:
    task = await _get_task_or_404(task_id, db)
    await db.delete(task)
    await db.commit()
