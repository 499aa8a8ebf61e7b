"""
Task lifecycle: creation, partial updates, deletion and filtered listing.

``completed_at`` follows ``status``: entering DONE stamps the current time,
leaving DONE clears it, and re-sending DONE for a task that is already DONE
keeps the original stamp.
"""

import logging
from typing import Any, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

import schemas
from auth.permissions import get_task_list_or_raise, get_task_or_raise
from errors import Conflict, ValidationError, LIST_ARCHIVED
from models import Task, TaskList, TaskStatus
from time_utils import due_soon_range, utc_now

logger = logging.getLogger(__name__)


def _ensure_list_writable(task_list: TaskList) -> None:
    if task_list.archived:
        logger.info(f"Refusing task mutation in archived list {task_list.id}")
        raise Conflict("Task list is archived", code=LIST_ARCHIVED)


def create_task(db: Session, user_id: int, payload: Any) -> Task:
    """
    Create a task in a list the user can access.

    The body is validated first (the target list id comes from it), then the
    list is resolved and authorized before anything is written.
    """
    command = schemas.parse_payload(schemas.TaskCreate, payload)
    logger.debug(f"User {user_id} creating task '{command.title}' in list {command.list_id}")

    task_list = get_task_list_or_raise(db, command.list_id, user_id)
    _ensure_list_writable(task_list)

    task = Task(
        list_id=task_list.id,
        title=command.title,
        description=command.description,
        due_date=command.due_date,
        priority=command.priority,
        status=command.status,
        completed_at=utc_now() if command.status == TaskStatus.DONE else None,
    )
    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info(f"Task created: id={task.id} in list {task_list.id} by user {user_id}")
    return task


def update_task(db: Session, user_id: int, task_id: int, payload: Any) -> Task:
    """
    Apply a partial update to a task.

    Access is checked before the body is looked at. Only fields present in the
    body are validated and written; a body with none of them is rejected.
    """
    logger.debug(f"User {user_id} updating task {task_id}")
    task = get_task_or_raise(db, task_id, user_id)

    command = schemas.parse_payload(schemas.TaskUpdate, payload)
    fields = schemas.provided_fields(command)
    if not fields:
        raise ValidationError({"body": "No valid fields to update"})

    _ensure_list_writable(task.task_list)

    for field_name in ("title", "description", "due_date", "priority"):
        if field_name in fields:
            setattr(task, field_name, getattr(command, field_name))

    if "status" in fields:
        new_status = command.status
        # Compare with the stored status, not the request
        if new_status == TaskStatus.DONE and task.status != TaskStatus.DONE:
            task.completed_at = utc_now()
        elif new_status != TaskStatus.DONE and task.status == TaskStatus.DONE:
            task.completed_at = None
        task.status = new_status

    db.commit()
    db.refresh(task)

    logger.info(f"Task {task_id} updated by user {user_id}: fields={sorted(fields)}")
    return task


def delete_task(db: Session, user_id: int, task_id: int) -> None:
    logger.debug(f"User {user_id} deleting task {task_id}")
    task = get_task_or_raise(db, task_id, user_id)
    _ensure_list_writable(task.task_list)

    db.delete(task)
    db.commit()

    logger.info(f"Task {task_id} deleted by user {user_id}")


def list_tasks(db: Session, user_id: int, params: Any) -> List[Task]:
    """
    List the tasks of one list, newest first.

    Filters compose conjunctively:
        status / priority: exact match
        q: case-insensitive substring of title or description
        due=soon: not DONE and due within the next 24 hours
        due=overdue: not DONE and due in the past
    """
    filters = schemas.parse_payload(schemas.TaskFilters, params)
    logger.debug(
        f"User {user_id} listing tasks: list={filters.list_id}, status={filters.status}, "
        f"priority={filters.priority}, q={filters.q}, due={filters.due}"
    )

    task_list = get_task_list_or_raise(db, filters.list_id, user_id)

    query = db.query(Task).filter(Task.list_id == task_list.id)

    if filters.status:
        query = query.filter(Task.status == filters.status)
    if filters.priority:
        query = query.filter(Task.priority == filters.priority)
    if filters.q:
        # Literal substring: % and _ in the search text are escaped
        query = query.filter(
            or_(
                Task.title.icontains(filters.q, autoescape=True),
                Task.description.icontains(filters.q, autoescape=True),
            )
        )

    if filters.due == "soon":
        now, window_end = due_soon_range()
        query = query.filter(
            Task.status != TaskStatus.DONE,
            Task.due_date >= now,
            Task.due_date <= window_end,
        )
    elif filters.due == "overdue":
        query = query.filter(Task.status != TaskStatus.DONE, Task.due_date < utc_now())

    tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).all()
    logger.info(f"list_tasks returned {len(tasks)} tasks for list {task_list.id}")
    return tasks
