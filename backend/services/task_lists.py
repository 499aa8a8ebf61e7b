"""
Task list lifecycle: creation in a personal or team scope, rename/archive,
deletion of empty lists, and per-scope listing.
"""

import logging
from typing import Any, List

from sqlalchemy.orm import Session

import schemas
from auth.permissions import get_task_list_or_raise, membership_of
from errors import Conflict, Forbidden, ValidationError, LIST_NOT_EMPTY
from models import ListScope, Task, TaskList

logger = logging.getLogger(__name__)


def create_list(db: Session, user_id: int, payload: Any) -> TaskList:
    """
    Create a task list.

    Team-scoped lists only need the creator to be a member of the team, not an owner.
    """
    command = schemas.parse_payload(schemas.TaskListCreate, payload)
    logger.debug(f"User {user_id} creating {command.scope.value} list '{command.name}'")

    if command.scope == ListScope.team:
        if membership_of(db, command.team_id, user_id) is None:
            logger.info(f"User {user_id} cannot create a list in team {command.team_id}: not a member")
            raise Forbidden()
        task_list = TaskList(name=command.name, team_id=command.team_id, owner_user_id=None)
    else:
        task_list = TaskList(name=command.name, owner_user_id=user_id, team_id=None)

    db.add(task_list)
    db.commit()
    db.refresh(task_list)

    logger.info(f"Task list created: {task_list.name} (ID: {task_list.id}) by user {user_id}")
    return task_list


def update_list(db: Session, user_id: int, list_id: int, payload: Any) -> TaskList:
    """Rename and/or (un)archive a list. Archiving leaves the list's tasks untouched."""
    logger.debug(f"User {user_id} updating list {list_id}")
    task_list = get_task_list_or_raise(db, list_id, user_id)

    command = schemas.parse_payload(schemas.TaskListUpdate, payload)
    fields = schemas.provided_fields(command)
    if not fields:
        raise ValidationError({"body": "No valid fields to update"})

    if "name" in fields:
        task_list.name = command.name
    if "archived" in fields:
        task_list.archived = command.archived

    db.commit()
    db.refresh(task_list)

    logger.info(f"Task list {list_id} updated by user {user_id}: fields={sorted(fields)}")
    return task_list


def delete_list(db: Session, user_id: int, list_id: int) -> None:
    """Delete a list. Lists that still hold tasks are refused, never cascaded."""
    logger.debug(f"User {user_id} deleting list {list_id}")
    task_list = get_task_list_or_raise(db, list_id, user_id)

    task_count = db.query(Task).filter(Task.list_id == task_list.id).count()
    if task_count > 0:
        logger.info(f"Task list {list_id} still has {task_count} task(s), refusing delete")
        raise Conflict("Task list is not empty", code=LIST_NOT_EMPTY)

    db.delete(task_list)
    db.commit()

    logger.info(f"Task list {list_id} deleted by user {user_id}")


def list_lists(db: Session, user_id: int, params: Any) -> List[TaskList]:
    """Personal lists of the user, or the lists of one team the user belongs to."""
    query_params = schemas.parse_payload(schemas.TaskListQuery, params)

    if query_params.scope == ListScope.personal:
        query = db.query(TaskList).filter(
            TaskList.owner_user_id == user_id,
            TaskList.team_id.is_(None),
        )
    else:
        if membership_of(db, query_params.team_id, user_id) is None:
            logger.info(f"User {user_id} cannot list lists of team {query_params.team_id}: not a member")
            raise Forbidden()
        query = db.query(TaskList).filter(
            TaskList.team_id == query_params.team_id,
            TaskList.owner_user_id.is_(None),
        )

    lists = query.order_by(TaskList.created_at.desc(), TaskList.id.desc()).all()
    logger.debug(f"User {user_id} retrieved {len(lists)} {query_params.scope.value} lists")
    return lists
