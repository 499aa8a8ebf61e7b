"""
Team membership and resource ownership checks.

Two layers live here:

Team membership authority
    Who belongs to a team, who owns it, and the rule that a team must always
    keep at least one OWNER. The same sole-owner guard covers demotion to
    MEMBER, removal by an owner and leaving the team.

Resource ownership resolver
    Whether a user may read or mutate a task list (and, through its list, a
    task). Personal lists belong to one user; team lists are open to every
    current member of the owning team. Task access is always derived from the
    current list/team state, never cached on the task.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from errors import Conflict, Forbidden, NotFound, OWNER_MUST_TRANSFER
from models import PersonalOwner, Task, TaskList, Team, TeamMember, TeamOwner, TeamRole

logger = logging.getLogger(__name__)


# ============== Team membership authority ==============

def get_team_or_raise(db: Session, team_id: int, lock: bool = False) -> Team:
    """
    Load a team or raise NotFound.

    With ``lock=True`` the team row is selected FOR UPDATE so that concurrent
    owner-guarded mutations on the same team run one after another (no-op on SQLite).
    """
    query = db.query(Team).filter(Team.id == team_id)
    if lock:
        query = query.with_for_update()
    team = query.first()
    if team is None:
        logger.info(f"Team {team_id} not found")
        raise NotFound("Team not found")
    return team


def membership_of(db: Session, team_id: int, user_id: int) -> Optional[TeamMember]:
    """Return the user's membership row in the team, or None."""
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        .first()
    )


def require_team_member(db: Session, team_id: int, user_id: int) -> Tuple[Team, TeamMember]:
    """
    Require the user to be a member of the team.

    Raises:
        NotFound: team does not exist
        Forbidden: user has no membership row
    """
    team = get_team_or_raise(db, team_id)
    member = membership_of(db, team_id, user_id)
    if member is None:
        logger.info(f"User {user_id} has no membership in team {team_id}")
        raise Forbidden()
    return team, member


def require_team_owner(db: Session, team_id: int, user_id: int) -> Tuple[Team, TeamMember]:
    """
    Require the user to be an OWNER of the team.

    Raises:
        NotFound: team does not exist
        Forbidden: user is not a member, or is a member without the OWNER role
    """
    team, member = require_team_member(db, team_id, user_id)
    if member.role != TeamRole.OWNER:
        logger.info(f"User {user_id} has role '{member.role.value}' in team {team_id}, but OWNER is required")
        raise Forbidden()
    return team, member


def count_owners(db: Session, team_id: int) -> int:
    return (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.role == TeamRole.OWNER)
        .count()
    )


def can_demote_or_remove(
    db: Session, team_id: int, membership: TeamMember, targets_non_owner_role: bool = True
) -> bool:
    """
    Decide whether a membership may lose its OWNER role.

    Args:
        membership: the membership about to be demoted or deleted
        targets_non_owner_role: True when the action leaves the row without the
            OWNER role (demotion to MEMBER, removal, leaving)

    Returns:
        False exactly when the membership is the team's only OWNER and the
        action would take that role away; True otherwise
    """
    if membership.role != TeamRole.OWNER or not targets_non_owner_role:
        return True
    return count_owners(db, team_id) > 1


def ensure_owner_remains(
    db: Session, team_id: int, membership: TeamMember, targets_non_owner_role: bool = True
) -> None:
    """
    Raise Conflict(OWNER_MUST_TRANSFER) when the action would leave the team without an owner.

    The caller has to promote another member to OWNER and retry; nothing is retried here.
    """
    if not can_demote_or_remove(db, team_id, membership, targets_non_owner_role):
        logger.warning(
            f"Blocked change to membership {membership.id}: user {membership.user_id} "
            f"is the sole owner of team {team_id}"
        )
        raise Conflict("Owner must transfer", code=OWNER_MUST_TRANSFER)


# ============== Resource ownership resolver ==============

def authorize_list_access(db: Session, task_list: Optional[TaskList], user_id: int) -> TaskList:
    """
    Check that the user may read and mutate a task list.

    Raises:
        NotFound: list is None
        Forbidden: personal list of another user, team list of a team the user
            does not belong to, or a list with no owner at all
    """
    if task_list is None:
        raise NotFound("Task list not found")

    owner = task_list.owner
    if isinstance(owner, PersonalOwner):
        if owner.user_id != user_id:
            logger.info(f"User {user_id} denied access to personal list {task_list.id}")
            raise Forbidden()
        return task_list

    if isinstance(owner, TeamOwner):
        if membership_of(db, owner.team_id, user_id) is None:
            logger.info(f"User {user_id} is not a member of team {owner.team_id}, access denied to list {task_list.id}")
            raise Forbidden()
        return task_list

    # Neither owner column set; should be unreachable given the check constraint
    logger.warning(f"Task list {task_list.id} has no owner user or team; denying access")
    raise Forbidden()


def get_task_list_or_raise(db: Session, list_id: int, user_id: int) -> TaskList:
    """Load a task list and authorize the user against it."""
    task_list = db.query(TaskList).filter(TaskList.id == list_id).first()
    return authorize_list_access(db, task_list, user_id)


def authorize_task_access(db: Session, task: Optional[Task], user_id: int) -> Task:
    """Check access to a task through its parent list."""
    if task is None:
        raise NotFound("Task not found")
    task_list = db.query(TaskList).filter(TaskList.id == task.list_id).first()
    authorize_list_access(db, task_list, user_id)
    return task


def get_task_or_raise(db: Session, task_id: int, user_id: int) -> Task:
    """Load a task and authorize the user against its list."""
    task = db.query(Task).filter(Task.id == task_id).first()
    return authorize_task_access(db, task, user_id)
