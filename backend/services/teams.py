"""
Team lifecycle: creation with a founding owner, cascading deletion, and
membership administration (add, change role, remove, leave).

Every operation that can take the OWNER role away from somebody locks the team
row first and runs the sole-owner guard in the same transaction as the write.
"""

import logging
from typing import Any, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

import schemas
from auth.permissions import (
    ensure_owner_remains,
    get_team_or_raise,
    membership_of,
    require_team_member,
    require_team_owner,
)
from database import transaction
from errors import Conflict, NotFound, ALREADY_MEMBER, USER_NOT_FOUND
from models import Task, TaskList, Team, TeamMember, TeamRole, User

logger = logging.getLogger(__name__)


def create_team(db: Session, user_id: int, payload: Any) -> Team:
    """Create a team and make its creator the first OWNER, atomically."""
    command = schemas.parse_payload(schemas.TeamCreate, payload)
    logger.debug(f"User {user_id} creating team '{command.name}'")

    with transaction(db):
        team = Team(name=command.name, description=command.description, created_by_user_id=user_id)
        db.add(team)
        db.flush()  # Assign team.id for the membership row

        db.add(TeamMember(team_id=team.id, user_id=user_id, role=TeamRole.OWNER))

    db.refresh(team)
    logger.info(f"Team created: {team.name} (ID: {team.id}) by user {user_id}")
    return team


def list_my_teams(db: Session, user_id: int) -> List[Tuple[Team, TeamRole]]:
    """Teams the user belongs to with the user's role, most recently joined first."""
    memberships = (
        db.query(TeamMember)
        .options(joinedload(TeamMember.team))
        .filter(TeamMember.user_id == user_id)
        .order_by(TeamMember.joined_at.desc(), TeamMember.id.desc())
        .all()
    )
    logger.debug(f"User {user_id} belongs to {len(memberships)} team(s)")
    return [(membership.team, membership.role) for membership in memberships]


def get_team_details(db: Session, user_id: int, team_id: int) -> Tuple[Team, List[TeamMember]]:
    """A team and its members (oldest first); any member may look."""
    team, _ = require_team_member(db, team_id, user_id)
    members = (
        db.query(TeamMember)
        .options(joinedload(TeamMember.user))
        .filter(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at.asc(), TeamMember.id.asc())
        .all()
    )
    return team, members


def delete_team(db: Session, user_id: int, team_id: int) -> None:
    """
    Delete a team together with its lists, their tasks and all memberships.

    Either everything goes or nothing does.
    """
    logger.debug(f"User {user_id} deleting team {team_id}")
    require_team_owner(db, team_id, user_id)

    with transaction(db):
        get_team_or_raise(db, team_id, lock=True)

        list_ids = [row.id for row in db.query(TaskList.id).filter(TaskList.team_id == team_id)]
        deleted_tasks = 0
        if list_ids:
            deleted_tasks = (
                db.query(Task).filter(Task.list_id.in_(list_ids)).delete(synchronize_session=False)
            )
        db.query(TaskList).filter(TaskList.team_id == team_id).delete(synchronize_session=False)
        db.query(TeamMember).filter(TeamMember.team_id == team_id).delete(synchronize_session=False)
        db.query(Team).filter(Team.id == team_id).delete(synchronize_session=False)

    logger.info(
        f"Team {team_id} deleted by user {user_id} "
        f"({len(list_ids)} list(s), {deleted_tasks} task(s))"
    )


def add_member(db: Session, owner_user_id: int, team_id: int, payload: Any) -> TeamMember:
    """
    Add a registered user to the team as MEMBER.

    Raises:
        NotFound(USER_NOT_FOUND): no account with that email
        Conflict(ALREADY_MEMBER): the user is already in the team
    """
    logger.debug(f"User {owner_user_id} adding a member to team {team_id}")
    require_team_owner(db, team_id, owner_user_id)

    command = schemas.parse_payload(schemas.MemberAdd, payload)

    user = db.query(User).filter(User.email == command.email).first()
    if user is None:
        logger.info(f"Cannot add {command.email} to team {team_id}: no such user")
        raise NotFound("User not found", code=USER_NOT_FOUND)

    if membership_of(db, team_id, user.id) is not None:
        logger.info(f"User {user.id} is already a member of team {team_id}")
        raise Conflict("User is already a member", code=ALREADY_MEMBER)

    member = TeamMember(team_id=team_id, user_id=user.id, role=TeamRole.MEMBER)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent add of the same user won the unique (team, user) constraint
        db.rollback()
        logger.info(f"User {user.id} was added to team {team_id} concurrently")
        raise Conflict("User is already a member", code=ALREADY_MEMBER)
    db.refresh(member)

    logger.info(f"User {user.id} added to team {team_id} as MEMBER by user {owner_user_id}")
    return member


def _member_in_team(db: Session, team_id: int, member_id: int) -> TeamMember:
    member = (
        db.query(TeamMember)
        .filter(TeamMember.id == member_id, TeamMember.team_id == team_id)
        .first()
    )
    if member is None:
        logger.info(f"Membership {member_id} not found in team {team_id}")
        raise NotFound("Member not found")
    return member


def update_member_role(
    db: Session, owner_user_id: int, team_id: int, member_id: int, payload: Any
) -> TeamMember:
    """Promote or demote a member. The last OWNER cannot be demoted."""
    logger.debug(f"User {owner_user_id} changing role of membership {member_id} in team {team_id}")
    require_team_owner(db, team_id, owner_user_id)
    command = schemas.parse_payload(schemas.MemberRoleUpdate, payload)

    with transaction(db):
        get_team_or_raise(db, team_id, lock=True)
        member = _member_in_team(db, team_id, member_id)
        ensure_owner_remains(
            db, team_id, member, targets_non_owner_role=command.role != TeamRole.OWNER
        )
        previous_role = member.role
        member.role = command.role

    db.refresh(member)
    logger.info(
        f"Membership {member_id} in team {team_id}: {previous_role.value} -> {member.role.value} "
        f"by user {owner_user_id}"
    )
    return member


def remove_member(db: Session, owner_user_id: int, team_id: int, member_id: int) -> None:
    """Remove a membership. Removing the last OWNER is refused."""
    logger.debug(f"User {owner_user_id} removing membership {member_id} from team {team_id}")
    require_team_owner(db, team_id, owner_user_id)

    with transaction(db):
        get_team_or_raise(db, team_id, lock=True)
        member = _member_in_team(db, team_id, member_id)
        ensure_owner_remains(db, team_id, member)
        db.delete(member)

    logger.info(f"Membership {member_id} removed from team {team_id} by user {owner_user_id}")


def leave_team(db: Session, user_id: int, team_id: int) -> None:
    """Drop the caller's own membership. The last OWNER has to hand over ownership first."""
    logger.debug(f"User {user_id} leaving team {team_id}")

    with transaction(db):
        get_team_or_raise(db, team_id, lock=True)
        member = membership_of(db, team_id, user_id)
        if member is None:
            raise NotFound("Membership not found")
        ensure_owner_remains(db, team_id, member)
        db.delete(member)

    logger.info(f"User {user_id} left team {team_id}")
