from dataclasses import dataclass
from typing import Optional, Union
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from time_utils import utc_now


class TeamRole(str, enum.Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class TaskPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TaskStatus(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class ListScope(str, enum.Enum):
    personal = "personal"
    team = "team"


@dataclass(frozen=True)
class PersonalOwner:
    user_id: int


@dataclass(frozen=True)
class TeamOwner:
    team_id: int


ListOwner = Union[PersonalOwner, TeamOwner]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Relationships
    memberships = relationship("TeamMember", back_populates="user")
    personal_lists = relationship("TaskList", back_populates="owner_user")


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Relationships
    creator = relationship("User", foreign_keys=[created_by_user_id])
    members = relationship("TeamMember", back_populates="team")
    task_lists = relationship("TaskList", back_populates="team")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Enum(TeamRole, name="team_role"), nullable=False, default=TeamRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Relationships
    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")


class TaskList(Base):
    __tablename__ = "task_lists"
    # A list belongs to exactly one user or exactly one team
    __table_args__ = (
        CheckConstraint(
            "(owner_user_id IS NULL) <> (team_id IS NULL)",
            name="ck_task_lists_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    archived = Column(Boolean, nullable=False, default=False)

    # Relationships
    owner_user = relationship("User", back_populates="personal_lists")
    team = relationship("Team", back_populates="task_lists")
    tasks = relationship("Task", back_populates="task_list")

    @property
    def owner(self) -> Optional[ListOwner]:
        """Owning principal, or None when neither owner column is set."""
        if self.owner_user_id is not None:
            return PersonalOwner(user_id=self.owner_user_id)
        if self.team_id is not None:
            return TeamOwner(team_id=self.team_id)
        return None

    @property
    def scope(self) -> Optional[ListScope]:
        owner = self.owner
        if isinstance(owner, PersonalOwner):
            return ListScope.personal
        if isinstance(owner, TeamOwner):
            return ListScope.team
        return None


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    priority = Column(Enum(TaskPriority, name="task_priority"), nullable=False, default=TaskPriority.MEDIUM)
    status = Column(Enum(TaskStatus, name="task_status"), nullable=False, default=TaskStatus.TODO)
    list_id = Column(Integer, ForeignKey("task_lists.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Set while status is DONE, cleared when the task leaves DONE
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    task_list = relationship("TaskList", back_populates="tasks")
