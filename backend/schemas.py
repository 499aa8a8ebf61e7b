"""
Request and response schemas.

Request models validate untyped JSON/query input into typed commands. Each field
has a ``mode="before"`` validator that raises ``PydanticCustomError`` with the
human-readable message returned to clients, so a single validation pass reports
every violated field at once (see ``parse_payload``).

Response models serialize ORM rows with camelCase keys.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from errors import ValidationError
from models import ListScope, TaskPriority, TaskStatus, TeamRole
from time_utils import as_utc

_email_adapter = TypeAdapter(EmailStr)

M = TypeVar("M", bound=BaseModel)


def parse_payload(schema: Type[M], payload: Any) -> M:
    """
    Validate raw input against a request schema.

    Raises:
        ValidationError: with a field -> message map covering every invalid field
    """
    if not isinstance(payload, dict):
        raise ValidationError({"body": "Request body must be a JSON object"})
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        details: Dict[str, str] = {}
        for err in exc.errors():
            loc = [str(part) for part in err["loc"]]
            # Defaults validated for missing fields are reported under the attribute name
            if loc and loc[0] in schema.model_fields:
                loc[0] = schema.model_fields[loc[0]].alias or loc[0]
            field = ".".join(loc) or "body"
            details.setdefault(field, err["msg"])
        raise ValidationError(details) from exc


def provided_fields(command: BaseModel) -> set:
    """Names of the fields that were present in the input (PATCH semantics)."""
    return set(command.model_fields_set)


# ============== Field checks ==============

def _fail(kind: str, message: str):
    raise PydanticCustomError(kind, message)


def _trimmed_name(value: Any, label: str) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        _fail("string_type", f"{label} must be a string")
    value = value.strip()
    if len(value) < 2:
        _fail("too_short", f"{label} must be at least 2 characters")
    return value


def _optional_text(value: Any, label: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        _fail("string_type", f"{label} must be a string")
    return value.strip()


def _choice(value: Any, enum_cls, message: str):
    if isinstance(value, str) and value in [member.value for member in enum_cls]:
        return enum_cls(value)
    _fail("enum", message)


def _entity_id(value: Any, label: str) -> int:
    if isinstance(value, bool):
        _fail("id_type", f"{label} must be a valid id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if value is None or (isinstance(value, str) and not value.strip()):
        _fail("missing", f"{label} is required")
    _fail("id_type", f"{label} must be a valid id")


def _due_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip():
        try:
            return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    _fail("datetime", "dueDate must be a valid ISO date string")


def _email(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        try:
            return _email_adapter.validate_python(value.strip()).strip().lower()
        except PydanticValidationError:
            pass
    _fail("email", "Invalid email")


PRIORITY_MESSAGE = "Priority must be LOW, MEDIUM, or HIGH"
STATUS_MESSAGE = "Status must be TODO, IN_PROGRESS, or DONE"
SCOPE_MESSAGE = "Scope must be personal or team"
ROLE_MESSAGE = "Role must be OWNER or MEMBER"


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ============== Auth requests ==============

class RegisterRequest(RequestModel):
    email: str = Field(None, validate_default=True)
    password: str = Field(None, validate_default=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value):
        return _email(value)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value):
        if not isinstance(value, str) or len(value) < 8:
            _fail("too_short", "Password must be at least 8 characters")
        return value

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def check_names(cls, value, info: ValidationInfo):
        label = "First name" if info.field_name == "first_name" else "Last name"
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            _fail("too_short", f"{label} must be at least 1 character")
        return value.strip()


class LoginRequest(RequestModel):
    email: str = Field(None, validate_default=True)
    password: str = Field(None, validate_default=True)

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value):
        return _email(value)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, value):
        if not isinstance(value, str) or len(value) < 8:
            _fail("too_short", "Password must be at least 8 characters")
        return value


# ============== Task list requests ==============

class TaskListCreate(RequestModel):
    name: str = Field(None, validate_default=True)
    scope: ListScope = Field(None, validate_default=True)
    team_id: Optional[int] = Field(None, validate_default=True)

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value):
        return _trimmed_name(value, "Name")

    @field_validator("scope", mode="before")
    @classmethod
    def check_scope(cls, value):
        return _choice(value, ListScope, SCOPE_MESSAGE)

    @field_validator("team_id", mode="before")
    @classmethod
    def check_team_id(cls, value, info: ValidationInfo):
        if info.data.get("scope") != ListScope.team:
            return None
        if value is None or value == "":
            _fail("missing", "teamId is required for team scope")
        return _entity_id(value, "teamId")


class TaskListUpdate(RequestModel):
    name: Optional[str] = None
    archived: Optional[bool] = None

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value):
        return _trimmed_name(value, "Name")

    @field_validator("archived", mode="before")
    @classmethod
    def check_archived(cls, value):
        if not isinstance(value, bool):
            _fail("bool_type", "Archived must be a boolean")
        return value


class TaskListQuery(RequestModel):
    scope: ListScope = Field(None, validate_default=True)
    team_id: Optional[int] = Field(None, validate_default=True)

    @field_validator("scope", mode="before")
    @classmethod
    def check_scope(cls, value):
        return _choice(value, ListScope, SCOPE_MESSAGE)

    @field_validator("team_id", mode="before")
    @classmethod
    def check_team_id(cls, value, info: ValidationInfo):
        if info.data.get("scope") != ListScope.team:
            return None
        if value is None or value == "":
            _fail("missing", "teamId is required for team scope")
        return _entity_id(value, "teamId")


# ============== Task requests ==============

class TaskCreate(RequestModel):
    list_id: int = Field(None, validate_default=True)
    title: str = Field(None, validate_default=True)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: TaskPriority = Field(None, validate_default=True)
    status: TaskStatus = Field(None, validate_default=True)

    @field_validator("list_id", mode="before")
    @classmethod
    def check_list_id(cls, value):
        return _entity_id(value, "listId")

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        return _trimmed_name(value, "Title")

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value):
        return _optional_text(value, "Description")

    @field_validator("due_date", mode="before")
    @classmethod
    def check_due_date(cls, value):
        return _due_date(value)

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, value):
        return _choice(value, TaskPriority, PRIORITY_MESSAGE)

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value):
        return _choice(value, TaskStatus, STATUS_MESSAGE)


class TaskUpdate(RequestModel):
    """Partial update; only the fields present in the body are validated and applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        return _trimmed_name(value, "Title")

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value):
        return _optional_text(value, "Description")

    @field_validator("due_date", mode="before")
    @classmethod
    def check_due_date(cls, value):
        return _due_date(value)

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, value):
        return _choice(value, TaskPriority, PRIORITY_MESSAGE)

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value):
        return _choice(value, TaskStatus, STATUS_MESSAGE)


class TaskFilters(RequestModel):
    list_id: int = Field(None, validate_default=True)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    q: Optional[str] = None
    due: Literal["all", "soon", "overdue"] = "all"

    @field_validator("list_id", mode="before")
    @classmethod
    def check_list_id(cls, value):
        return _entity_id(value, "listId")

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value):
        if value in (None, ""):
            return None
        return _choice(value, TaskStatus, STATUS_MESSAGE)

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, value):
        if value in (None, ""):
            return None
        return _choice(value, TaskPriority, PRIORITY_MESSAGE)

    @field_validator("q", mode="before")
    @classmethod
    def check_q(cls, value):
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @field_validator("due", mode="before")
    @classmethod
    def check_due(cls, value):
        if value in (None, ""):
            return "all"
        if value not in ("all", "soon", "overdue"):
            _fail("enum", "due must be soon, overdue, or all")
        return value


# ============== Team requests ==============

class TeamCreate(RequestModel):
    name: str = Field(None, validate_default=True)
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value):
        return _trimmed_name(value, "Name")

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value):
        # Blank descriptions are stored as NULL
        return _optional_text(value, "Description") or None


class MemberAdd(RequestModel):
    email: str = Field(None, validate_default=True)

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, value):
        return _email(value)


class MemberRoleUpdate(RequestModel):
    role: TeamRole = Field(None, validate_default=True)

    @field_validator("role", mode="before")
    @classmethod
    def check_role(cls, value):
        return _choice(value, TeamRole, ROLE_MESSAGE)


# ============== Responses ==============

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class User(ResponseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: UtcDatetime


class UserSummary(ResponseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Team(ResponseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: UtcDatetime
    created_by_user_id: int


class TeamMember(ResponseModel):
    id: int
    role: TeamRole
    joined_at: UtcDatetime
    user: UserSummary


class TaskList(ResponseModel):
    id: int
    name: str
    owner_user_id: Optional[int] = None
    team_id: Optional[int] = None
    created_at: UtcDatetime
    archived: bool


class Task(ResponseModel):
    id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[UtcDatetime] = None
    priority: TaskPriority
    status: TaskStatus
    list_id: int
    created_at: UtcDatetime
    completed_at: Optional[UtcDatetime] = None


# Envelopes

class UserEnvelope(ResponseModel):
    user: User


class LoginResponse(ResponseModel):
    token: str
    user: User


class OkResponse(ResponseModel):
    ok: bool = True


class TaskListItem(ResponseModel):
    item: TaskList


class TaskListItems(ResponseModel):
    items: List[TaskList] = []


class TaskItem(ResponseModel):
    item: Task


class TaskItems(ResponseModel):
    items: List[Task] = []


class TeamEnvelope(ResponseModel):
    team: Team


class MyTeam(ResponseModel):
    team: Team
    my_role: TeamRole


class MyTeams(ResponseModel):
    items: List[MyTeam] = []


class TeamDetails(ResponseModel):
    team: Team
    members: List[TeamMember] = []


class MemberEnvelope(ResponseModel):
    member: TeamMember
