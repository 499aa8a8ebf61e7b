from fastapi import FastAPI, Depends, Body, Query, BackgroundTasks, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from typing import Any, Optional
import logging
import os

from database import get_db, engine, Base
import models
import schemas
from errors import register_exception_handlers
from auth.routes import router as auth_router
from auth.dependencies import get_current_user
from services import tasks as task_service
from services import task_lists as task_list_service
from services import teams as team_service
from services.notifications import notify_member_added

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Team Tasks API",
    description="Personal and team task lists with role-based team membership",
    version="1.0.0"
)

# CORS middleware for frontend
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Register authentication router
app.include_router(auth_router)


@app.on_event("startup")
def create_tables():
    """Create missing tables. Schema migrations are not managed by the app."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


# Health check
@app.get("/health", response_model=schemas.OkResponse)
def health_check():
    return {"ok": True}


def _query_params(**params: Optional[str]) -> dict:
    return {key: value for key, value in params.items() if value is not None}


# ============== Task Lists ==============

@app.post("/task-lists", response_model=schemas.TaskListItem, status_code=status.HTTP_201_CREATED)
def create_task_list(
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a personal list, or a list in a team the user belongs to."""
    task_list = task_list_service.create_list(db, current_user.id, payload)
    return {"item": task_list}


@app.get("/task-lists", response_model=schemas.TaskListItems)
def list_task_lists(
    scope: Optional[str] = Query(None),
    team_id: Optional[str] = Query(None, alias="teamId"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List personal lists (scope=personal) or one team's lists (scope=team&teamId=...)."""
    params = _query_params(scope=scope, teamId=team_id)
    return {"items": task_list_service.list_lists(db, current_user.id, params)}


@app.patch("/task-lists/{list_id}", response_model=schemas.TaskListItem)
def update_task_list(
    list_id: int,
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Rename and/or archive a list."""
    task_list = task_list_service.update_list(db, current_user.id, list_id, payload)
    return {"item": task_list}


@app.delete("/task-lists/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task_list(
    list_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete an empty list."""
    task_list_service.delete_list(db, current_user.id, list_id)


# ============== Tasks ==============

@app.post("/tasks", response_model=schemas.TaskItem, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task = task_service.create_task(db, current_user.id, payload)
    return {"item": task}


@app.get("/tasks", response_model=schemas.TaskItems)
def list_tasks(
    list_id: Optional[str] = Query(None, alias="listId"),
    task_status: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    due: Optional[str] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List the tasks of one list.

    Filters (all optional except listId) are combined with AND:
    status, priority, q (text search in title/description), due=soon|overdue|all.
    """
    params = _query_params(listId=list_id, status=task_status, priority=priority, q=q, due=due)
    return {"items": task_service.list_tasks(db, current_user.id, params)}


@app.patch("/tasks/{task_id}", response_model=schemas.TaskItem)
def update_task(
    task_id: int,
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task = task_service.update_task(db, current_user.id, task_id, payload)
    return {"item": task}


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task_service.delete_task(db, current_user.id, task_id)


# ============== Teams ==============

@app.post("/teams", response_model=schemas.TeamEnvelope, status_code=status.HTTP_201_CREATED)
def create_team(
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new team with the creator as OWNER."""
    team = team_service.create_team(db, current_user.id, payload)
    return {"team": team}


@app.get("/teams", response_model=schemas.MyTeams)
def list_my_teams(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Teams of the current user together with the user's role in each."""
    memberships = team_service.list_my_teams(db, current_user.id)
    return {"items": [{"team": team, "my_role": role} for team, role in memberships]}


@app.get("/teams/{team_id}", response_model=schemas.TeamDetails)
def get_team(
    team_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    team, members = team_service.get_team_details(db, current_user.id, team_id)
    return {"team": team, "members": members}


@app.delete("/teams/{team_id}", response_model=schemas.OkResponse)
def delete_team(
    team_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a team with all of its lists, tasks and memberships (OWNER only)."""
    team_service.delete_team(db, current_user.id, team_id)
    return {"ok": True}


@app.post("/teams/{team_id}/members", response_model=schemas.MemberEnvelope, status_code=status.HTTP_201_CREATED)
def add_team_member(
    team_id: int,
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add a registered user to the team by email (OWNER only) and notify them."""
    member = team_service.add_member(db, current_user.id, team_id, payload)

    full_name = " ".join(part for part in (member.user.first_name, member.user.last_name) if part)
    background_tasks.add_task(
        notify_member_added,
        member.user.email,
        member.team.name,
        to_name=full_name or None,
        inviter_email=current_user.email,
    )
    return {"member": member}


@app.patch("/teams/{team_id}/members/{member_id}", response_model=schemas.MemberEnvelope)
def update_team_member_role(
    team_id: int,
    member_id: int,
    payload: Any = Body(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change a member's role (OWNER only). The last OWNER cannot be demoted."""
    member = team_service.update_member_role(db, current_user.id, team_id, member_id, payload)
    return {"member": member}


@app.delete("/teams/{team_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_team_member(
    team_id: int,
    member_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a member (OWNER only). The last OWNER cannot be removed."""
    team_service.remove_member(db, current_user.id, team_id, member_id)


@app.post("/teams/{team_id}/leave", response_model=schemas.OkResponse)
def leave_team(
    team_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Leave a team. The last OWNER has to transfer ownership first."""
    team_service.leave_team(db, current_user.id, team_id)
    return {"ok": True}
