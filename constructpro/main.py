import hmac
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from passlib.hash import bcrypt
from pydantic import BaseModel
from sqlalchemy.orm import Session

from constructpro import config
from constructpro.app.db.database import get_db, init_db
from constructpro.app.db.db_loader import (
    attached_photos,
    get_project,
    list_projects,
    load_photos,
    load_task_store,
    load_workers,
    worker_name,
)
from constructpro.app.db.db_writer import create_project, create_user
from constructpro.app.db.models import ProjectModel, TaskStatus
from constructpro.app.security import (
    ROLES,
    User,
    create_access_token,
    get_current_user,
    get_user_by_username,
)
from constructpro.tools.schedule.engine import (
    DependencyConflictError,
    DependencyCycleError,
    GestureError,
    InteractionController,
    ScheduleError,
    TaskNotFoundError,
    build_gantt_view,
    format_dependency_graph,
    parse_scale,
    project_progress,
    schedule_progress,
    task_progress,
    validate,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(lifespan=lifespan)

# Enable CORS for local frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Active drag gestures per (user id, project id); one gesture at a time per key
_GESTURES: Dict[Tuple[str, str], InteractionController] = {}
# Projects whose PIN each user has entered during this process lifetime
_UNLOCKED_PROJECTS: Set[Tuple[str, str]] = set()


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    role: str = "editor"


class ProjectCreateRequest(BaseModel):
    name: str
    pin: Optional[str] = None


class UnlockRequest(BaseModel):
    pin: str


class TaskRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[TaskStatus] = None
    depends_on: Optional[List[str]] = None
    total_volume: Optional[float] = None
    completed_volume: Optional[float] = None
    volume_unit: Optional[str] = None
    total_value: Optional[float] = None
    assigned_worker_id: Optional[str] = None
    photo_ids: Optional[List[str]] = None


class DatesRequest(BaseModel):
    start_date: date
    end_date: date


class GestureBeginRequest(BaseModel):
    task_id: str
    mode: str
    x: float
    scale: Optional[str] = None


class GesturePointerRequest(BaseModel):
    x: float


# ------------------------------
# Helpers
# ------------------------------

def _schedule_http_error(e: ScheduleError) -> HTTPException:
    if isinstance(e, TaskNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, DependencyConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "conflict": e.conflict.model_dump(mode="json")},
        )
    if isinstance(e, DependencyCycleError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"message": str(e), "cycle": e.cycle})
    if isinstance(e, GestureError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _require_editor(user: User) -> None:
    if not user.can_edit:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Read-only users cannot modify projects")


def _can_see(user: User, project: ProjectModel) -> bool:
    if user.is_admin or user.role == "viewer":
        return True
    return project.owner_id in (None, user.id)


def _is_locked(user: User, project: ProjectModel) -> bool:
    return bool(project.pin) and (user.id, project.id) not in _UNLOCKED_PROJECTS


def _open_project(db: Session, project_id: str, user: User, require_unlocked: bool = True) -> ProjectModel:
    project = get_project(db, project_id)
    if project is None or not _can_see(user, project):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id!r} not found")
    if require_unlocked and _is_locked(user, project):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Project is locked; unlock it with its PIN")
    return project


def _project_summary(user: User, project: ProjectModel) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "owner_id": project.owner_id,
        "locked": _is_locked(user, project),
    }


def _task_payload(task, workers, photos) -> dict:
    data = task.model_dump(mode="json")
    data["assigned_worker_name"] = worker_name(workers, task.assigned_worker_id)
    data["photos"] = [p.model_dump(mode="json") for p in attached_photos(photos, task.photo_ids)]
    data["progress"] = round(task_progress(task), 2)
    return data


def _task_fields(request: TaskRequest) -> dict:
    return request.model_dump(exclude_unset=True)


# ------------------------------
# Basic and auth endpoints
# ------------------------------

@app.get("/")
async def root():
    return {"message": "ConstructPro scheduling service"}


@app.get("/debug/ping")
async def debug_ping():
    return {"pong": True}


@app.post("/register")
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    if request.role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown role {request.role!r}; expected one of {', '.join(ROLES)}",
        )
    if get_user_by_username(db, request.username):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already registered"
        )

    hashed_password = bcrypt.hash(request.password)
    try:
        user_id = create_user(db, request.username, hashed_password, role=request.role)
    except Exception as e:
        db.rollback()
        logging.exception("Registration failed for %s", request.username)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return {"message": "Registration successful", "user_id": user_id}


@app.post("/login")
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = get_user_by_username(db, request.username)
    if not user or not bcrypt.verify(request.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )
    access_token = create_access_token({"sub": user.username})
    return {
        "message": "Login successful",
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": user.id,
        "username": user.username,
        "role": user.role,
    }


@app.get("/auth/me")
async def auth_me(current_user: User = Depends(get_current_user)):
    return {"id": current_user.id, "username": current_user.username, "role": current_user.role}


# ------------------------------
# Projects
# ------------------------------

@app.get("/projects")
async def get_projects(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        owner = None if (current_user.is_admin or current_user.role == "viewer") else current_user.id
        projects = list_projects(db, owner_id=owner)
        return {"projects": [_project_summary(current_user, p) for p in projects]}
    except Exception as e:
        logging.exception("Failed to list projects")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/projects", status_code=status.HTTP_201_CREATED)
async def post_project(
    request: ProjectCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    if not request.name.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Project name is required")
    try:
        project = create_project(db, request.name.strip(), current_user.id, pin=request.pin or None)
    except Exception as e:
        db.rollback()
        logging.exception("Failed to create project %s", request.name)
        raise HTTPException(status_code=500, detail=str(e))
    # The creator does not have to re-enter the PIN just set
    _UNLOCKED_PROJECTS.add((current_user.id, project.id))
    logger.info("Project %s created by %s", project.id, current_user.username)
    return _project_summary(current_user, project)


@app.post("/projects/{project_id}/unlock")
async def unlock_project(
    project_id: str,
    request: UnlockRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = _open_project(db, project_id, current_user, require_unlocked=False)
    if project.pin and not hmac.compare_digest(project.pin.encode("utf-8"), request.pin.encode("utf-8")):
        logger.warning("Wrong PIN for project %s by %s", project_id, current_user.username)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid PIN")
    _UNLOCKED_PROJECTS.add((current_user.id, project.id))
    return {"project_id": project.id, "unlocked": True}


# ------------------------------
# Tasks
# ------------------------------

@app.get("/projects/{project_id}/tasks")
async def get_tasks(project_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id, persist=False)
        workers = load_workers(db, project_id)
        photos = load_photos(db, project_id)
        return {"tasks": [_task_payload(t, workers, photos) for t in store.list_tasks()]}
    except Exception as e:
        logging.exception("Failed to load tasks for %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
async def post_task(
    project_id: str,
    request: TaskRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id)
        task = store.add_task(_task_fields(request))
        return task.model_dump(mode="json")
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to add task to %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/projects/{project_id}/tasks/{task_id}")
async def put_task(
    project_id: str,
    task_id: str,
    request: TaskRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id)
        task = store.update_task(task_id, _task_fields(request))
        return task.model_dump(mode="json")
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to update task %s", task_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/projects/{project_id}/tasks/{task_id}")
async def delete_task(
    project_id: str,
    task_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id)
        removed = store.remove_task(task_id)
        return {"deleted": removed.id}
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to delete task %s", task_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/projects/{project_id}/tasks/{task_id}/dates")
async def patch_task_dates(
    project_id: str,
    task_id: str,
    request: DatesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id)
        task = store.update_dates(task_id, request.start_date, request.end_date)
        return task.model_dump(mode="json")
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to move task %s", task_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/projects/{project_id}/tasks/{task_id}/validate")
async def validate_task_dates(
    project_id: str,
    task_id: str,
    request: DatesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Dry run of the dependency rule for a proposed range; nothing is saved."""
    _open_project(db, project_id, current_user)
    try:
        store = load_task_store(db, project_id, persist=False)
        task = store.get(task_id)
        conflict = validate(task, request.start_date, request.end_date, store.list_tasks(), graph=store.graph())
        return {
            "ok": conflict is None,
            "conflict": conflict.model_dump(mode="json") if conflict else None,
        }
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to validate task %s", task_id)
        raise HTTPException(status_code=500, detail=str(e))


# ------------------------------
# Views
# ------------------------------

@app.get("/projects/{project_id}/gantt")
async def get_gantt(
    project_id: str,
    scale: str = Query(default=config.DEFAULT_TIME_SCALE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _open_project(db, project_id, current_user)
    try:
        time_scale = parse_scale(scale)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    try:
        store = load_task_store(db, project_id, persist=False)
        view = build_gantt_view(
            store.list_tasks(),
            time_scale,
            today=date.today(),
            label_width=config.GANTT_LABEL_WIDTH,
            row_height=config.GANTT_ROW_HEIGHT,
        )
        workers = load_workers(db, project_id)
        by_id = {t.id: t for t in store.list_tasks()}
        for bar in view["bars"]:
            bar["assigned_worker_name"] = worker_name(workers, by_id[bar["id"]].assigned_worker_id)
        view["can_edit"] = current_user.can_edit
        return view
    except Exception as e:
        logging.exception("Failed to build gantt for %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/projects/{project_id}/dependencies")
async def get_dependencies(project_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _open_project(db, project_id, current_user)
    try:
        graph = load_task_store(db, project_id, persist=False).graph()
        return {
            "edges": [{"from": u, "to": v} for u, v in graph.edges()],
            "order": graph.topological_order(),
            "graph_text": format_dependency_graph(graph),
        }
    except Exception as e:
        logging.exception("Failed to build dependency graph for %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/projects/{project_id}/progress")
async def get_progress(project_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _open_project(db, project_id, current_user)
    try:
        tasks = load_task_store(db, project_id, persist=False).list_tasks()
        today = date.today()
        summary = project_progress(tasks)
        summary["tasks"] = [
            {
                "id": t.id,
                "name": t.name,
                "status": t.status.value,
                "progress": round(task_progress(t), 2),
                "schedule_progress": round(schedule_progress(t, today), 2),
            }
            for t in tasks
        ]
        return summary
    except Exception as e:
        logging.exception("Failed to compute progress for %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


# ------------------------------
# Drag gestures
# ------------------------------

@app.post("/projects/{project_id}/gantt/gesture")
async def begin_gesture(
    project_id: str,
    request: GestureBeginRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_editor(current_user)
    _open_project(db, project_id, current_user)
    key = (current_user.id, project_id)
    try:
        store = load_task_store(db, project_id, persist=False)
        controller = _GESTURES.get(key)
        if controller is None:
            controller = InteractionController(
                store,
                scale=request.scale or config.DEFAULT_TIME_SCALE,
                can_edit=current_user.can_edit,
            )
            _GESTURES[key] = controller
        elif not controller.is_dragging:
            controller.bind(store)
            if request.scale:
                controller.set_scale(request.scale)
        drag = controller.begin(request.task_id, request.mode, request.x)
        return {"state": controller.state, "drag": drag.model_dump(mode="json")}
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except ValueError as e:
        # unknown time scale
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        logging.exception("Failed to start gesture on %s", request.task_id)
        raise HTTPException(status_code=500, detail=str(e))


def _controller_for(user: User, project_id: str) -> InteractionController:
    controller = _GESTURES.get((user.id, project_id))
    if controller is None or not controller.is_dragging:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No drag in progress")
    return controller


@app.post("/projects/{project_id}/gantt/gesture/move")
async def move_gesture(
    project_id: str,
    request: GesturePointerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _open_project(db, project_id, current_user)
    controller = _controller_for(current_user, project_id)
    try:
        return controller.move(request.x).model_dump(mode="json")
    except ScheduleError as e:
        raise _schedule_http_error(e)


@app.post("/projects/{project_id}/gantt/gesture/release")
async def release_gesture(
    project_id: str,
    request: GesturePointerRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _open_project(db, project_id, current_user)
    controller = _controller_for(current_user, project_id)
    try:
        # Commit against the current data, not the snapshot taken at begin
        controller.bind(load_task_store(db, project_id))
        result = controller.release(request.x)
        return result.model_dump(mode="json")
    except ScheduleError as e:
        raise _schedule_http_error(e)
    except Exception as e:
        logging.exception("Failed to release gesture in %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.UVICORN_HOST, port=config.UVICORN_PORT)
