from enum import Enum
from typing import List, Optional
from pydantic import BaseModel
from datetime import date


class TaskStatus(str, Enum):
    NOT_STARTED = "No Iniciado"
    IN_PROGRESS = "En Progreso"
    COMPLETED = "Completado"
    DELAYED = "Retrasado"


# Statuses that require every prerequisite to be completed
ADVANCED_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


class TaskModel(BaseModel):
    id: str
    name: str
    description: str = ""
    start_date: date
    end_date: date
    status: TaskStatus = TaskStatus.NOT_STARTED
    depends_on: List[str] = []
    total_volume: Optional[float] = None
    completed_volume: Optional[float] = None
    volume_unit: Optional[str] = None
    total_value: Optional[float] = None
    completion_date: Optional[date] = None
    assigned_worker_id: Optional[str] = None
    photo_ids: List[str] = []


class WorkerModel(BaseModel):
    id: str
    name: str
    role: Optional[str] = None
    hourly_rate: Optional[float] = None


class PhotoModel(BaseModel):
    id: str
    url: str
    description: str = ""
    upload_date: Optional[date] = None


class ProjectModel(BaseModel):
    id: str
    name: str
    owner_id: Optional[str] = None
    pin: Optional[str] = None
    tasks: List[TaskModel] = []
