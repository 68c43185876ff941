from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
from bson import ObjectId
import math
import pydantic

from errors import ValidationError


class SessionType(str, Enum):
    FOCUS = "focus"
    BREAK = "break"
    STOPWATCH = "stopwatch"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (95.5 -> 96)"""
    return int(math.floor(value + 0.5))


def to_naive_utc(value):
    """Store every timestamp as naive UTC, the way pymongo hands them back"""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _object_id_string(value):
    if isinstance(value, ObjectId):
        return str(value)
    if value == "":
        return None
    if value is not None and not (isinstance(value, str) and ObjectId.is_valid(value)):
        raise ValueError("must be a valid record id")
    return value


class RecordModel(BaseModel):
    # camelCase on the wire and in Mongo, snake_case in Python
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


class TimeSession(RecordModel):
    session_type: SessionType
    category: str = Field(default="General", min_length=1)
    description: Optional[str] = None
    duration: int = Field(ge=0)  # seconds
    planned_duration: Optional[int] = Field(default=None, ge=0)  # seconds, focus timer only
    start_time: datetime
    end_time: datetime
    completed: bool = False
    productivity: Optional[int] = Field(default=None, ge=1, le=10)  # self-rated
    tags: List[str] = []
    linked_task: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc_times(cls, value):
        return to_naive_utc(value)

    @field_validator("linked_task", mode="before")
    @classmethod
    def _linked_task_id(cls, value):
        return _object_id_string(value)

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, exclude_none=True)
        if self.linked_task:
            doc["linkedTask"] = ObjectId(self.linked_task)
        return doc


class Subtask(RecordModel):
    id: Optional[str] = Field(default=None, alias="_id")
    title: str = Field(min_length=1)
    completed: bool = False
    completed_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _subtask_id(cls, value):
        return _object_id_string(value)

    @field_validator("completed_at")
    @classmethod
    def _utc_completed_at(cls, value):
        return to_naive_utc(value)

    def to_document(self) -> dict:
        doc = {"_id": ObjectId(self.id) if self.id else ObjectId()}
        doc.update(self.model_dump(by_alias=True, exclude_none=True, exclude={"id"}))
        return doc


class Task(RecordModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = Field(default="General", min_length=1)
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_date: Optional[datetime] = None
    reminder: Optional[datetime] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)  # minutes
    actual_time: int = Field(default=0, ge=0)  # minutes
    completed: bool = False
    completed_at: Optional[datetime] = None
    subtasks: List[Subtask] = []
    tags: List[str] = []

    @field_validator("due_date", "reminder", "completed_at")
    @classmethod
    def _utc_times(cls, value):
        return to_naive_utc(value)

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, exclude_none=True, exclude={"subtasks"})
        doc["subtasks"] = [subtask.to_document() for subtask in self.subtasks]
        return doc


class SubtaskCreate(RecordModel):
    title: str = Field(min_length=1)


def describe_errors(errors) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)


def validate_record(schema, fields):
    """Validate raw request fields against a schema, raising ValidationError"""
    if not isinstance(fields, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.model_validate(fields)
    except pydantic.ValidationError as exc:
        raise ValidationError(describe_errors(exc.errors())) from exc


# ==================== DERIVED STATE ====================

def apply_subtask_rule(task: dict, now: datetime = None) -> dict:
    """A task with subtasks is completed exactly when all of them are"""
    subtasks = task.get("subtasks") or []
    if not subtasks:
        return task

    all_done = all(subtask.get("completed") for subtask in subtasks)
    if all_done and not task.get("completed"):
        task["completed"] = True
        task["completedAt"] = now or datetime.utcnow()
        task["status"] = TaskStatus.COMPLETED.value
    elif not all_done and task.get("completed"):
        task["completed"] = False
        task["completedAt"] = None
        task["status"] = TaskStatus.IN_PROGRESS.value
    return task


def completion_percentage(task: dict) -> int:
    subtasks = task.get("subtasks") or []
    if not subtasks:
        return 100 if task.get("completed") else 0
    done = sum(1 for subtask in subtasks if subtask.get("completed"))
    return round_half_up(done / len(subtasks) * 100)


def is_overdue(task: dict, now: datetime = None) -> bool:
    due_date = task.get("dueDate")
    if not due_date or task.get("completed"):
        return False
    return due_date < (now or datetime.utcnow())


def format_duration(seconds) -> str:
    seconds = int(seconds or 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# ==================== JSON SHAPING ====================

def serialize_document(value):
    """Make a Mongo document JSON friendly (ObjectId -> str)"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [serialize_document(item) for item in value]
    return value


def serialize_session(doc: dict) -> dict:
    data = serialize_document(doc)
    data["formattedDuration"] = format_duration(doc.get("duration"))
    return data


def serialize_task(doc: dict, now: datetime = None) -> dict:
    data = serialize_document(doc)
    data.setdefault("completedAt", None)
    data["completionPercentage"] = completion_percentage(doc)
    data["isOverdue"] = is_overdue(doc, now)
    return data
