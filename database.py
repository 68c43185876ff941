from pymongo import MongoClient, ASCENDING, DESCENDING
from datetime import datetime
import os
from dotenv import load_dotenv
from bson import ObjectId

from errors import NotFoundError, ValidationError
from models import (
    TimeSession, Task, SubtaskCreate, TaskStatus,
    validate_record, apply_subtask_rule, round_half_up,
)

load_dotenv()

# MongoDB connection
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "time_tracker")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=MONGO_TIMEOUT_MS)
db = client[MONGO_DB_NAME]

# Collections
sessions_collection = db["time_sessions"]
tasks_collection = db["tasks"]

# Server-managed fields never taken from a client patch
PROTECTED_FIELDS = ("_id", "createdAt", "updatedAt")


def ensure_indexes():
    """Create the indexes list and aggregation queries rely on"""
    sessions_collection.create_index([("startTime", DESCENDING)])
    sessions_collection.create_index("category")
    sessions_collection.create_index("sessionType")

    tasks_collection.create_index("status")
    tasks_collection.create_index("priority")
    tasks_collection.create_index([("dueDate", ASCENDING)])
    tasks_collection.create_index("category")
    print("✅ Indexes ensured")


def to_object_id(record_id, label="Record"):
    """Parse an id from a URL; malformed ids are simply not found"""
    if isinstance(record_id, ObjectId):
        return record_id
    if not isinstance(record_id, str) or not ObjectId.is_valid(record_id):
        raise NotFoundError(f"{label} not found")
    return ObjectId(record_id)


def _merge_patch(existing: dict, patch: dict) -> dict:
    if not isinstance(patch, dict):
        raise ValidationError("Request body must be a JSON object")
    merged = {key: value for key, value in existing.items() if key not in PROTECTED_FIELDS}
    merged.update({key: value for key, value in patch.items() if key not in PROTECTED_FIELDS})
    return merged


# ==================== SESSIONS ====================

def create_session(fields: dict):
    """Persist a finished timer interval"""
    session = validate_record(TimeSession, fields)
    now = datetime.utcnow()

    doc = session.to_document()
    doc["createdAt"] = now
    doc["updatedAt"] = now

    result = sessions_collection.insert_one(doc)
    doc["_id"] = result.inserted_id

    if session.linked_task:
        _after_session_saved(doc)

    return doc


def _after_session_saved(doc: dict):
    # Best effort: the session is already stored whatever happens here
    try:
        add_time_spent(doc["linkedTask"], round_half_up(doc["duration"] / 60))
    except Exception as e:
        print(f"⚠️  Could not add time to linked task {doc.get('linkedTask')}: {e}")


def get_session(session_id):
    doc = sessions_collection.find_one({"_id": to_object_id(session_id, "Time session")})
    if not doc:
        raise NotFoundError("Time session not found")
    return doc


def update_session(session_id, patch: dict):
    existing = get_session(session_id)
    session = validate_record(TimeSession, _merge_patch(existing, patch))

    doc = session.to_document()
    doc["createdAt"] = existing.get("createdAt")
    doc["updatedAt"] = datetime.utcnow()

    result = sessions_collection.replace_one({"_id": existing["_id"]}, doc)
    if result.matched_count == 0:
        raise NotFoundError("Time session not found")
    doc["_id"] = existing["_id"]
    return doc


def delete_session(session_id):
    result = sessions_collection.delete_one({"_id": to_object_id(session_id, "Time session")})
    if result.deleted_count == 0:
        raise NotFoundError("Time session not found")


def find_sessions(query: dict = None):
    return list(sessions_collection.find(query or {}))


# ==================== TASKS ====================

def _save_task(task_id: ObjectId, doc: dict, created_at=None):
    doc["createdAt"] = created_at
    doc["updatedAt"] = datetime.utcnow()
    result = tasks_collection.replace_one({"_id": task_id}, doc)
    if result.matched_count == 0:
        raise NotFoundError("Task not found")
    doc["_id"] = task_id
    return doc


def create_task(fields: dict):
    task = validate_record(Task, fields)
    now = datetime.utcnow()

    doc = apply_subtask_rule(task.to_document(), now)
    if doc.get("completed") and not doc.get("completedAt"):
        doc["completedAt"] = now
    doc["createdAt"] = now
    doc["updatedAt"] = now

    result = tasks_collection.insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_task(task_id):
    doc = tasks_collection.find_one({"_id": to_object_id(task_id, "Task")})
    if not doc:
        raise NotFoundError("Task not found")
    return doc


def update_task(task_id, patch: dict):
    existing = get_task(task_id)
    task = validate_record(Task, _merge_patch(existing, patch))
    now = datetime.utcnow()

    doc = task.to_document()
    if doc.get("completed") and not doc.get("completedAt"):
        doc["completedAt"] = now
    elif not doc.get("completed"):
        doc.pop("completedAt", None)
    apply_subtask_rule(doc, now)

    return _save_task(existing["_id"], doc, existing.get("createdAt"))


def delete_task(task_id):
    # Sessions keep their linkedTask reference
    result = tasks_collection.delete_one({"_id": to_object_id(task_id, "Task")})
    if result.deleted_count == 0:
        raise NotFoundError("Task not found")


def toggle_task_completion(task_id):
    """Flip completion directly, even while subtasks are still open"""
    doc = get_task(task_id)

    if doc.get("completed"):
        changes = {"completed": False, "completedAt": None, "status": TaskStatus.TODO.value}
    else:
        changes = {
            "completed": True,
            "completedAt": datetime.utcnow(),
            "status": TaskStatus.COMPLETED.value,
        }
    changes["updatedAt"] = datetime.utcnow()

    tasks_collection.update_one({"_id": doc["_id"]}, {"$set": changes})
    doc.update(changes)
    return doc


def add_subtask(task_id, title):
    subtask = validate_record(SubtaskCreate, {"title": title})
    doc = get_task(task_id)

    doc.setdefault("subtasks", []).append({
        "_id": ObjectId(),
        "title": subtask.title,
        "completed": False,
    })
    apply_subtask_rule(doc)

    task_oid = doc.pop("_id")
    return _save_task(task_oid, doc, doc.get("createdAt"))


def toggle_subtask(task_id, subtask_id):
    doc = get_task(task_id)
    subtask_oid = to_object_id(subtask_id, "Subtask")

    subtask = next((s for s in doc.get("subtasks", []) if s.get("_id") == subtask_oid), None)
    if subtask is None:
        raise NotFoundError("Subtask not found")

    now = datetime.utcnow()
    subtask["completed"] = not subtask.get("completed", False)
    subtask["completedAt"] = now if subtask["completed"] else None
    apply_subtask_rule(doc, now)

    task_oid = doc.pop("_id")
    return _save_task(task_oid, doc, doc.get("createdAt")), subtask


def add_time_spent(task_id, minutes: int):
    """Accumulate minutes worked on a task"""
    result = tasks_collection.update_one(
        {"_id": to_object_id(task_id, "Task")},
        {
            "$inc": {"actualTime": minutes},
            "$set": {"updatedAt": datetime.utcnow()}
        }
    )
    if result.matched_count == 0:
        raise NotFoundError("Task not found")


def find_tasks(query: dict = None):
    return list(tasks_collection.find(query or {}))
