from fastapi import FastAPI, Body, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import traceback
import uvicorn
import os

import database
import queries
import summary
from errors import TrackerError
from models import (
    SessionType, Priority, TaskStatus,
    describe_errors, serialize_session, serialize_task, to_naive_utc,
)

API_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("APP_ENV", "development")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.ensure_indexes()
    except Exception as e:
        print(f"⚠️  Could not create indexes: {e}")
    yield


app = FastAPI(title="Personal Time Tracker API", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERROR HANDLING ====================

def error_response(status_code: int, message: str, **extra):
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, describe_errors(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    print(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    traceback.print_exc()
    if ENVIRONMENT == "production":
        return error_response(500, "Something went wrong!")
    return error_response(500, "Something went wrong!", error=str(exc))


def ok(data=None, message=None, **extra):
    content = {"success": True}
    if data is not None:
        content["data"] = data
    if message:
        content["message"] = message
    content.update(extra)
    return content


# ==================== ROOT ====================

@app.get("/")
async def read_root():
    """API name, version and where things live"""
    return {
        "message": "Personal Time Tracker API",
        "version": API_VERSION,
        "endpoints": {
            "sessions": "/api/sessions",
            "tasks": "/api/tasks",
            "analytics": "/api/analytics",
        },
    }


# ==================== SESSION ROUTES ====================

@app.get("/api/sessions")
async def get_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    category: Optional[str] = None,
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    sort_by: str = Query("startTime", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
):
    """List time sessions with filters and pagination"""
    sessions, pagination = queries.list_sessions(
        category=category,
        session_type=session_type.value if session_type else None,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ok([serialize_session(s) for s in sessions], pagination=pagination)


@app.post("/api/sessions", status_code=201)
async def create_session(payload: dict = Body(...)):
    """Store a finished timer interval"""
    session = database.create_session(payload)
    return ok(serialize_session(session), "Time session created successfully")


@app.get("/api/sessions/categories")
async def get_session_categories():
    return ok(queries.session_categories())


@app.get("/api/sessions/today-summary")
async def get_today_summary():
    return ok(summary.today_summary())


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    return ok(serialize_session(database.get_session(session_id)))


@app.put("/api/sessions/{session_id}")
async def update_session(session_id: str, payload: dict = Body(...)):
    session = database.update_session(session_id, payload)
    return ok(serialize_session(session), "Time session updated successfully")


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    database.delete_session(session_id)
    return ok(message="Time session deleted successfully")


# ==================== TASK ROUTES ====================

@app.get("/api/tasks")
async def get_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    status: Optional[TaskStatus] = None,
    priority: Optional[Priority] = None,
    category: Optional[str] = None,
    completed: Optional[bool] = None,
    overdue: bool = False,
    upcoming: bool = False,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
):
    """List tasks with filters, search and pagination"""
    tasks, pagination = queries.list_tasks(
        status=status.value if status else None,
        priority=priority.value if priority else None,
        category=category,
        completed=completed,
        overdue=overdue,
        upcoming=upcoming,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    now = datetime.utcnow()
    return ok([serialize_task(t, now) for t in tasks], pagination=pagination)


@app.post("/api/tasks", status_code=201)
async def create_task(payload: dict = Body(...)):
    task = database.create_task(payload)
    return ok(serialize_task(task), "Task created successfully")


@app.get("/api/tasks/categories")
async def get_task_categories():
    return ok(queries.task_categories())


@app.get("/api/tasks/stats/dashboard")
async def get_task_dashboard():
    return ok(summary.task_dashboard())


@app.get("/api/tasks/{task_id}")
async def get_task(task_id: str):
    return ok(serialize_task(database.get_task(task_id)))


@app.put("/api/tasks/{task_id}")
async def update_task(task_id: str, payload: dict = Body(...)):
    task = database.update_task(task_id, payload)
    return ok(serialize_task(task), "Task updated successfully")


@app.delete("/api/tasks/{task_id}")
async def delete_task(task_id: str):
    database.delete_task(task_id)
    return ok(message="Task deleted successfully")


@app.patch("/api/tasks/{task_id}/complete")
async def toggle_task(task_id: str):
    task = database.toggle_task_completion(task_id)
    state = "completed" if task.get("completed") else "reopened"
    return ok(serialize_task(task), f"Task {state} successfully")


@app.post("/api/tasks/{task_id}/subtasks")
async def add_subtask(task_id: str, payload: dict = Body(...)):
    task = database.add_subtask(task_id, payload.get("title"))
    return ok(serialize_task(task), "Subtask added successfully")


@app.patch("/api/tasks/{task_id}/subtasks/{subtask_id}")
async def toggle_subtask(task_id: str, subtask_id: str):
    task, subtask = database.toggle_subtask(task_id, subtask_id)
    state = "completed" if subtask.get("completed") else "reopened"
    return ok(serialize_task(task), f"Subtask {state} successfully")


# ==================== ANALYTICS ROUTES ====================

@app.get("/api/analytics/dashboard")
async def get_dashboard(period: str = summary.DEFAULT_DASHBOARD_PERIOD):
    return ok(await summary.dashboard(period))


@app.get("/api/analytics/time-tracking")
async def get_time_tracking(
    group_by: str = Query("day", alias="groupBy"),
    category: Optional[str] = None,
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    rows, metadata = summary.time_tracking(
        group_by=group_by,
        category=category,
        session_type=session_type.value if session_type else None,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
    )
    return ok(rows, metadata=metadata)


@app.get("/api/analytics/productivity")
async def get_productivity(period: str = "30d"):
    return ok(summary.productivity(period))


@app.get("/api/analytics/habits")
async def get_habits(days: int = Query(30, ge=1)):
    return ok(summary.habits(days))


@app.get("/api/analytics/goals")
async def get_goals(period: str = "30d"):
    return ok(summary.goals(period))


if __name__ == "__main__":
    PORT = int(os.getenv("PORT", 8000))
    print("🎯 Starting Personal Time Tracker API...")
    print("=" * 60)
    print(f"🚀 Server running on port {PORT}")
    print(f"🗄️  Database: {database.MONGO_DB_NAME}")
    print("=" * 60)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
