import math
import re
from datetime import datetime, timedelta

from pymongo import ASCENDING, DESCENDING

import database
from errors import ValidationError

UPCOMING_DAYS = 7


def build_session_filter(category=None, session_type=None, start_date=None, end_date=None):
    query = {}
    if category:
        query["category"] = category
    if session_type:
        query["sessionType"] = session_type
    if start_date or end_date:
        query["startTime"] = {}
        if start_date:
            query["startTime"]["$gte"] = start_date
        if end_date:
            query["startTime"]["$lte"] = end_date
    return query


def build_task_filter(status=None, priority=None, category=None, completed=None,
                      overdue=False, upcoming=False, search=None, now=None):
    """Translate task list parameters into a Mongo filter.

    ``overdue`` and ``upcoming`` replace any due date condition and force
    ``completed=False``. If both are given, ``upcoming`` is applied last and wins.
    """
    now = now or datetime.utcnow()
    query = {}

    if status:
        query["status"] = status
    if priority:
        query["priority"] = priority
    if category:
        query["category"] = category
    if completed is not None:
        query["completed"] = completed

    if overdue:
        query["dueDate"] = {"$lt": now}
        query["completed"] = False

    if upcoming:
        query["dueDate"] = {"$gte": now, "$lte": now + timedelta(days=UPCOMING_DAYS)}
        query["completed"] = False

    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]

    return query


def paginate(collection, query, sort_by, sort_order="desc", page=1, limit=20):
    """Return one page of documents plus pagination metadata (1-indexed)"""
    if not sort_by or sort_by.startswith("$"):
        raise ValidationError(f"Invalid sort field: {sort_by!r}")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    direction = DESCENDING if sort_order == "desc" else ASCENDING
    sort = [(sort_by, direction)]
    if sort_by != "_id":
        # tie-break so pages never overlap
        sort.append(("_id", direction))

    documents = list(
        collection.find(query)
        .sort(sort)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total = collection.count_documents(query)

    return documents, {
        "currentPage": page,
        "totalPages": math.ceil(total / limit),
        "total": total,
        "hasNextPage": page * limit < total,
        "hasPrevPage": page > 1,
    }


def list_sessions(category=None, session_type=None, start_date=None, end_date=None,
                  sort_by="startTime", sort_order="desc", page=1, limit=20):
    query = build_session_filter(category, session_type, start_date, end_date)
    return paginate(database.sessions_collection, query, sort_by, sort_order, page, limit)


def list_tasks(status=None, priority=None, category=None, completed=None,
               overdue=False, upcoming=False, search=None,
               sort_by="createdAt", sort_order="desc", page=1, limit=20):
    query = build_task_filter(status, priority, category, completed, overdue, upcoming, search)
    return paginate(database.tasks_collection, query, sort_by, sort_order, page, limit)


def session_categories():
    return database.sessions_collection.distinct("category")


def task_categories():
    return database.tasks_collection.distinct("category")
