import asyncio
import re
from datetime import datetime, timedelta

from starlette.concurrency import run_in_threadpool

import analytics
import database
import queries
from errors import ValidationError

DASHBOARD_PERIODS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
DEFAULT_DASHBOARD_PERIOD = "7d"
PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s*d?\s*$")


def resolve_period(token, default="30d"):
    """Turn a '<n>d' token into a number of days"""
    match = PERIOD_PATTERN.match(str(token if token is not None else default))
    if not match or int(match.group(1)) < 1:
        raise ValidationError(f"Invalid period: {token!r} (expected e.g. '30d')")
    return int(match.group(1))


def window(days, now=None):
    end_date = now or datetime.utcnow()
    return end_date - timedelta(days=days), end_date


def _created_between(start_date, end_date):
    return {"createdAt": {"$gte": start_date, "$lte": end_date}}


def today_summary(now=None):
    """Totals for the current UTC day, accumulated session by session"""
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)

    sessions = database.find_sessions({"startTime": {"$gte": today, "$lt": tomorrow}})

    summary = {
        "totalSessions": len(sessions),
        "totalTime": 0,
        "focusTime": 0,
        "breakTime": 0,
        "averageProductivity": 0,
        "categoriesBreakdown": {},
    }
    ratings = []

    for session in sessions:
        duration = session.get("duration", 0)
        summary["totalTime"] += duration
        if session.get("sessionType") == "focus":
            summary["focusTime"] += duration
        elif session.get("sessionType") == "break":
            summary["breakTime"] += duration
        if session.get("productivity") is not None:
            ratings.append(session["productivity"])

        category = session.get("category", "General")
        summary["categoriesBreakdown"][category] = summary["categoriesBreakdown"].get(category, 0) + duration

    if ratings:
        summary["averageProductivity"] = sum(ratings) / len(ratings)

    return summary


def _compute(reduce, fetch, query):
    return reduce(fetch(query))


async def dashboard(period=DEFAULT_DASHBOARD_PERIOD, now=None):
    """Every dashboard section for the period, computed concurrently"""
    if period not in DASHBOARD_PERIODS:
        period = DEFAULT_DASHBOARD_PERIOD
    start_date, end_date = window(DASHBOARD_PERIODS[period], now)

    in_window = queries.build_session_filter(start_date=start_date, end_date=end_date)
    sections = {
        "timeStats": (analytics.time_stats, database.find_sessions, in_window),
        "productivityStats": (analytics.productivity_stats, database.find_sessions, in_window),
        "categoryBreakdown": (analytics.category_breakdown, database.find_sessions, in_window),
        "sessionTypeBreakdown": (analytics.session_type_breakdown, database.find_sessions, in_window),
        "todoStats": (analytics.task_stats, database.find_tasks, _created_between(start_date, end_date)),
        "dailyBreakdown": (analytics.daily_breakdown, database.find_sessions, in_window),
    }

    results = await asyncio.gather(*(
        run_in_threadpool(_compute, reduce, fetch, query)
        for reduce, fetch, query in sections.values()
    ))

    data = {
        "period": period,
        "dateRange": {"startDate": start_date, "endDate": end_date},
    }
    data.update(zip(sections.keys(), results))
    return data


def time_tracking(group_by="day", category=None, session_type=None, start_date=None, end_date=None):
    query = queries.build_session_filter(category, session_type, start_date, end_date)
    rows = analytics.time_bucket_stats(database.find_sessions(query), group_by)
    metadata = {
        "groupBy": group_by if group_by in analytics.BUCKET_PARTS else "day",
        "totalRecords": len(rows),
        "filters": {"category": category, "sessionType": session_type},
    }
    return rows, metadata


def productivity(period="30d", now=None):
    start_date, end_date = window(resolve_period(period), now)
    sessions = database.find_sessions(queries.build_session_filter(start_date=start_date, end_date=end_date))
    return analytics.productivity_trends(sessions)


def habits(days=30, now=None):
    if days < 1:
        raise ValidationError("days must be at least 1")
    start_date, end_date = window(days, now)
    sessions = database.find_sessions(queries.build_session_filter(start_date=start_date, end_date=end_date))

    return {
        "weeklyPatterns": analytics.weekly_pattern(sessions),
        "consistencyScore": analytics.consistency_score(sessions, days),
        "peakHours": analytics.peak_hours(sessions),
        "totalDaysAnalyzed": days,
        "activeDays": analytics.active_focus_days(sessions),
    }


def goals(period="30d", now=None):
    start_date, end_date = window(resolve_period(period), now)
    sessions = database.find_sessions(queries.build_session_filter(start_date=start_date, end_date=end_date))
    tasks = database.find_tasks(_created_between(start_date, end_date))
    return analytics.goal_achievement(sessions, tasks)


def task_dashboard(now=None):
    return analytics.task_dashboard_stats(database.find_tasks(), now)
