"""Aggregations behind the dashboards.

Everything here is a pure function of a list of session or task documents.
Each aggregation is one call to ``group_and_reduce`` with a key function and a
set of reducers, mirroring a Mongo ``$group`` stage.
"""
from collections import namedtuple
from datetime import datetime, timedelta

from models import round_half_up

# initial() -> accumulator, step(acc, record) -> acc, finish(acc) -> value
Reducer = namedtuple("Reducer", ["initial", "step", "finish"])


def _value(field, record):
    return field(record) if callable(field) else record.get(field)


def _identity(acc):
    return acc


def count(where=None):
    def step(acc, record):
        if where is not None and not where(record):
            return acc
        return acc + 1
    return Reducer(lambda: 0, step, _identity)


def total(field, where=None):
    def step(acc, record):
        if where is not None and not where(record):
            return acc
        return acc + (_value(field, record) or 0)
    return Reducer(lambda: 0, step, _identity)


def average(field, where=None):
    """Mean of the non-missing values; None when the group has none"""
    def step(acc, record):
        value = _value(field, record)
        if value is None or (where is not None and not where(record)):
            return acc
        return acc[0] + value, acc[1] + 1

    def finish(acc):
        return acc[0] / acc[1] if acc[1] else None

    return Reducer(lambda: (0, 0), step, finish)


def _key_value(key):
    # composite keys come back as dicts, like Mongo's compound _id
    if isinstance(key, tuple):
        return dict(key)
    return key


def _sort_key(field):
    def key(row):
        value = row[field]
        if isinstance(value, dict):
            return tuple(value.values())
        return float("-inf") if value is None else value
    return key


def group_and_reduce(records, key, reducers, sort_by=None, descending=False, limit=None):
    """Group records by ``key(record)`` and fold each group through ``reducers``.

    Returns rows shaped ``{"_id": <group key>, <reducer name>: <value>, ...}``,
    optionally sorted by a row field (``"_id"`` sorts by the group key).
    """
    groups = {}
    for record in records:
        group = key(record)
        if group not in groups:
            groups[group] = {name: reducer.initial() for name, reducer in reducers.items()}
        accumulators = groups[group]
        for name, reducer in reducers.items():
            accumulators[name] = reducer.step(accumulators[name], record)

    rows = []
    for group, accumulators in groups.items():
        row = {"_id": _key_value(group)}
        for name, reducer in reducers.items():
            row[name] = reducer.finish(accumulators[name])
        rows.append(row)

    if sort_by is not None:
        rows.sort(key=_sort_key(sort_by), reverse=descending)
    if limit is not None:
        rows = rows[:limit]
    return rows


def _single(rows, defaults):
    if not rows:
        return dict(defaults)
    row = dict(rows[0])
    row.pop("_id", None)
    return row


# ==================== KEYS & PREDICATES ====================

def is_focus(record):
    return record.get("sessionType") == "focus"


def is_break(record):
    return record.get("sessionType") == "break"


def is_rated(record):
    return record.get("productivity") is not None


def everything(record):
    return None


def day_of_week(moment: datetime) -> int:
    """1 = Sunday ... 7 = Saturday"""
    return moment.isoweekday() % 7 + 1


BUCKET_PARTS = {
    "hour": (
        ("year", lambda t: t.year),
        ("month", lambda t: t.month),
        ("day", lambda t: t.day),
        ("hour", lambda t: t.hour),
    ),
    "day": (
        ("year", lambda t: t.year),
        ("month", lambda t: t.month),
        ("day", lambda t: t.day),
    ),
    # Sunday-based week number, 0-53
    "week": (
        ("year", lambda t: t.year),
        ("week", lambda t: int(t.strftime("%U"))),
    ),
    "month": (
        ("year", lambda t: t.year),
        ("month", lambda t: t.month),
    ),
}


def bucket_key(group_by="day", field="startTime"):
    parts = BUCKET_PARTS.get(group_by, BUCKET_PARTS["day"])

    def key(record):
        moment = record[field]
        return tuple((name, part(moment)) for name, part in parts)
    return key


def hour_of(record):
    return record["startTime"].hour


# ==================== SESSION AGGREGATIONS ====================

def time_bucket_stats(sessions, group_by="day"):
    return group_and_reduce(
        sessions,
        bucket_key(group_by),
        {
            "sessionCount": count(),
            "totalDuration": total("duration"),
            "avgDuration": average("duration"),
            "avgProductivity": average("productivity"),
            "focusSessionCount": count(where=is_focus),
            "focusTime": total("duration", where=is_focus),
            "breakTime": total("duration", where=is_break),
        },
        sort_by="_id",
    )


def time_stats(sessions):
    rows = group_and_reduce(sessions, everything, {
        "totalSessions": count(),
        "totalTime": total("duration"),
        "avgSessionLength": average("duration"),
        "focusTime": total("duration", where=is_focus),
        "breakTime": total("duration", where=is_break),
    })
    return _single(rows, {
        "totalSessions": 0,
        "totalTime": 0,
        "avgSessionLength": 0,
        "focusTime": 0,
        "breakTime": 0,
    })


def productivity_stats(sessions):
    rows = group_and_reduce([s for s in sessions if is_rated(s)], everything, {
        "avgProductivity": average("productivity"),
        "sessionsWithRating": count(),
    })
    return _single(rows, {"avgProductivity": 0, "sessionsWithRating": 0})


def category_breakdown(sessions):
    return group_and_reduce(
        sessions,
        lambda s: s.get("category"),
        {"totalDuration": total("duration"), "sessionCount": count()},
        sort_by="totalDuration",
        descending=True,
    )


def session_type_breakdown(sessions):
    return group_and_reduce(
        sessions,
        lambda s: s.get("sessionType"),
        {"totalDuration": total("duration"), "sessionCount": count()},
    )


def daily_breakdown(sessions):
    return group_and_reduce(
        sessions,
        bucket_key("day"),
        {
            "totalDuration": total("duration"),
            "sessionCount": count(),
            "focusTime": total("duration", where=is_focus),
        },
        sort_by="_id",
    )


def productivity_trends(sessions):
    rated = [s for s in sessions if is_rated(s)]

    trends = group_and_reduce(
        rated,
        bucket_key("day"),
        {
            "avgProductivity": average("productivity"),
            "sessionCount": count(),
            "focusTime": total("duration", where=is_focus),
        },
        sort_by="_id",
    )
    by_category = group_and_reduce(
        rated,
        lambda s: s.get("category"),
        {
            "avgProductivity": average("productivity"),
            "sessionCount": count(),
            "totalDuration": total("duration"),
        },
        sort_by="avgProductivity",
        descending=True,
    )
    by_hour = group_and_reduce(
        rated,
        hour_of,
        {"avgProductivity": average("productivity"), "sessionCount": count()},
        sort_by="avgProductivity",
        descending=True,
    )
    return {"trends": trends, "categoryBreakdown": by_category, "hourlyPatterns": by_hour}


def peak_hours(sessions, limit=3):
    return group_and_reduce(
        [s for s in sessions if is_focus(s) and is_rated(s)],
        hour_of,
        {
            "avgProductivity": average("productivity"),
            "totalDuration": total("duration"),
            "sessionCount": count(),
        },
        sort_by="avgProductivity",
        descending=True,
        limit=limit,
    )


def weekly_pattern(sessions):
    return group_and_reduce(
        sessions,
        lambda s: day_of_week(s["startTime"]),
        {
            "totalDuration": total("duration"),
            "sessionCount": count(),
            "avgSessionLength": average("duration"),
        },
        sort_by="_id",
    )


def active_focus_days(sessions):
    return len(group_and_reduce([s for s in sessions if is_focus(s)], bucket_key("day"), {}))


def consistency_score(sessions, days):
    if not days or days <= 0:
        return 0
    return round_half_up(active_focus_days(sessions) / days * 100)


def goal_achievement(sessions, tasks):
    planned = [s for s in sessions if is_focus(s) and s.get("plannedDuration") is not None]
    time_goals = _single(
        group_and_reduce(planned, everything, {
            "totalPlannedTime": total("plannedDuration"),
            "totalActualTime": total("duration"),
            "completedSessions": count(where=lambda s: bool(s.get("completed"))),
            "totalSessions": count(),
        }),
        {"totalPlannedTime": 0, "totalActualTime": 0, "completedSessions": 0, "totalSessions": 0},
    )
    if time_goals["totalPlannedTime"] > 0:
        time_goals["achievementRate"] = round_half_up(
            time_goals["totalActualTime"] / time_goals["totalPlannedTime"] * 100
        )

    task_goals = _single(
        group_and_reduce(tasks, everything, {
            "totalTasks": count(),
            "completedTasks": count(where=lambda t: bool(t.get("completed"))),
            "totalEstimatedTime": total("estimatedTime"),
            "totalActualTime": total("actualTime"),
        }),
        {"totalTasks": 0, "completedTasks": 0, "totalEstimatedTime": 0, "totalActualTime": 0},
    )
    if task_goals["totalTasks"] > 0:
        task_goals["completionRate"] = round_half_up(
            task_goals["completedTasks"] / task_goals["totalTasks"] * 100
        )

    return {"timeGoals": time_goals, "taskGoals": task_goals}


# ==================== TASK AGGREGATIONS ====================

def task_stats(tasks):
    rows = group_and_reduce(tasks, everything, {
        "totalTasks": count(),
        "completedTasks": count(where=lambda t: bool(t.get("completed"))),
        "avgActualTime": average("actualTime"),
        "totalActualTime": total("actualTime"),
    })
    stats = _single(rows, {"totalTasks": 0, "completedTasks": 0, "avgActualTime": 0, "totalActualTime": 0})
    if stats["avgActualTime"] is None:
        stats["avgActualTime"] = 0
    return stats


def task_dashboard_stats(tasks, now=None, upcoming_days=7):
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    horizon = now + timedelta(days=upcoming_days)

    def is_done(task):
        return bool(task.get("completed"))

    def due_between(low, high, inclusive=False):
        def check(task):
            due = task.get("dueDate")
            if due is None:
                return False
            return low <= due <= high if inclusive else low <= due < high
        return check

    def overdue(task):
        due = task.get("dueDate")
        return due is not None and due < now and not is_done(task)

    upcoming_window = due_between(now, horizon, inclusive=True)

    counts = _single(
        group_and_reduce(tasks, everything, {
            "totalTasks": count(),
            "completedTasks": count(where=is_done),
            "overdueTasks": count(where=overdue),
            "dueTodayTasks": count(where=due_between(today, tomorrow)),
            "upcomingTasks": count(where=lambda t: upcoming_window(t) and not is_done(t)),
        }),
        {"totalTasks": 0, "completedTasks": 0, "overdueTasks": 0, "dueTodayTasks": 0, "upcomingTasks": 0},
    )

    counts["completionRate"] = (
        round_half_up(counts["completedTasks"] / counts["totalTasks"] * 100)
        if counts["totalTasks"] > 0 else 0
    )
    counts["categoryStats"] = group_and_reduce(
        tasks, lambda t: t.get("category"), {"count": count()},
        sort_by="count", descending=True,
    )
    counts["priorityStats"] = group_and_reduce(
        [t for t in tasks if not is_done(t)], lambda t: t.get("priority"), {"count": count()},
    )
    return counts
