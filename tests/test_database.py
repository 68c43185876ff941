from datetime import datetime, timedelta

import pytest
from bson import ObjectId

import database
from errors import NotFoundError, ValidationError
from tests.helpers import make_session


@pytest.fixture(autouse=True)
def _store(mongo):
    return mongo


def test_create_session_assigns_id_and_timestamps():
    start = datetime(2026, 3, 18, 9, 0)
    doc = database.create_session(make_session(start, productivity=8))

    stored = database.get_session(str(doc["_id"]))
    assert stored["sessionType"] == "focus"
    assert stored["duration"] == 1500
    assert stored["productivity"] == 8
    assert isinstance(stored["createdAt"], datetime)
    assert isinstance(stored["updatedAt"], datetime)


def test_create_session_rejects_missing_fields():
    with pytest.raises(ValidationError):
        database.create_session({"sessionType": "focus", "category": "Work"})
    assert database.sessions_collection.count_documents({}) == 0


def test_linked_task_accumulates_minutes():
    task = database.create_task({"title": "Read paper"})
    start = datetime(2026, 3, 18, 9, 0)

    database.create_session(make_session(start, duration=1500, linkedTask=str(task["_id"])))
    database.create_session(make_session(start, duration=89, linkedTask=str(task["_id"])))

    assert database.get_task(task["_id"])["actualTime"] == 25 + 1


def test_missing_linked_task_does_not_fail_the_session():
    start = datetime(2026, 3, 18, 9, 0)
    doc = database.create_session(make_session(start, linkedTask=str(ObjectId())))

    assert database.sessions_collection.count_documents({"_id": doc["_id"]}) == 1


def test_update_session_revalidates_merged_record():
    start = datetime(2026, 3, 18, 9, 0)
    doc = database.create_session(make_session(start))
    created_at = database.get_session(doc["_id"])["createdAt"]

    updated = database.update_session(str(doc["_id"]), {"category": "Reading", "productivity": 6})
    assert updated["category"] == "Reading"
    assert updated["duration"] == 1500
    assert updated["createdAt"] == created_at

    with pytest.raises(ValidationError):
        database.update_session(str(doc["_id"]), {"duration": -5})
    assert database.get_session(doc["_id"])["category"] == "Reading"


def test_unknown_and_malformed_ids_are_not_found():
    with pytest.raises(NotFoundError):
        database.get_session(str(ObjectId()))
    with pytest.raises(NotFoundError):
        database.get_task("not-an-id")
    with pytest.raises(NotFoundError):
        database.delete_session(str(ObjectId()))
    with pytest.raises(NotFoundError):
        database.update_task(str(ObjectId()), {"title": "x"})


def test_create_task_applies_subtask_rule():
    task = database.create_task({
        "title": "Release",
        "subtasks": [{"title": "Tag", "completed": True}, {"title": "Publish", "completed": True}],
    })
    assert task["completed"] is True
    assert task["status"] == "completed"
    assert task["completedAt"] is not None


def test_toggling_last_subtask_completes_parent():
    task = database.create_task({"title": "Release", "subtasks": [{"title": "Tag"}, {"title": "Publish"}]})
    first, second = [str(s["_id"]) for s in task["subtasks"]]

    task, _ = database.toggle_subtask(str(task["_id"]), first)
    assert task["completed"] is False

    task, subtask = database.toggle_subtask(str(task["_id"]), second)
    assert subtask["completed"] is True
    assert subtask["completedAt"] is not None
    assert task["completed"] is True
    assert task["status"] == "completed"
    assert task["completedAt"] is not None

    task, subtask = database.toggle_subtask(str(task["_id"]), first)
    assert subtask["completedAt"] is None
    assert task["completed"] is False
    assert task["status"] == "in-progress"

    stored = database.get_task(task["_id"])
    assert stored["completed"] is False
    assert [s["completed"] for s in stored["subtasks"]] == [False, True]


def test_toggle_unknown_subtask():
    task = database.create_task({"title": "Release", "subtasks": [{"title": "Tag"}]})
    with pytest.raises(NotFoundError):
        database.toggle_subtask(str(task["_id"]), str(ObjectId()))


def test_add_subtask_reopens_completed_task():
    task = database.create_task({"title": "Release", "subtasks": [{"title": "Tag", "completed": True}]})
    assert task["completed"] is True

    task = database.add_subtask(str(task["_id"]), "Announce")
    assert len(task["subtasks"]) == 2
    assert task["subtasks"][1]["title"] == "Announce"
    assert task["completed"] is False
    assert task["status"] == "in-progress"

    with pytest.raises(ValidationError):
        database.add_subtask(str(task["_id"]), "  ")


def test_direct_toggle_ignores_open_subtasks():
    task = database.create_task({"title": "Release", "subtasks": [{"title": "Tag"}]})

    task = database.toggle_task_completion(str(task["_id"]))
    assert task["completed"] is True
    assert task["status"] == "completed"
    assert database.get_task(task["_id"])["completed"] is True

    task = database.toggle_task_completion(str(task["_id"]))
    assert task["completed"] is False
    assert task["completedAt"] is None
    assert task["status"] == "todo"


def test_update_task_reapplies_rule_and_keeps_subtask_ids():
    task = database.create_task({"title": "Release", "subtasks": [{"title": "Tag"}]})
    subtask_id = task["subtasks"][0]["_id"]

    subtasks = [{"_id": str(subtask_id), "title": "Tag", "completed": True}]
    updated = database.update_task(str(task["_id"]), {"subtasks": subtasks})

    assert updated["subtasks"][0]["_id"] == subtask_id
    assert updated["completed"] is True
    assert updated["status"] == "completed"


def test_update_task_without_subtasks_stamps_completion():
    task = database.create_task({"title": "Call"})

    updated = database.update_task(str(task["_id"]), {"completed": True, "status": "completed"})
    assert updated["completedAt"] is not None

    updated = database.update_task(str(task["_id"]), {"completed": False, "status": "todo"})
    assert "completedAt" not in updated


def test_add_time_spent_on_unknown_task():
    with pytest.raises(NotFoundError):
        database.add_time_spent(str(ObjectId()), 5)


def test_deleting_task_keeps_linked_sessions():
    task = database.create_task({"title": "Read paper"})
    session = database.create_session(
        make_session(datetime(2026, 3, 18, 9, 0), linkedTask=str(task["_id"]))
    )

    database.delete_task(str(task["_id"]))

    stored = database.get_session(session["_id"])
    assert stored["linkedTask"] == task["_id"]
    with pytest.raises(NotFoundError):
        database.get_task(task["_id"])


def test_find_sessions_filters(now):
    database.create_session(make_session(now - timedelta(days=2)))
    database.create_session(make_session(now - timedelta(hours=1), session_type="break", duration=300))

    recent = database.find_sessions({"startTime": {"$gte": now - timedelta(days=1)}})
    assert [s["sessionType"] for s in recent] == ["break"]
    assert len(database.find_sessions()) == 2
