import requests

import admin_tools


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload


def serve(monkeypatch, routes):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params))
        path = url[len(admin_tools.API_URL):]
        return routes[path]

    monkeypatch.setattr(admin_tools.requests, "get", fake_get)
    return calls


def test_today(monkeypatch, capsys):
    serve(monkeypatch, {"/api/sessions/today-summary": FakeResponse({"success": True, "data": {
        "totalSessions": 2,
        "totalTime": 3900,
        "focusTime": 3600,
        "breakTime": 300,
        "averageProductivity": 7.5,
        "categoriesBreakdown": {"Work": 3600, "Break": 300},
    }})})

    assert admin_tools.main(["today"]) == 0
    out = capsys.readouterr().out
    assert "1h 5m 0s" in out
    assert "7.5/10" in out


def test_dashboard_passes_period(monkeypatch, capsys):
    calls = serve(monkeypatch, {"/api/analytics/dashboard": FakeResponse({"success": True, "data": {
        "period": "30d",
        "timeStats": {"totalSessions": 4, "totalTime": 7200, "focusTime": 6000},
        "todoStats": {"totalTasks": 3, "completedTasks": 1},
        "categoryBreakdown": [{"_id": "Study", "totalDuration": 7200}],
    }})})

    assert admin_tools.main(["dashboard", "30d"]) == 0
    assert calls[0][1] == {"period": "30d"}
    assert "Study" in capsys.readouterr().out


def test_overdue_with_nothing_due(monkeypatch, capsys):
    serve(monkeypatch, {"/api/tasks": FakeResponse({"success": True, "data": []})})

    assert admin_tools.main(["overdue"]) == 0
    assert "Nothing overdue" in capsys.readouterr().out


def test_api_error_envelope(monkeypatch, capsys):
    serve(monkeypatch, {"/": FakeResponse({"success": False, "message": "Something went wrong!"}, 500)})

    assert admin_tools.main(["status"]) == 1
    assert "Error 500" in capsys.readouterr().out


def test_connection_failure(monkeypatch, capsys):
    def refuse(url, params=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(admin_tools.requests, "get", refuse)

    assert admin_tools.main(["today"]) == 1
    assert "failed" in capsys.readouterr().out


def test_unknown_command_and_help(capsys):
    assert admin_tools.main(["explode"]) == 1
    assert admin_tools.main(["help"]) == 0
    assert admin_tools.main([]) == 1
    assert "Unknown command" in capsys.readouterr().out
