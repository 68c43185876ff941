#!/usr/bin/env python3
"""
Command line tools for the Personal Time Tracker API
Usage:
    python admin_tools.py status
    python admin_tools.py today
    python admin_tools.py dashboard 30d
    python admin_tools.py overdue
"""

import requests
import sys
import os
from dotenv import load_dotenv

from models import format_duration

load_dotenv()

# Configuration
API_URL = os.getenv("API_URL", "http://localhost:8000")
TIMEOUT = 10


def fetch(path, params=None):
    """GET an API path and return the envelope's data, or None on failure"""
    try:
        response = requests.get(f"{API_URL}{path}", params=params, timeout=TIMEOUT)
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        print(f"❌ Request to {path} failed: {e}")
        return None

    if response.status_code != 200 or not payload.get("success", True):
        print(f"❌ Error {response.status_code}: {payload.get('message', 'unknown error')}")
        return None
    return payload.get("data", payload)


def check_status():
    """Check that the API answers"""
    info = fetch("/")
    if info is None:
        return False

    print("=" * 60)
    print("📊 TIME TRACKER STATUS")
    print("=" * 60)
    print("Status: ✅ OPERATIONAL")
    print(f"Version: {info.get('version', 'Unknown')}")
    for name, path in info.get("endpoints", {}).items():
        print(f"  {name:<10} {path}")
    print("=" * 60)
    return True


def show_today():
    """Print today's totals"""
    data = fetch("/api/sessions/today-summary")
    if data is None:
        return False

    print("📅 Today")
    print("-" * 60)
    print(f"Sessions:      {data.get('totalSessions', 0)}")
    print(f"Total time:    {format_duration(data.get('totalTime', 0))}")
    print(f"Focus time:    {format_duration(data.get('focusTime', 0))}")
    print(f"Break time:    {format_duration(data.get('breakTime', 0))}")
    print(f"Productivity:  {data.get('averageProductivity', 0):.1f}/10")
    for category, seconds in sorted(data.get("categoriesBreakdown", {}).items(), key=lambda kv: -kv[1]):
        print(f"  {category:<20} {format_duration(seconds)}")
    return True


def show_dashboard(period="7d"):
    """Print the headline numbers of the analytics dashboard"""
    data = fetch("/api/analytics/dashboard", params={"period": period})
    if data is None:
        return False

    time_stats = data.get("timeStats", {})
    todo_stats = data.get("todoStats", {})
    print(f"📈 Dashboard ({data.get('period', period)})")
    print("-" * 60)
    print(f"Sessions:      {time_stats.get('totalSessions', 0)}")
    print(f"Tracked:       {format_duration(time_stats.get('totalTime', 0))}")
    print(f"Focus:         {format_duration(time_stats.get('focusTime', 0))}")
    print(f"Tasks created: {todo_stats.get('totalTasks', 0)} ({todo_stats.get('completedTasks', 0)} done)")
    for row in data.get("categoryBreakdown", []):
        print(f"  {str(row.get('_id')):<20} {format_duration(row.get('totalDuration', 0))}")
    return True


def show_overdue():
    """List tasks past their due date"""
    data = fetch("/api/tasks", params={"overdue": "true", "sortBy": "dueDate", "sortOrder": "asc"})
    if data is None:
        return False

    if not data:
        print("✅ Nothing overdue")
        return True

    print(f"⏰ {len(data)} overdue task(s)")
    for task in data:
        print(f"  [{task.get('priority', 'medium'):<6}] {task.get('title')} (due {task.get('dueDate')})")
    return True


def show_help():
    """Show help message"""
    print("""
🛠️  Time Tracker Tools

Usage:
    python admin_tools.py <command>

Commands:
    status              Check the API is up
    today               Today's time summary
    dashboard [period]  Dashboard totals (1d, 7d, 30d, 90d)
    overdue             Overdue tasks
    help                Show this help message

Configuration:
    Set in .env file:
    - API_URL (default: http://localhost:8000)
    """)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        show_help()
        return 1

    command = argv[0].lower()

    if command == "status":
        succeeded = check_status()
    elif command == "today":
        succeeded = show_today()
    elif command == "dashboard":
        succeeded = show_dashboard(argv[1] if len(argv) > 1 else "7d")
    elif command == "overdue":
        succeeded = show_overdue()
    elif command == "help":
        show_help()
        succeeded = True
    else:
        print(f"❌ Unknown command: {command}")
        show_help()
        succeeded = False

    return 0 if succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
