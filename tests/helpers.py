from datetime import timedelta


def make_session(start, duration=1500, session_type="focus", category="Work", **extra):
    fields = {
        "sessionType": session_type,
        "category": category,
        "duration": duration,
        "startTime": start,
        "endTime": start + timedelta(seconds=duration),
    }
    fields.update(extra)
    return fields
