from __future__ import annotations

from notioncal.identity_codec import encode_properties
from notioncal.models import EventProjection, Task, to_js_iso


def task_properties(task: Task) -> dict[str, str | bool | None]:
    deadline = to_js_iso(task.deadline.start) if task.deadline is not None else None
    return {
        "Priority": task.priority,
        "Deadline": deadline or "null",
        "Category": task.category,
        "Archived": bool(task.archived),
        "Id": task.id,
    }


def task_to_event_projection(task: Task) -> EventProjection:
    return EventProjection(
        name=task.name,
        description=encode_properties(task_properties(task)),
        date=task.date,
    )
