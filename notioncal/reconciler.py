from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from notioncal.identity_codec import identity_task_id
from notioncal.models import Event, EventCreate, EventUpdate, Task, TaskDateUpdate
from notioncal.projection import task_to_event_projection


@dataclass
class ReconcilePlan:
    events_to_create: list[EventCreate] = field(default_factory=list)
    events_to_update: list[EventUpdate] = field(default_factory=list)
    tasks_to_update: list[TaskDateUpdate] = field(default_factory=list)
    events_to_delete: list[Event] = field(default_factory=list)
    duplicates: dict[str, list[Event]] = field(default_factory=dict)
    unscheduled: list[Task] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.events_to_create
            or self.events_to_update
            or self.tasks_to_update
            or self.events_to_delete
        )

    def summary(self) -> dict[str, int]:
        return {
            "events_to_create": len(self.events_to_create),
            "events_to_update": len(self.events_to_update),
            "tasks_to_update": len(self.tasks_to_update),
            "events_to_delete": len(self.events_to_delete),
            "duplicates": len(self.duplicates),
            "unscheduled": len(self.unscheduled),
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "summary": self.summary(),
            "events_to_create": [item.name for item in self.events_to_create],
            "events_to_update": [item.name for item in self.events_to_update],
            "tasks_to_update": [item.name for item in self.tasks_to_update],
            "events_to_delete": [event.name for event in self.events_to_delete],
            "duplicates": {
                task_id: [event.id for event in events] for task_id, events in self.duplicates.items()
            },
            "unscheduled": [task.name for task in self.unscheduled],
        }


def _recency_key(event: Event) -> tuple:
    return (event.last_edited_time, event.id or "")


def index_events(events: Iterable[Event]) -> dict[str, list[Event]]:
    """Group events by the task id decoded from their description.

    Each group is ordered most recently edited first, ties broken by event id,
    so the first entry is the match used for task-side decisions.
    """
    grouped: dict[str, list[Event]] = {}
    for event in events:
        task_id = identity_task_id(event.description)
        if task_id is None:
            continue
        grouped.setdefault(task_id, []).append(event)
    for group in grouped.values():
        group.sort(key=_recency_key, reverse=True)
    return grouped


def events_to_create(tasks: Iterable[Task], events_by_task: dict[str, list[Event]]) -> list[EventCreate]:
    # Unmatched tasks without a date cannot become events; see unscheduled_tasks.
    return [
        EventCreate(task_id=task.id, projection=task_to_event_projection(task))
        for task in tasks
        if task.id not in events_by_task and task.date is not None
    ]


def unscheduled_tasks(tasks: Iterable[Task], events_by_task: dict[str, list[Event]]) -> list[Task]:
    return [task for task in tasks if task.id not in events_by_task and task.date is None]


def events_to_delete(events: Iterable[Event], task_ids: set[str]) -> list[Event]:
    return [event for event in events if identity_task_id(event.description) not in task_ids]


def tasks_to_update(tasks: Iterable[Task], events_by_task: dict[str, list[Event]]) -> list[TaskDateUpdate]:
    updates: list[TaskDateUpdate] = []
    for task in tasks:
        matches = events_by_task.get(task.id)
        if not matches:
            continue
        event = matches[0]
        if event.last_edited_time < task.last_edited_time:
            continue
        if task.date != event.date:
            updates.append(TaskDateUpdate(task_id=task.id, name=task.name, date=event.date))
    return updates


def events_to_update(events: Iterable[Event], tasks_by_id: dict[str, Task]) -> list[EventUpdate]:
    updates: list[EventUpdate] = []
    for event in events:
        task_id = identity_task_id(event.description)
        task = tasks_by_id.get(task_id) if task_id is not None else None
        if task is None:
            continue
        if event.last_edited_time > task.last_edited_time:
            continue
        projection = task_to_event_projection(task)
        # An event cannot lose its date; the task side pulls it instead.
        if projection.date is None:
            continue
        if (
            event.description != projection.description
            or event.date != projection.date
            or event.name != projection.name
        ):
            updates.append(
                EventUpdate(event_id=event.id, task_id=task.id, projection=projection, href=event.href)
            )
    return updates


def reconcile(tasks: Iterable[Task], events: Iterable[Event]) -> ReconcilePlan:
    task_list = list(tasks)
    event_list = list(events)
    events_by_task = index_events(event_list)
    tasks_by_id: dict[str, Task] = {}
    for task in task_list:
        tasks_by_id.setdefault(task.id, task)

    return ReconcilePlan(
        events_to_create=events_to_create(task_list, events_by_task),
        events_to_update=events_to_update(event_list, tasks_by_id),
        tasks_to_update=tasks_to_update(task_list, events_by_task),
        events_to_delete=events_to_delete(event_list, set(tasks_by_id)),
        duplicates={task_id: group for task_id, group in events_by_task.items() if len(group) > 1},
        unscheduled=unscheduled_tasks(task_list, events_by_task),
    )
