from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence, TypeVar

from notioncal.caldav_client import CalDAVService
from notioncal.models import ActionOutcome, AppConfig, Event, SyncResult, Task, lookback_start
from notioncal.notion_client import NotionService
from notioncal.reconciler import ReconcilePlan, reconcile

logger = logging.getLogger(__name__)

ActionT = TypeVar("ActionT")


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _names(items: Sequence[Any]) -> str:
    return "; ".join(str(getattr(item, "name", "")) for item in items)


def log_plan(plan: ReconcilePlan) -> None:
    if plan.events_to_create:
        logger.info("The following events need to be created: %s", _names(plan.events_to_create))
    else:
        logger.info("No event needs to be created")
    if plan.events_to_delete:
        logger.info("The following events need to be deleted: %s", _names(plan.events_to_delete))
    else:
        logger.info("No event needs to be deleted")
    if plan.tasks_to_update:
        logger.info("The following tasks need to be updated: %s", _names(plan.tasks_to_update))
    else:
        logger.info("No task needs to be updated")
    if plan.events_to_update:
        logger.info("The following events need to be updated: %s", _names(plan.events_to_update))
    else:
        logger.info("No event needs to be updated")
    for task_id, events in plan.duplicates.items():
        logger.warning(
            "Task %s is linked to %d events, using %s: %s",
            task_id,
            len(events),
            events[0].id,
            ", ".join(str(event.id) for event in events),
        )
    if plan.unscheduled:
        logger.info("Tasks without a date are not mirrored: %s", _names(plan.unscheduled))


class SyncEngine:
    def __init__(
        self,
        config: AppConfig,
        notion_service: NotionService | None = None,
        calendar_service: CalDAVService | None = None,
    ) -> None:
        self.config = config
        self.notion_service = notion_service or NotionService(config.notion)
        self.calendar_service = calendar_service or CalDAVService(config.caldav)

    def missing_config(self) -> list[str]:
        missing: list[str] = []
        if not self.config.notion.token:
            missing.append("notion.token")
        if not self.config.notion.database_id:
            missing.append("notion.database_id")
        if not self.config.caldav.is_configured():
            missing.append("caldav")
        return missing

    def fetch_window(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        since = lookback_start(now or datetime.now(timezone.utc), self.config.sync.lookback_days)
        until = since + timedelta(days=self.config.sync.lookback_days + self.config.sync.horizon_days)
        return since, until

    def fetch_snapshots(self, now: datetime | None = None) -> tuple[list[Task], list[Event]]:
        since, until = self.fetch_window(now)
        # Both fetches are independent reads; either failure aborts the pass.
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="notioncal-fetch") as pool:
            tasks_future = pool.submit(self.notion_service.fetch_tasks, since, until)
            events_future = pool.submit(self.calendar_service.fetch_events, since, until)
            tasks = tasks_future.result()
            fetched = events_future.result()
        # The calendar returns every event overlapping the window; keep the ones
        # starting inside it, as the Notion query does for tasks.
        events = [event for event in fetched if since <= event.date.start < until]
        if len(events) != len(fetched):
            logger.debug("%d events start outside the sync window and are ignored.", len(fetched) - len(events))
        logger.info("%d tasks fetched from Notion.", len(tasks))
        logger.info("%d events fetched from the calendar.", len(events))
        return tasks, events

    def _dispatch(
        self,
        kind: str,
        actions: Sequence[ActionT],
        call: Callable[[ActionT], bool],
        describe: Callable[[ActionT], tuple[str, str]],
    ) -> list[ActionOutcome]:
        if not actions:
            return []

        def run(action: ActionT) -> ActionOutcome:
            target, name = describe(action)
            try:
                ok = bool(call(action))
            except Exception as exc:
                logger.exception("%s failed for %s (%s)", kind, name, target)
                return ActionOutcome(kind=kind, target=target, name=name, ok=False, error=f"{type(exc).__name__}: {exc}")
            if not ok:
                logger.warning("%s was rejected for %s (%s)", kind, name, target)
                return ActionOutcome(kind=kind, target=target, name=name, ok=False, error="rejected")
            return ActionOutcome(kind=kind, target=target, name=name, ok=True)

        workers = min(self.config.sync.max_workers, len(actions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"notioncal-{kind}") as pool:
            return list(pool.map(run, actions))

    def dispatch(self, plan: ReconcilePlan) -> list[ActionOutcome]:
        calendar = self.calendar_service
        outcomes: list[ActionOutcome] = []
        outcomes += self._dispatch(
            "create_event",
            plan.events_to_create,
            lambda action: calendar.create_event(action.projection),
            lambda action: (action.task_id, action.name),
        )
        outcomes += self._dispatch(
            "update_event",
            plan.events_to_update,
            lambda action: calendar.update_event(action.event_id, action.projection, href=action.href),
            lambda action: (str(action.event_id), action.name),
        )
        if self.config.sync.dispatch_task_updates:
            outcomes += self._dispatch(
                "update_task",
                plan.tasks_to_update,
                lambda action: self.notion_service.update_task_date(action.task_id, action.date),
                lambda action: (action.task_id, action.name),
            )
        if self.config.sync.dispatch_deletes:
            outcomes += self._dispatch(
                "delete_event",
                plan.events_to_delete,
                lambda event: calendar.delete_event(event.id, href=event.href),
                lambda event: (str(event.id), event.name),
            )
        return outcomes

    def plan(self, now: datetime | None = None) -> ReconcilePlan:
        tasks, events = self.fetch_snapshots(now)
        return reconcile(tasks, events)

    def run_once(self, trigger: str = "manual", dry_run: bool = False) -> SyncResult:
        started_at = datetime.now(timezone.utc)

        missing = self.missing_config()
        if missing:
            message = f"Config missing {', '.join(missing)}. Sync skipped."
            logger.warning(message)
            return SyncResult(status="skipped", message=message, duration_ms=_elapsed_ms(started_at), trigger=trigger)

        try:
            plan = self.plan(started_at)
        except Exception as exc:
            error_message = f"{type(exc).__name__}: {exc}"
            logger.exception("Sync pass aborted before reconciliation")
            return SyncResult(status="error", message=error_message, duration_ms=_elapsed_ms(started_at), trigger=trigger)

        log_plan(plan)
        summary = plan.summary()
        if dry_run:
            return SyncResult(
                status="dry_run",
                message=f"Plan: {summary}",
                duration_ms=_elapsed_ms(started_at),
                trigger=trigger,
                advisory_deletes=len(plan.events_to_delete),
            )

        outcomes = self.dispatch(plan)

        def succeeded(kind: str) -> int:
            return sum(1 for outcome in outcomes if outcome.kind == kind and outcome.ok)

        failures = sum(1 for outcome in outcomes if not outcome.ok)
        advisory_deletes = 0 if self.config.sync.dispatch_deletes else len(plan.events_to_delete)
        status = "partial" if failures else "success"
        message = (
            f"Plan: {summary}. Dispatched {len(outcomes)} actions, {failures} failed."
        )
        logger.info(message)
        return SyncResult(
            status=status,
            message=message,
            duration_ms=_elapsed_ms(started_at),
            trigger=trigger,
            created=succeeded("create_event"),
            updated_events=succeeded("update_event"),
            updated_tasks=succeeded("update_task"),
            deleted=succeeded("delete_event"),
            advisory_deletes=advisory_deletes,
            failures=failures,
            outcomes=outcomes,
        )
