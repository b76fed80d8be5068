from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return _ensure_tz(parsed)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def to_utc(value: datetime) -> datetime:
    return _ensure_tz(value).astimezone(timezone.utc)


def to_js_iso(value: datetime | None) -> str | None:
    """UTC instant with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return None
    text = to_utc(value).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def lookback_start(now: datetime, days: int) -> datetime:
    now_utc = to_utc(now)
    start_date = now_utc.date() - timedelta(days=max(0, days))
    return datetime.combine(start_date, time.min, tzinfo=timezone.utc)


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime | None = None
    is_precise: bool = False

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return (self.end or self.start).date()

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": serialize_datetime(self.start),
            "end": serialize_datetime(self.end),
            "is_precise": self.is_precise,
        }


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    priority: str | None = None
    status: str | None = None
    category: str | None = None
    date: DateRange | None = None
    deadline: DateRange | None = None
    archived: bool = False
    last_edited_time: datetime = EPOCH


@dataclass(frozen=True)
class Event:
    id: str | None
    name: str
    description: str
    date: DateRange
    last_edited_time: datetime = EPOCH
    href: str = ""


@dataclass(frozen=True)
class EventProjection:
    name: str
    description: str
    date: DateRange | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "date": self.date.to_dict() if self.date is not None else None,
        }


@dataclass(frozen=True)
class EventCreate:
    task_id: str
    projection: EventProjection

    @property
    def name(self) -> str:
        return self.projection.name


@dataclass(frozen=True)
class EventUpdate:
    event_id: str | None
    task_id: str
    projection: EventProjection
    href: str = ""

    @property
    def name(self) -> str:
        return self.projection.name


@dataclass(frozen=True)
class TaskDateUpdate:
    task_id: str
    name: str
    date: DateRange


@dataclass
class ActionOutcome:
    kind: str
    target: str
    name: str
    ok: bool
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class NotionPropertyNames:
    name: str = "Nom"
    priority: str = "Priority"
    status: str = "Status"
    category: str = "Category"
    date: str = "Date"
    deadline: str = "Deadline"
    archived: str = "Archived"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NotionPropertyNames":
        data = data or {}
        defaults = cls()
        values: dict[str, str] = {}
        for key, default in asdict(defaults).items():
            values[key] = str(data.get(key, default) or "").strip() or default
        return cls(**values)


@dataclass
class NotionConfig:
    token: str = ""
    database_id: str = ""
    api_url: str = "https://api.notion.com/v1"
    api_version: str = "2022-06-28"
    timeout_seconds: int = 30
    page_size: int = 100
    properties: NotionPropertyNames = field(default_factory=NotionPropertyNames)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NotionConfig":
        data = data or {}
        return cls(
            token=str(data.get("token", "") or "").strip(),
            database_id=str(data.get("database_id", "") or "").strip(),
            api_url=str(data.get("api_url", "") or "").strip().rstrip("/") or "https://api.notion.com/v1",
            api_version=str(data.get("api_version", "") or "").strip() or "2022-06-28",
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
            page_size=min(100, max(1, int(data.get("page_size", 100)))),
            properties=NotionPropertyNames.from_dict(data.get("properties")),
        )

    def is_configured(self) -> bool:
        return bool(self.token and self.database_id)


@dataclass
class CalDAVConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""
    calendar: str = ""
    auth_mode: str = "basic"
    oauth_credentials_path: str = "credentials.json"
    oauth_token_path: str = "token.json"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalDAVConfig":
        data = data or {}
        auth_mode = str(data.get("auth_mode", "basic") or "").strip().lower()
        if auth_mode not in {"basic", "google_oauth"}:
            auth_mode = "basic"
        return cls(
            base_url=str(data.get("base_url", "") or "").strip(),
            username=str(data.get("username", "") or "").strip(),
            password=str(data.get("password", "") or "").strip(),
            calendar=str(data.get("calendar", "") or "").strip(),
            auth_mode=auth_mode,
            oauth_credentials_path=str(data.get("oauth_credentials_path", "") or "").strip()
            or "credentials.json",
            oauth_token_path=str(data.get("oauth_token_path", "") or "").strip() or "token.json",
        )

    def is_configured(self) -> bool:
        if not self.base_url:
            return False
        if self.auth_mode == "basic":
            return bool(self.username)
        return True


@dataclass
class SyncConfig:
    lookback_days: int = 7
    horizon_days: int = 365
    interval_seconds: int = 300
    max_workers: int = 8
    dispatch_deletes: bool = False
    dispatch_task_updates: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        return cls(
            lookback_days=max(0, int(data.get("lookback_days", 7))),
            horizon_days=max(1, int(data.get("horizon_days", 365))),
            interval_seconds=max(30, int(data.get("interval_seconds", 300))),
            max_workers=max(1, int(data.get("max_workers", 8))),
            dispatch_deletes=_as_bool(data.get("dispatch_deletes"), False),
            dispatch_task_updates=_as_bool(data.get("dispatch_task_updates"), False),
        )


@dataclass
class AppConfig:
    notion: NotionConfig = field(default_factory=NotionConfig)
    caldav: CalDAVConfig = field(default_factory=CalDAVConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            notion=NotionConfig.from_dict(data.get("notion")),
            caldav=CalDAVConfig.from_dict(data.get("caldav")),
            sync=SyncConfig.from_dict(data.get("sync")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    created: int = 0
    updated_events: int = 0
    updated_tasks: int = 0
    deleted: int = 0
    advisory_deletes: int = 0
    failures: int = 0
    outcomes: list[ActionOutcome] = field(default_factory=list)
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def changes_applied(self) -> int:
        return self.created + self.updated_events + self.updated_tasks + self.deleted

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "trigger": self.trigger,
            "created": self.created,
            "updated_events": self.updated_events,
            "updated_tasks": self.updated_tasks,
            "deleted": self.deleted,
            "advisory_deletes": self.advisory_deletes,
            "failures": self.failures,
            "changes_applied": self.changes_applied,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "run_at": serialize_datetime(self.run_at),
        }


def default_app_config() -> AppConfig:
    return AppConfig()
