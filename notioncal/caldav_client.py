from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any

import caldav
from caldav.lib.error import DAVError, NotFoundError
from icalendar import Calendar as ICalendar
from icalendar import Event as ICEvent

from notioncal.calendar_auth import load_credentials
from notioncal.date_range import from_calendar, to_calendar
from notioncal.models import EPOCH, CalDAVConfig, Event, EventProjection

logger = logging.getLogger(__name__)


def _normalize_calendar_id(value: str) -> str:
    return str(value or "").strip().rstrip("/")


def _normalize_calendar_name(value: str) -> str:
    collapsed = re.sub(r"\s+", " ", str(value or "").strip())
    return collapsed.casefold()


def _first_vevent(calendar_obj: ICalendar) -> ICEvent | None:
    for component in calendar_obj.walk():
        if component.name == "VEVENT":
            return component
    return None


def _decode_raw_ical(raw_data: Any) -> str:
    if isinstance(raw_data, bytes):
        return raw_data.decode("utf-8", errors="replace")
    return str(raw_data)


def _decoded(vevent: ICEvent, name: str) -> Any:
    if vevent.get(name) is None:
        return None
    return vevent.decoded(name)


def _last_edited_time(vevent: ICEvent) -> datetime:
    for name in ("LAST-MODIFIED", "DTSTAMP", "CREATED"):
        value = _decoded(vevent, name)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
    return EPOCH


def _extract_uid_from_raw_ical(raw_data: Any) -> str:
    try:
        calendar_obj = ICalendar.from_ical(_decode_raw_ical(raw_data))
    except ValueError:
        return ""
    vevent = _first_vevent(calendar_obj)
    if vevent is None:
        return ""
    return str(vevent.get("UID", "")).strip()


def parse_event(raw_data: Any, href: str = "") -> Event | None:
    calendar_obj = ICalendar.from_ical(_decode_raw_ical(raw_data))
    vevent = _first_vevent(calendar_obj)
    if vevent is None:
        return None
    dtstart = _decoded(vevent, "DTSTART")
    if not isinstance(dtstart, date):
        return None
    dtend = _decoded(vevent, "DTEND")
    return Event(
        id=str(vevent.get("UID", "")).strip() or None,
        name=str(vevent.get("SUMMARY", "")).strip(),
        # The description is the identity channel and must be kept byte for byte.
        description=str(vevent.get("DESCRIPTION", "")),
        date=from_calendar(dtstart, dtend if isinstance(dtend, date) else None),
        last_edited_time=_last_edited_time(vevent),
        href=href,
    )


def build_ical(uid: str, projection: EventProjection, now: datetime | None = None) -> str:
    if projection.date is None:
        raise ValueError(f"Event {projection.name!r} has no date.")
    stamp = now or datetime.now(timezone.utc)
    dtstart, dtend = to_calendar(projection.date)
    calendar_obj = ICalendar()
    calendar_obj.add("PRODID", "-//notioncal//Notion Calendar Sync//EN")
    calendar_obj.add("VERSION", "2.0")
    vevent = ICEvent()
    vevent.add("UID", uid)
    vevent.add("SUMMARY", projection.name or "")
    vevent.add("DESCRIPTION", projection.description or "")
    vevent.add("DTSTART", dtstart)
    vevent.add("DTEND", dtend)
    vevent.add("DTSTAMP", stamp)
    vevent.add("LAST-MODIFIED", stamp)
    calendar_obj.add_component(vevent)
    return calendar_obj.to_ical().decode("utf-8")


class CalDAVService:
    def __init__(self, config: CalDAVConfig) -> None:
        self.config = config
        self._client: Any = None
        self._principal: Any = None
        self._calendar: Any = None

    def _client_kwargs(self) -> dict[str, Any]:
        if self.config.auth_mode == "google_oauth":
            credentials = load_credentials(self.config)
            if credentials is None:
                raise RuntimeError("Google OAuth token missing or expired, run `notioncal authorize`.")
            return {"headers": {"Authorization": f"Bearer {credentials.token}"}}
        return {"username": self.config.username, "password": self.config.password}

    def _connect(self) -> None:
        if self._principal is not None:
            return
        if not self.config.is_configured():
            raise RuntimeError("CalDAV config is incomplete.")
        self._client = caldav.DAVClient(url=self.config.base_url, **self._client_kwargs())
        self._principal = self._client.principal()

    def _get_calendar(self) -> Any:
        if self._calendar is not None:
            return self._calendar
        self._connect()
        calendars = list(self._principal.calendars())
        wanted = self.config.calendar
        if not wanted:
            if not calendars:
                raise RuntimeError("No calendar available on the CalDAV server.")
            self._calendar = calendars[0]
            return self._calendar
        wanted_id = _normalize_calendar_id(wanted)
        wanted_name = _normalize_calendar_name(wanted)
        for calendar in calendars:
            if _normalize_calendar_id(str(calendar.url)) == wanted_id:
                self._calendar = calendar
                return calendar
        same_name = [
            calendar
            for calendar in calendars
            if _normalize_calendar_name(getattr(calendar, "name", "") or "") == wanted_name
        ]
        if not same_name:
            raise RuntimeError(f"Calendar not found: {wanted}")
        same_name.sort(key=lambda item: str(item.url))
        self._calendar = same_name[0]
        return self._calendar

    def fetch_events(self, since: datetime, until: datetime) -> list[Event]:
        calendar = self._get_calendar()
        resources = calendar.search(start=since, end=until, event=True, expand=False)
        events: list[Event] = []
        for resource in resources:
            event = parse_event(resource.data, href=str(getattr(resource, "url", "") or ""))
            if event is None or not event.id:
                continue
            events.append(event)
        return events

    def _find_resource(self, calendar: Any, uid: str, href: str = "") -> Any:
        if href:
            try:
                return calendar.event_by_url(href)
            except DAVError:
                logger.debug("Event href %s not found, falling back to UID lookup", href)
        if not uid:
            return None
        try:
            return calendar.event_by_uid(uid)
        except NotFoundError:
            pass
        for resource in calendar.events():
            if _extract_uid_from_raw_ical(getattr(resource, "data", "")) == uid:
                return resource
        return None

    def create_event(self, projection: EventProjection) -> bool:
        calendar = self._get_calendar()
        uid = str(uuid.uuid4())
        resource = calendar.save_event(build_ical(uid, projection))
        return resource is not None

    def update_event(self, event_id: str | None, projection: EventProjection, href: str = "") -> bool:
        calendar = self._get_calendar()
        resource = self._find_resource(calendar, event_id or "", href)
        if resource is None:
            logger.warning("Event %s not found for update", event_id)
            return False
        uid = event_id or _extract_uid_from_raw_ical(getattr(resource, "data", "")) or str(uuid.uuid4())
        resource.data = build_ical(uid, projection)
        resource.save()
        return True

    def delete_event(self, event_id: str | None, href: str = "") -> bool:
        calendar = self._get_calendar()
        resource = self._find_resource(calendar, event_id or "", href)
        if resource is None:
            return False
        resource.delete()
        return True
