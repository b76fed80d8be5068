from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import requests

from notioncal.date_range import from_notion, to_notion
from notioncal.models import EPOCH, DateRange, NotionConfig, Task, parse_iso_datetime, serialize_datetime

logger = logging.getLogger(__name__)


def _plain_text(items: list[dict[str, Any]] | None) -> str:
    return "".join(str((item or {}).get("plain_text", "")) for item in items or [])


def property_value(prop: dict[str, Any] | None) -> Any:
    """Decode a Notion page property into a plain Python value."""
    if not prop:
        return None
    prop_type = prop.get("type")
    raw = prop.get(prop_type) if prop_type else None
    if prop_type in {"title", "rich_text"}:
        return _plain_text(raw)
    if prop_type in {"select", "status"}:
        return str(raw["name"]) if raw and raw.get("name") is not None else None
    if prop_type == "checkbox":
        return bool(raw)
    if prop_type == "date":
        return from_notion(raw)
    if prop_type in {"number", "url", "email", "phone_number"}:
        return raw
    if prop_type == "formula" and isinstance(raw, dict):
        return raw.get(raw.get("type", ""))
    logger.debug("Unsupported Notion property type: %s", prop_type)
    return None


def page_to_task(page: dict[str, Any], config: NotionConfig) -> Task:
    if page.get("object") != "page" or "properties" not in page:
        raise TypeError(f"{page.get('id')} is not a full page object, it is a {page.get('object')}")
    names = config.properties
    properties = page["properties"]

    def value(name: str) -> Any:
        return property_value(properties.get(name))

    date_value = value(names.date)
    deadline_value = value(names.deadline)
    return Task(
        id=str(page["id"]),
        name=str(value(names.name) or ""),
        priority=value(names.priority),
        status=value(names.status),
        category=value(names.category),
        date=date_value if isinstance(date_value, DateRange) else None,
        deadline=deadline_value if isinstance(deadline_value, DateRange) else None,
        archived=bool(value(names.archived)),
        last_edited_time=parse_iso_datetime(page.get("last_edited_time")) or EPOCH,
    )


class NotionService:
    def __init__(self, config: NotionConfig) -> None:
        self.config = config
        self._session = requests.Session()

    def _require_config(self) -> None:
        if not self.config.is_configured():
            raise RuntimeError("Notion config is incomplete: token and database_id required.")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.token}",
            "Notion-Version": self.config.api_version,
            "Content-Type": "application/json",
        }

    def _query_filter(self, since: datetime, until: datetime | None = None) -> dict[str, Any]:
        # Same window as the calendar side: date start in [since, until).
        date_property = self.config.properties.date
        conditions: list[dict[str, Any]] = [
            {"property": date_property, "date": {"on_or_after": serialize_datetime(since)}},
        ]
        if until is not None:
            conditions.append({"property": date_property, "date": {"before": serialize_datetime(until)}})
        if len(conditions) == 1:
            return conditions[0]
        return {"and": conditions}

    def fetch_tasks(self, since: datetime, until: datetime | None = None) -> list[Task]:
        self._require_config()
        url = f"{self.config.api_url}/databases/{self.config.database_id}/query"
        body: dict[str, Any] = {
            "filter": self._query_filter(since, until),
            "page_size": self.config.page_size,
        }
        tasks: list[Task] = []
        while True:
            response = self._session.post(
                url,
                headers=self._headers(),
                json=body,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
            for page in payload.get("results", []):
                tasks.append(page_to_task(page, self.config))
            next_cursor = payload.get("next_cursor")
            if not payload.get("has_more") or not next_cursor:
                break
            body["start_cursor"] = next_cursor
        return tasks

    def update_task_date(self, task_id: str, date_range: DateRange) -> bool:
        self._require_config()
        response = self._session.patch(
            f"{self.config.api_url}/pages/{task_id}",
            headers=self._headers(),
            json={"properties": {self.config.properties.date: {"date": to_notion(date_range)}}},
            timeout=self.config.timeout_seconds,
        )
        if not response.ok:
            logger.warning("Notion rejected date update for %s: HTTP %s %s", task_id, response.status_code, response.text[:300])
        return response.ok
