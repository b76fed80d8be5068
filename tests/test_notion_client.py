import unittest
from datetime import datetime, timezone
from unittest import mock

import requests

from notioncal.models import DateRange, NotionConfig
from notioncal.notion_client import NotionService, page_to_task, property_value


def _page(page_id: str, name: str, date_start: str | None = "2024-05-01", archived: bool = False) -> dict:
    return {
        "object": "page",
        "id": page_id,
        "last_edited_time": "2024-05-01T12:00:00.000Z",
        "properties": {
            "Nom": {"id": "title", "type": "title", "title": [{"plain_text": name[:3]}, {"plain_text": name[3:]}]},
            "Priority": {"id": "p", "type": "select", "select": {"name": "High"}},
            "Status": {"id": "s", "type": "status", "status": {"name": "Doing"}},
            "Category": {"id": "c", "type": "select", "select": None},
            "Archived": {"id": "a", "type": "checkbox", "checkbox": archived},
            "Date": {"id": "d", "type": "date", "date": {"start": date_start, "end": None} if date_start else None},
            "Deadline": {"id": "dl", "type": "date", "date": {"start": "2024-05-03T09:00:00.000+00:00", "end": None}},
        },
    }


def _response(payload: dict | None = None, status_code: int = 200) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = ""
    response.json.return_value = payload or {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status_code}")
    return response


class PropertyDecodingTests(unittest.TestCase):
    def test_page_to_task(self) -> None:
        task = page_to_task(_page("T1", "Write report", archived=True), NotionConfig())
        self.assertEqual(task.id, "T1")
        self.assertEqual(task.name, "Write report")
        self.assertEqual(task.priority, "High")
        self.assertEqual(task.status, "Doing")
        self.assertIsNone(task.category)
        self.assertTrue(task.archived)
        self.assertEqual(task.date, DateRange(start=datetime(2024, 5, 1, tzinfo=timezone.utc)))
        self.assertTrue(task.deadline.is_precise)
        self.assertEqual(task.last_edited_time, datetime(2024, 5, 1, 12, tzinfo=timezone.utc))

    def test_missing_properties_decode_to_none(self) -> None:
        page = _page("T2", "x", date_start=None)
        del page["properties"]["Priority"]
        task = page_to_task(page, NotionConfig())
        self.assertIsNone(task.priority)
        self.assertIsNone(task.date)

    def test_partial_page_rejected(self) -> None:
        with self.assertRaises(TypeError):
            page_to_task({"object": "page", "id": "T3"}, NotionConfig())
        with self.assertRaises(TypeError):
            page_to_task({"object": "database", "id": "D1", "properties": {}}, NotionConfig())

    def test_formula_and_unknown_types(self) -> None:
        self.assertEqual(property_value({"type": "formula", "formula": {"type": "string", "string": "v"}}), "v")
        self.assertIsNone(property_value({"type": "people", "people": []}))
        self.assertIsNone(property_value(None))


class NotionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = NotionConfig(token="secret_abc", database_id="db-1")
        self.service = NotionService(self.config)
        self.session = mock.Mock()
        self.service._session = self.session

    def test_fetch_tasks_paginates(self) -> None:
        self.session.post.side_effect = [
            _response({"results": [_page("T1", "One")], "has_more": True, "next_cursor": "cursor-2"}),
            _response({"results": [_page("T2", "Two")], "has_more": False, "next_cursor": None}),
        ]
        tasks = self.service.fetch_tasks(datetime(2024, 4, 24, tzinfo=timezone.utc))
        self.assertEqual([task.id for task in tasks], ["T1", "T2"])
        self.assertEqual(self.session.post.call_count, 2)
        first_call, second_call = self.session.post.call_args_list
        self.assertEqual(first_call.args[0], "https://api.notion.com/v1/databases/db-1/query")
        self.assertEqual(first_call.kwargs["headers"]["Authorization"], "Bearer secret_abc")
        self.assertEqual(first_call.kwargs["headers"]["Notion-Version"], "2022-06-28")
        self.assertEqual(second_call.kwargs["json"]["start_cursor"], "cursor-2")
        self.assertEqual(
            first_call.kwargs["json"]["filter"],
            {"property": "Date", "date": {"on_or_after": "2024-04-24T00:00:00+00:00"}},
        )

    def test_fetch_tasks_bounds_window_on_date_only(self) -> None:
        self.session.post.return_value = _response({"results": [], "has_more": False})
        self.service.fetch_tasks(
            datetime(2024, 4, 24, tzinfo=timezone.utc),
            datetime(2025, 4, 24, tzinfo=timezone.utc),
        )
        self.assertEqual(
            self.session.post.call_args.kwargs["json"]["filter"],
            {
                "and": [
                    {"property": "Date", "date": {"on_or_after": "2024-04-24T00:00:00+00:00"}},
                    {"property": "Date", "date": {"before": "2025-04-24T00:00:00+00:00"}},
                ]
            },
        )

    def test_fetch_failure_raises(self) -> None:
        self.session.post.return_value = _response(status_code=500)
        with self.assertRaises(requests.HTTPError):
            self.service.fetch_tasks(datetime(2024, 4, 24, tzinfo=timezone.utc))

    def test_incomplete_config_raises(self) -> None:
        with self.assertRaises(RuntimeError):
            NotionService(NotionConfig(token="t")).fetch_tasks(datetime(2024, 4, 24, tzinfo=timezone.utc))

    def test_update_task_date(self) -> None:
        self.session.patch.return_value = _response({"object": "page"})
        value = DateRange(start=datetime(2024, 5, 2, tzinfo=timezone.utc))
        self.assertTrue(self.service.update_task_date("T1", value))
        call = self.session.patch.call_args
        self.assertEqual(call.args[0], "https://api.notion.com/v1/pages/T1")
        self.assertEqual(
            call.kwargs["json"],
            {"properties": {"Date": {"date": {"start": "2024-05-02", "end": None, "time_zone": None}}}},
        )

    def test_update_task_date_rejected(self) -> None:
        self.session.patch.return_value = _response(status_code=400)
        value = DateRange(start=datetime(2024, 5, 2, tzinfo=timezone.utc))
        self.assertFalse(self.service.update_task_date("T1", value))


if __name__ == "__main__":
    unittest.main()
