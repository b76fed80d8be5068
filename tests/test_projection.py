import unittest
from datetime import datetime, timezone

from notioncal.identity_codec import decode_properties
from notioncal.models import DateRange, Task
from notioncal.projection import task_to_event_projection


class ProjectionTests(unittest.TestCase):
    def test_projection_fields(self) -> None:
        task = Task(
            id="T1",
            name="Write report",
            priority="High",
            status="Doing",
            category="Projects",
            date=DateRange(start=datetime(2024, 5, 1, tzinfo=timezone.utc)),
            deadline=DateRange(start=datetime(2024, 5, 3, tzinfo=timezone.utc)),
            archived=False,
        )
        projection = task_to_event_projection(task)
        self.assertEqual(projection.name, "Write report")
        self.assertEqual(projection.date, task.date)
        self.assertEqual(
            projection.description,
            "Priority: High\n"
            "Deadline: 2024-05-03T00:00:00.000Z\n"
            "Category: Projects\n"
            "Archived: false\n"
            "Id: T1\n",
        )

    def test_missing_values_encode_as_null(self) -> None:
        projection = task_to_event_projection(Task(id="T2", name="Loose end", archived=True))
        self.assertEqual(
            decode_properties(projection.description),
            {"priority": None, "deadline": None, "category": None, "archived": True, "id": "T2"},
        )
        self.assertIsNone(projection.date)

    def test_status_is_not_mirrored(self) -> None:
        projection = task_to_event_projection(Task(id="T3", name="x", status="Pending"))
        self.assertNotIn("Pending", projection.description)


if __name__ == "__main__":
    unittest.main()
