import unittest

from notioncal.identity_codec import (
    decode_properties,
    encode_properties,
    identity_task_id,
    parse_value,
    read_identity,
    stringify_value,
)


class IdentityCodecTests(unittest.TestCase):
    def test_stringify_literals(self) -> None:
        self.assertEqual(stringify_value(True), "true")
        self.assertEqual(stringify_value(False), "false")
        self.assertEqual(stringify_value(None), "null")
        self.assertEqual(stringify_value("High"), "High")

    def test_parse_literals(self) -> None:
        self.assertIs(parse_value("true"), True)
        self.assertIs(parse_value("false"), False)
        self.assertIsNone(parse_value("null"))
        self.assertEqual(parse_value("True"), "True")
        self.assertEqual(parse_value(""), "")

    def test_encode_preserves_insertion_order(self) -> None:
        text = encode_properties({"Priority": "High", "Archived": False, "Deadline": None, "Id": "T1"})
        self.assertEqual(text, "Priority: High\nArchived: false\nDeadline: null\nId: T1\n")

    def test_decode_then_encode_round_trip(self) -> None:
        mapping = {"priority": "Low", "deadline": None, "archived": True, "id": "abc-123", "note": "a: b"}
        self.assertEqual(decode_properties(encode_properties(mapping)), mapping)

    def test_decode_case_folds_keys_and_keeps_first_delimiter(self) -> None:
        decoded = decode_properties("Deadline: 2024-05-03T10:00:00.000Z\nURL: https://x.test/a: b\n")
        self.assertEqual(decoded["deadline"], "2024-05-03T10:00:00.000Z")
        self.assertEqual(decoded["url"], "https://x.test/a: b")

    def test_decode_is_permissive(self) -> None:
        text = "\n\nfree text without delimiter\n: orphan value\nId: T9\r\nUnknown: kept\n"
        decoded = decode_properties(text)
        self.assertEqual(decoded, {"id": "T9", "unknown": "kept"})

    def test_encode_rejects_embedded_newline(self) -> None:
        with self.assertRaises(ValueError):
            encode_properties({"Id": "T1\nId: T2"})

    def test_read_identity_typed_fields(self) -> None:
        block = read_identity("Priority: High\nDeadline: null\nCategory: Projects\nArchived: false\nId: T1\nColor: red\n")
        self.assertTrue(block.is_linked)
        self.assertEqual(block.task_id, "T1")
        self.assertEqual(block.priority, "High")
        self.assertIsNone(block.deadline)
        self.assertIs(block.archived, False)
        self.assertEqual(block.extra, {"color": "red"})

    def test_missing_or_non_text_id_is_unlinked(self) -> None:
        self.assertIsNone(identity_task_id("Meeting notes from the team"))
        self.assertIsNone(identity_task_id("Id: null\n"))
        self.assertIsNone(identity_task_id("Id: true\n"))
        self.assertIsNone(identity_task_id(""))
        self.assertIsNone(identity_task_id(None))
        self.assertFalse(read_identity("Id: \n").is_linked)


if __name__ == "__main__":
    unittest.main()
