import unittest

from mpc_center.marker import (
    build_marker,
    extract_marker,
    insert_marker,
    replace_marker,
    strip_marker,
)


class MarkerTests(unittest.TestCase):
    def test_extract_absent_marker_returns_none(self) -> None:
        self.assertIsNone(extract_marker(None))
        self.assertIsNone(extract_marker(""))
        self.assertIsNone(extract_marker("Agenda: discuss roadmap"))
        self.assertIsNone(extract_marker("broken [CAL_EVENT:] marker"))
        self.assertIsNone(extract_marker("unterminated [CAL_EVENT:abc"))

    def test_extract_returns_first_marker(self) -> None:
        notes = "Line one\n[CAL_EVENT:abc123]\nmore text [CAL_EVENT:zzz]"
        self.assertEqual(extract_marker(notes), "abc123")

    def test_insert_appends_on_new_line_and_preserves_notes(self) -> None:
        notes = "Agenda  \n\n  - item with trailing spaces   \n"
        updated = insert_marker(notes, "evt42")
        self.assertEqual(updated, notes + "\n[CAL_EVENT:evt42]")
        self.assertEqual(extract_marker(updated), "evt42")

    def test_insert_into_empty_notes(self) -> None:
        self.assertEqual(insert_marker("", "evt1"), "[CAL_EVENT:evt1]")
        self.assertEqual(insert_marker(None, "evt1"), "[CAL_EVENT:evt1]")

    def test_insert_keeps_single_marker(self) -> None:
        notes = insert_marker("Notes", "old")
        updated = insert_marker(notes, "new")
        self.assertEqual(updated, "Notes\n[CAL_EVENT:new]")
        self.assertEqual(updated.count("[CAL_EVENT:"), 1)

    def test_replace_in_place(self) -> None:
        notes = "before [CAL_EVENT:e1] after"
        self.assertEqual(replace_marker(notes, "e2"), "before [CAL_EVENT:e2] after")

    def test_replace_round_trip(self) -> None:
        notes = "Prep slides"
        updated = replace_marker(insert_marker(notes, "id1"), "id2")
        self.assertEqual(extract_marker(updated), "id2")
        self.assertEqual(updated, "Prep slides\n[CAL_EVENT:id2]")

    def test_replace_without_marker_inserts(self) -> None:
        self.assertEqual(replace_marker("Notes", "e9"), "Notes\n[CAL_EVENT:e9]")
        self.assertEqual(replace_marker("", "e9"), "[CAL_EVENT:e9]")

    def test_ids_with_regex_escapes_round_trip(self) -> None:
        event_id = r"a\1b\g<0>"
        updated = replace_marker(insert_marker("x", "first"), event_id)
        self.assertEqual(extract_marker(updated), event_id)

    def test_unstorable_ids_rejected(self) -> None:
        for bad in ("", "   ", "has]bracket", "two\nlines"):
            with self.assertRaises(ValueError):
                build_marker(bad)

    def test_strip_marker(self) -> None:
        self.assertEqual(strip_marker("Agenda\n[CAL_EVENT:abc]"), "Agenda")
        self.assertEqual(strip_marker("[CAL_EVENT:abc]"), "")
        self.assertEqual(strip_marker(None), "")


if __name__ == "__main__":
    unittest.main()
