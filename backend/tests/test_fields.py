import unittest

from wikikeeper.services.fields import decode_int, decode_optional_int, decode_str


class DecodeIntTest(unittest.TestCase):
    def test_numbers_and_numeric_strings(self) -> None:
        self.assertEqual(decode_optional_int(42), 42)
        self.assertEqual(decode_optional_int(42.9), 42)
        self.assertEqual(decode_optional_int("42"), 42)
        self.assertEqual(decode_optional_int(" 42 "), 42)
        self.assertEqual(decode_optional_int("42.0"), 42)

    def test_unparseable_values(self) -> None:
        for value in (None, True, "", "n/a", [], {}, float("inf"), float("nan"), "inf"):
            with self.subTest(value=value):
                self.assertIsNone(decode_optional_int(value))

    def test_decode_int_default(self) -> None:
        self.assertEqual(decode_int("garbage"), 0)
        self.assertEqual(decode_int(None, default=-1), -1)
        self.assertEqual(decode_int("7"), 7)

    def test_decode_str(self) -> None:
        self.assertEqual(decode_str("MediaWiki"), "MediaWiki")
        self.assertEqual(decode_str(12), "")
        self.assertEqual(decode_str(None, default="x"), "x")


if __name__ == "__main__":
    unittest.main()
