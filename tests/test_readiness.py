import unittest

from livewatch.readiness import MAX_LINE_CHARS, LineKind, classify_line


class TestClassifyLine(unittest.TestCase):
    def test_listening_extracts_url(self) -> None:
        r = classify_line("Now listening on: http://localhost:5000")
        self.assertIs(r.kind, LineKind.LISTENING)
        self.assertEqual(r.url, "http://localhost:5000")

    def test_listening_allows_leading_whitespace_and_trims_url(self) -> None:
        for line in (
            "      Now listening on: https://localhost:5001",
            "\tNow listening on: https://localhost:5001   ",
            "Now listening on: https://localhost:5001\r\n",
        ):
            r = classify_line(line)
            self.assertIs(r.kind, LineKind.LISTENING, line)
            self.assertEqual(r.url, "https://localhost:5001")

    def test_started(self) -> None:
        self.assertIs(classify_line("Application started. Press Ctrl+C to shut down.").kind, LineKind.STARTED)
        self.assertIs(classify_line("  Application started. Press Ctrl+C to shut down.").kind, LineKind.STARTED)

    def test_started_is_anchored_at_end(self) -> None:
        r = classify_line("Application started. Press Ctrl+C to shut down. (really)")
        self.assertIs(r.kind, LineKind.UNREMARKABLE)

    def test_unremarkable(self) -> None:
        for line in (
            None,
            "",
            "   ",
            "info: Microsoft.Hosting.Lifetime[0]",
            "log: Now listening on: http://localhost:5000",
            "now listening on: http://localhost:5000",
            "Now listening on:http://localhost:5000",
            "Application started. press Ctrl+C to shut down.",
        ):
            self.assertIs(classify_line(line).kind, LineKind.UNREMARKABLE, repr(line))

    def test_listening_marker_without_url_is_unremarkable(self) -> None:
        for line in ("Now listening on: ", "Now listening on:    ", "  Now listening on: \t\r\n"):
            r = classify_line(line)
            self.assertIs(r.kind, LineKind.UNREMARKABLE, repr(line))
            self.assertIsNone(r.url)

    def test_overlong_line_is_unremarkable(self) -> None:
        line = "Now listening on: http://localhost:5000/" + "a" * MAX_LINE_CHARS
        self.assertIs(classify_line(line).kind, LineKind.UNREMARKABLE)

    def test_pathological_whitespace_does_not_hang(self) -> None:
        line = " " * (MAX_LINE_CHARS - 1) + "x"
        self.assertIs(classify_line(line).kind, LineKind.UNREMARKABLE)


if __name__ == "__main__":
    unittest.main()
