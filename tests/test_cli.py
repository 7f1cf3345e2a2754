import json
import logging
import sys
import tempfile
import types
import unittest
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import cli


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _script(self, text: str, name: str = "commands.txt") -> str:
        path = Path(self.temp_dir.name) / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_version(self):
        with patch("sys.stderr", new=StringIO()) as fake_err:
            rc = cli.main(["--version"])
        self.assertEqual(rc, 0)
        self.assertIn("Version", fake_err.getvalue())

    def test_runs_command_files(self):
        first = self._script("manual b\n1 1\n", "first.txt")
        second = self._script("2 2\ndump\nquit\n", "second.txt")
        with patch("sys.stdout", new=StringIO()) as fake_out:
            rc = cli.main([first, second])
        self.assertEqual(rc, 0)
        output = fake_out.getvalue()
        self.assertIn("* 1 1.", output)
        self.assertIn("* 2 2.", output)
        self.assertIn("===", output)

    def test_strict_mode_exit_code(self):
        path = self._script("manual b\n1 1\n1 1\n")
        with (
            patch("sys.stdout", new=StringIO()),
            patch("sys.stderr", new=StringIO()) as fake_err,
        ):
            rc = cli.main(["--strict", path])
        self.assertEqual(rc, 1)
        self.assertIn("invalid move: 1 1", fake_err.getvalue())

    def test_errors_do_not_change_exit_code_without_strict(self):
        path = self._script("manual b\n1 1\n1 1\n")
        with (
            patch("sys.stdout", new=StringIO()),
            patch("sys.stderr", new=StringIO()),
        ):
            rc = cli.main([path])
        self.assertEqual(rc, 0)

    def test_standard_input(self):
        with (
            patch("sys.stdin", new=StringIO("manual b\n3 3\nquit\n")),
            patch("sys.stdout", new=StringIO()) as fake_out,
        ):
            rc = cli.main(["-"])
        self.assertEqual(rc, 0)
        self.assertIn("* 3 3.", fake_out.getvalue())

    def test_missing_input_file(self):
        with patch("sys.stderr", new=StringIO()) as fake_err:
            rc = cli.main([str(Path(self.temp_dir.name) / "missing.txt")])
        self.assertEqual(rc, 2)
        self.assertIn("Could not open", fake_err.getvalue())

    def test_rejects_bad_size_and_depth(self):
        with patch("sys.stderr", new=StringIO()):
            self.assertEqual(cli.main(["--size", "11"]), 2)
            self.assertEqual(cli.main(["--depth", "0"]), 2)

    def test_display_starts_gui(self):
        fake_gui = types.ModuleType("jump61_gui")
        fake_gui.main = MagicMock(return_value=0)
        with patch.dict(sys.modules, {"jump61_gui": fake_gui}):
            rc = cli.main(["--display", "--size", "4", "--depth", "2"])
        self.assertEqual(rc, 0)
        fake_gui.main.assert_called_once_with(size=4, depth=2)

    def test_telemetry_file(self):
        commands = self._script("1 1\nquit\n")
        telemetry = Path(self.temp_dir.name) / "telemetry.jsonl"
        with patch("sys.stdout", new=StringIO()):
            rc = cli.main(["--size", "3", "--depth", "1", "--telemetry", str(telemetry), commands])
        self.assertEqual(rc, 0)
        events = [json.loads(line)["event"] for line in telemetry.read_text(encoding="utf-8").splitlines()]
        self.assertEqual(events[0], "search_start")
        self.assertIn("search_end", events)

    def test_log_level(self):
        self.assertEqual(cli.log_level(0), logging.WARNING)
        self.assertEqual(cli.log_level(1), logging.INFO)
        self.assertEqual(cli.log_level(5), logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
