import io
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from toolbundle import cli
from toolbundle.bundle import MemoryBundle
from toolbundle.errors import ResolutionError, NotFoundError
from toolbundle.extractor import Extractor
from toolbundle.launcher import ProcessLauncher
from toolbundle.platform_adapter import PlatformAdapter
from toolbundle.settings import Settings


class TestCliDispatch(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        adapter = PlatformAdapter("Linux", settings=Settings(temp_root=Path(self._tmp.name)))
        bundle = MemoryBundle({"ffmpeg": b"x", "NOTICE.txt": b"n", "suite/helper": b"h"})
        self.launcher = ProcessLauncher(
            Extractor(bundle, adapter),
            which=lambda name: "/usr/bin/git" if name == "git" else None,
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _main(self, argv: list[str]) -> tuple[int, str, str]:
        stdout, stderr = io.StringIO(), io.StringIO()
        with patch("toolbundle.cli._make_launcher", return_value=self.launcher), patch(
            "sys.stdout", stdout
        ), patch("sys.stderr", stderr):
            rc = cli.main(argv)
        return rc, stdout.getvalue(), stderr.getvalue()

    def test_parser_requires_a_command(self) -> None:
        with patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                cli._build_parser().parse_args([])

    def test_list_prints_bundled_executables(self) -> None:
        rc, out, _ = self._main(["list"])
        self.assertEqual(rc, 0)
        self.assertEqual(out.splitlines(), ["ffmpeg"])

    def test_which_reports_sources(self) -> None:
        rc, out, _ = self._main(["which", "ffmpeg"])
        self.assertEqual((rc, out), (0, "ffmpeg: bundled bundle:ffmpeg\n"))
        rc, out, _ = self._main(["which", "git"])
        self.assertEqual((rc, out), (0, "git: system /usr/bin/git\n"))
        rc, out, _ = self._main(["which", "nope"])
        self.assertEqual((rc, out), (1, "nope: missing not found\n"))

    def test_run_forwards_arguments_after_separator(self) -> None:
        self.launcher.run_tool = Mock(return_value=4)
        rc, _, _ = self._main(["run", "ffmpeg", "--", "-i", "in.mp4", "-y"])
        self.assertEqual(rc, 4)
        self.launcher.run_tool.assert_called_once_with("ffmpeg", ["-i", "in.mp4", "-y"])

    def test_run_reports_resolution_errors(self) -> None:
        error = ResolutionError(
            "nope",
            embedded_cause=NotFoundError("bundle file 'nope' not found"),
            system_cause=NotFoundError("'nope' not found on system PATH"),
        )
        self.launcher.run_tool = Mock(side_effect=error)
        rc, _, err = self._main(["run", "nope"])
        self.assertEqual(rc, 2)
        self.assertIn("[error] executable 'nope' not found", err)

    def test_verbose_wires_stderr_log(self) -> None:
        with patch("toolbundle.cli._make_launcher", return_value=self.launcher) as make:
            with patch("sys.stdout", io.StringIO()):
                cli.main(["--verbose", "list"])
        make.assert_called_once_with(cli._stderr_log)

    def test_quiet_by_default(self) -> None:
        with patch("toolbundle.cli._make_launcher", return_value=self.launcher) as make:
            with patch("sys.stdout", io.StringIO()):
                cli.main(["list"])
        make.assert_called_once_with(None)


if __name__ == "__main__":
    unittest.main()
