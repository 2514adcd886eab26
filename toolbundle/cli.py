from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from .errors import ToolBundleError
from .extractor import LogFn
from .launcher import ProcessLauncher, default_launcher


def _stderr_log(line: str) -> None:
    sys.stderr.write(f"{line}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m toolbundle")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log extraction, fallback and cleanup steps to stderr.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List executables shipped in the bundle.")

    which_parser = commands.add_parser("which", help="Show where a tool resolves from.")
    which_parser.add_argument("tool")

    run_parser = commands.add_parser("run", help="Run a tool and clean up afterwards.")
    run_parser.add_argument("tool")
    run_parser.add_argument("args", nargs=argparse.REMAINDER)
    return parser


def _make_launcher(log: LogFn | None) -> ProcessLauncher:
    return default_launcher(log=log)


def _run_list(launcher: ProcessLauncher) -> int:
    names = launcher.extractor.bundle.list_executables(launcher.adapter)
    for name in names:
        sys.stdout.write(f"{name}\n")
    return 0


def _run_which(launcher: ProcessLauncher, tool: str) -> int:
    report = launcher.describe(tool)
    sys.stdout.write(f"{report['tool']}: {report['source']} {report['path']}\n")
    return 0 if report["source"] != "missing" else 1


def _run_tool(launcher: ProcessLauncher, tool: str, args: Sequence[str]) -> int:
    tool_args = list(args)
    if tool_args[:1] == ["--"]:
        tool_args = tool_args[1:]
    return launcher.run_tool(tool, tool_args)


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    launcher = _make_launcher(_stderr_log if args.verbose else None)
    try:
        if args.command == "list":
            return _run_list(launcher)
        if args.command == "which":
            return _run_which(launcher, args.tool)
        return _run_tool(launcher, args.tool, args.args)
    except ToolBundleError as exc:
        sys.stderr.write(f"[error] {exc}\n")
        return 2
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"[error] {args.command} failed: {exc}\n")
        return 2
    except KeyboardInterrupt:
        return 130
