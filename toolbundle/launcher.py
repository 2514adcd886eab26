from __future__ import annotations

import os
import shutil
import signal
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any, ClassVar, TypeAlias

from .bundle import load_default_bundle, normalize_bundle_path
from .errors import LaunchCancelledError, NotFoundError, ResolutionError
from .extractor import ExtractionWorkspace, Extractor, LogFn, emit_log
from .platform_adapter import PlatformAdapter
from .settings import KILL_GRACE_DEFAULT_S, POLL_INTERVAL_DEFAULT_S, Settings

Arg: TypeAlias = str | PathLike[str]
WhichFn: TypeAlias = Callable[[str], str | None]

# STARTUPINFO.wShowWindow value that keeps the console hidden.
SW_HIDE = 0


@dataclass(frozen=True)
class BundledPath:
    path: Path
    workspace: ExtractionWorkspace = field(hash=False)

    source: ClassVar[str] = "bundled"

    def cleanup(self) -> None:
        self.workspace.cleanup()


@dataclass(frozen=True)
class SystemPath:
    path: Path

    source: ClassVar[str] = "system"

    def cleanup(self) -> None:
        # System binaries are not ours to remove.
        return None


ResolvedExecutable: TypeAlias = BundledPath | SystemPath


@dataclass
class ProcessDescriptor:
    """
    A configured, not-yet-started child process.

    `cleanup()` releases the extracted executable. Call it only after the
    process has fully exited: removing the file while the child still has it
    open fails on Windows and is left to the caller to sequence. Using the
    descriptor as a context manager releases it when the block ends.
    """

    tool: str
    executable: Path
    args: tuple[Arg, ...] = ()
    resolved: ResolvedExecutable | None = None
    cancel_event: threading.Event | None = None
    creationflags: int = 0
    start_new_session: bool = False
    hide_window: bool = False
    kill_grace_s: float = KILL_GRACE_DEFAULT_S
    poll_interval_s: float = POLL_INTERVAL_DEFAULT_S

    @property
    def argv(self) -> list[Arg]:
        return [str(self.executable), *self.args]

    @property
    def source(self) -> str:
        return self.resolved.source if self.resolved is not None else "unresolved"

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def popen_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.creationflags:
            kwargs["creationflags"] = self.creationflags
        if self.start_new_session:
            kwargs["start_new_session"] = True
        if self.hide_window and hasattr(subprocess, "STARTUPINFO"):
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            startupinfo.wShowWindow = SW_HIDE
            kwargs["startupinfo"] = startupinfo
        return kwargs

    def start(self, **popen_kwargs: Any) -> subprocess.Popen:
        if self.cancelled:
            raise LaunchCancelledError(self.tool)
        kwargs = self.popen_kwargs()
        kwargs.update(popen_kwargs)
        return subprocess.Popen(self.argv, **kwargs)

    def wait(self, process: subprocess.Popen, poll_interval: float | None = None) -> int:
        """Wait for exit, stopping the process if the cancel event fires."""
        if self.cancel_event is None:
            return process.wait()
        interval = poll_interval if poll_interval is not None else self.poll_interval_s
        while not self.cancel_event.is_set():
            try:
                return process.wait(timeout=interval)
            except subprocess.TimeoutExpired:
                continue
        return self.stop(process)

    def stop(self, process: subprocess.Popen) -> int:
        """
        Terminate the child, then kill it once `kill_grace_s` has passed.

        A child started in its own session is signalled as a whole process
        group so that anything it spawned goes down with it.
        """
        if self._owns_group():
            _signal_group(process, signal.SIGTERM)
        else:
            process.terminate()
        try:
            return process.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            if self._owns_group():
                _signal_group(process, signal.SIGKILL)
            else:
                process.kill()
            return process.wait()

    def _owns_group(self) -> bool:
        return self.start_new_session and hasattr(os, "killpg")

    def cleanup(self) -> None:
        if self.resolved is not None:
            self.resolved.cleanup()

    def __enter__(self) -> ProcessDescriptor:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False


def _signal_group(process: subprocess.Popen, sig: int) -> None:
    # The session leader's pid doubles as the group id.
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        return


class ProcessLauncher:
    def __init__(
        self,
        extractor: Extractor,
        adapter: PlatformAdapter | None = None,
        *,
        which: WhichFn = shutil.which,
        log: LogFn | None = None,
    ) -> None:
        self.extractor = extractor
        self.adapter = adapter if adapter is not None else extractor.adapter
        self._which = which
        self._log = log

    def resolve(self, tool: str) -> ResolvedExecutable:
        """
        Resolve `tool` to an executable path, bundled copy first.

        Only a bundle miss falls back to the system search path; any other
        extraction failure is a local problem and propagates unchanged.
        """
        try:
            workspace = self.extractor.materialize(self.adapter.tool_filename(tool))
        except NotFoundError as embedded:
            return self._resolve_system(tool, embedded)
        return BundledPath(path=workspace.path, workspace=workspace)

    def _resolve_system(self, tool: str, embedded: NotFoundError) -> SystemPath:
        found = self._which(tool)
        if not found:
            system_cause = NotFoundError(f"{tool!r} not found on system PATH", name=tool)
            raise ResolutionError(
                tool,
                embedded_cause=embedded,
                system_cause=system_cause,
            ) from embedded
        emit_log(self._log, f"[fallback] {tool} not bundled, using {found}")
        return SystemPath(path=Path(found))

    def launch(
        self,
        tool: str,
        args: Sequence[Arg] = (),
        cancel_event: threading.Event | None = None,
    ) -> ProcessDescriptor:
        if cancel_event is not None and cancel_event.is_set():
            raise LaunchCancelledError(tool)
        resolved = self.resolve(tool)
        try:
            if cancel_event is not None and cancel_event.is_set():
                raise LaunchCancelledError(tool)
            settings = self.adapter.settings
            descriptor = ProcessDescriptor(
                tool=tool,
                executable=resolved.path,
                args=tuple(args),
                resolved=resolved,
                cancel_event=cancel_event,
                kill_grace_s=settings.kill_grace_s,
                poll_interval_s=settings.poll_interval_s,
            )
            self.adapter.configure_process(descriptor)
        except BaseException:
            resolved.cleanup()
            raise
        emit_log(self._log, f"[launch] {tool} ({resolved.source}) {resolved.path}")
        return descriptor

    def run_tool(
        self,
        tool: str,
        args: Sequence[Arg] = (),
        cancel_event: threading.Event | None = None,
        **popen_kwargs: Any,
    ) -> int:
        """Launch, wait for exit and release the workspace. Returns the exit code."""
        with self.launch(tool, args, cancel_event) as descriptor:
            process = descriptor.start(**popen_kwargs)
            try:
                returncode = descriptor.wait(process)
            except BaseException:
                descriptor.stop(process)
                raise
        emit_log(self._log, f"[exit] {tool} returned {returncode}")
        return returncode

    def describe(self, tool: str) -> dict[str, str]:
        name = normalize_bundle_path(self.adapter.tool_filename(tool))
        if self.extractor.bundle.is_file(name):
            return {"tool": tool, "source": "bundled", "path": f"bundle:{name}"}
        found = self._which(tool)
        if found:
            return {"tool": tool, "source": "system", "path": found}
        return {"tool": tool, "source": "missing", "path": "not found"}


def default_launcher(
    settings: Settings | None = None,
    *,
    log: LogFn | None = None,
) -> ProcessLauncher:
    adapter = PlatformAdapter.current(settings)
    extractor = Extractor(load_default_bundle(adapter), adapter, log=log)
    return ProcessLauncher(extractor, adapter, log=log)
