from __future__ import annotations

import os
import platform
import stat
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import ExecutablePermissionError
from .settings import Settings, load_settings

if TYPE_CHECKING:
    from .launcher import ProcessDescriptor

SERVER_NAME = "toolbundle-server"
SERVER_DISPLAY_NAME = "Toolbundle Server"

# Mirrors subprocess.CREATE_NO_WINDOW, which only exists on Windows builds.
CREATE_NO_WINDOW = 0x08000000

_EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
_NON_EXECUTABLE_SUFFIXES = (".txt", ".md")


@dataclass(frozen=True)
class PlatformAdapter:
    """OS-specific facts used by extraction and launch.

    `system` uses the names reported by `platform.system()`. The environment
    mapping is captured once so the temp-root chain stays fixed for the
    adapter's lifetime.
    """

    system: str
    environ: Mapping[str, str] = field(default_factory=dict, hash=False)
    settings: Settings = field(default_factory=Settings)

    @classmethod
    def current(cls, settings: Settings | None = None) -> PlatformAdapter:
        return cls(
            system=platform.system(),
            environ=dict(os.environ),
            settings=settings if settings is not None else load_settings(),
        )

    @property
    def is_windows(self) -> bool:
        return self.system == "Windows"

    @property
    def is_macos(self) -> bool:
        return self.system == "Darwin"

    def executable_suffix(self) -> str:
        return ".exe" if self.is_windows else ""

    def shared_lib_suffix(self) -> str:
        if self.is_windows:
            return ".dll"
        if self.is_macos:
            return ".dylib"
        return ".so"

    def bundle_dir_name(self) -> str:
        return f"bin_{self.system.lower() or 'linux'}"

    def temp_root_path(self) -> Path:
        """
        Resolve the extraction root without touching the filesystem.

        Order: TOOLBUNDLE_TEMP_ROOT, then the platform variable
        (XDG_RUNTIME_DIR on Linux, TMPDIR on macOS, ProgramData on Windows),
        then a fixed default.
        """
        if self.settings.temp_root is not None:
            return self.settings.temp_root
        if self.is_windows:
            program_data = self.environ.get("ProgramData", "")
            if program_data:
                return Path(program_data) / SERVER_DISPLAY_NAME / "tmp"
            return Path(tempfile.gettempdir()) / SERVER_NAME
        variable = "TMPDIR" if self.is_macos else "XDG_RUNTIME_DIR"
        base = self.environ.get(variable, "")
        if base:
            return Path(base) / SERVER_NAME
        return Path("/tmp") / SERVER_NAME

    def temp_root(self) -> Path:
        root = self.temp_root_path()
        root.mkdir(mode=0o700, parents=True, exist_ok=True)
        return root

    def ensure_executable(self, path: Path) -> None:
        if self.is_windows:
            return
        try:
            mode = os.stat(path).st_mode
            os.chmod(path, mode | _EXECUTE_BITS)
        except OSError as exc:
            raise ExecutablePermissionError(
                f"cannot mark {path} executable: {exc}",
                path=Path(path),
            ) from exc

    def configure_process(self, descriptor: ProcessDescriptor) -> None:
        if self.is_windows:
            descriptor.creationflags |= CREATE_NO_WINDOW
            descriptor.hide_window = True
            return
        if self.settings.process_group:
            descriptor.start_new_session = True

    def is_executable_name(self, name: str) -> bool:
        suffix = self.executable_suffix()
        if suffix:
            return name.lower().endswith(suffix)
        if name.startswith("."):
            return False
        return not name.lower().endswith(_NON_EXECUTABLE_SUFFIXES)

    def tool_filename(self, tool: str) -> str:
        return f"{tool}{self.executable_suffix()}"
