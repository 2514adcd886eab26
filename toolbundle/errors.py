from __future__ import annotations

from pathlib import Path


class ToolBundleError(Exception):
    """Base class for every error raised by toolbundle."""


class NotFoundError(ToolBundleError, FileNotFoundError):
    def __init__(self, message: str, *, name: str = "") -> None:
        super().__init__(message)
        self.name = name


class ExtractionError(ToolBundleError, OSError):
    def __init__(self, message: str, *, name: str = "", path: Path | None = None) -> None:
        super().__init__(message)
        self.name = name
        self.path = path


class ExecutablePermissionError(ToolBundleError, PermissionError):
    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ResolutionError(ToolBundleError):
    """Raised when a tool is neither bundled nor on the system search path.

    Both underlying causes are kept so the bundled-extraction diagnostic is
    never lost behind the PATH lookup failure.
    """

    def __init__(
        self,
        tool: str,
        *,
        embedded_cause: BaseException,
        system_cause: BaseException,
    ) -> None:
        super().__init__(
            f"executable {tool!r} not found in bundle or system PATH: "
            f"bundle error: {embedded_cause}; system error: {system_cause}"
        )
        self.tool = tool
        self.embedded_cause = embedded_cause
        self.system_cause = system_cause


class LaunchCancelledError(ToolBundleError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"launch of {tool!r} cancelled")
        self.tool = tool
