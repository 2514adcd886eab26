from __future__ import annotations

import re
import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from importlib.resources.abc import Traversable
from pathlib import Path

from .errors import NotFoundError
from .platform_adapter import PlatformAdapter
from .settings import Settings

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True)
class BundleEntry:
    path: str
    is_dir: bool

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def normalize_bundle_path(path: str) -> str:
    """Return `path` in bundle form: relative, `/`-separated, no empty parts."""
    raw = str(path or "").replace("\\", "/")
    if raw.startswith("/") or _DRIVE_PREFIX.match(raw):
        raise ValueError(f"bundle paths must be relative: {path!r}")
    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"bundle paths must stay inside the bundle: {path!r}")
    return "/".join(parts)


def _join(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name


class ResourceBundle(ABC):
    """Read-only view of the executables packaged for one platform.

    Implementations never change after construction, so a single instance can
    be shared by any number of threads.
    """

    @abstractmethod
    def list(self, directory: str = "") -> list[BundleEntry]:
        """Entries directly under `directory`, ordered by name."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Contents of the file at `path`."""

    def is_file(self, path: str) -> bool:
        clean = normalize_bundle_path(path)
        if not clean:
            return False
        parent, _, _ = clean.rpartition("/")
        try:
            entries = self.list(parent)
        except NotFoundError:
            return False
        return any(entry.path == clean and not entry.is_dir for entry in entries)

    def walk(self, root: str = "") -> Iterator[tuple[str, BundleEntry]]:
        """
        Depth-first, name-ordered traversal of the subtree under `root`.

        Yields `(relative_path, entry)` with each directory before its
        children. The root itself is not yielded.
        """
        clean = normalize_bundle_path(root)
        for entry in self.list(clean):
            relative = entry.path[len(clean) + 1 :] if clean else entry.path
            yield relative, entry
            if entry.is_dir:
                for child_relative, child in self.walk(entry.path):
                    yield _join(relative, child_relative), child

    def list_executables(self, adapter: PlatformAdapter) -> list[str]:
        return [
            entry.name
            for entry in self.list("")
            if not entry.is_dir and adapter.is_executable_name(entry.name)
        ]


class TraversableBundle(ResourceBundle):
    """Bundle backed by a directory, package data or a zip archive."""

    def __init__(self, root: Traversable | Path) -> None:
        self._root = root

    def __repr__(self) -> str:
        return f"TraversableBundle({str(self._root)!r})"

    def _locate(self, path: str) -> tuple[str, Traversable]:
        clean = normalize_bundle_path(path)
        node: Traversable = self._root
        for part in clean.split("/") if clean else ():
            node = node.joinpath(part)
        return clean, node

    def list(self, directory: str = "") -> list[BundleEntry]:
        clean, node = self._locate(directory)
        if not node.is_dir():
            raise NotFoundError(
                f"bundle directory {clean or '.'!r} not found",
                name=clean,
            )
        entries = [
            BundleEntry(path=_join(clean, child.name), is_dir=child.is_dir())
            for child in node.iterdir()
        ]
        return sorted(entries, key=lambda entry: entry.name)

    def read(self, path: str) -> bytes:
        clean, node = self._locate(path)
        if not clean or not node.is_file():
            raise NotFoundError(f"bundle file {clean!r} not found", name=clean)
        return node.read_bytes()


class MemoryBundle(ResourceBundle):
    def __init__(
        self,
        files: Mapping[str, bytes],
        directories: Iterable[str] = (),
    ) -> None:
        self._files = {normalize_bundle_path(path): bytes(data) for path, data in files.items()}
        self._dirs: set[str] = {""}
        for path in [*self._files, *(normalize_bundle_path(d) for d in directories)]:
            parts = path.split("/")
            limit = len(parts) if path not in self._files else len(parts) - 1
            for idx in range(1, limit + 1):
                self._dirs.add("/".join(parts[:idx]))

    def __repr__(self) -> str:
        return f"MemoryBundle({len(self._files)} files)"

    def list(self, directory: str = "") -> list[BundleEntry]:
        clean = normalize_bundle_path(directory)
        if clean not in self._dirs:
            raise NotFoundError(
                f"bundle directory {clean or '.'!r} not found",
                name=clean,
            )
        entries = [
            BundleEntry(path=path, is_dir=False)
            for path in self._files
            if path.rpartition("/")[0] == clean
        ]
        entries.extend(
            BundleEntry(path=path, is_dir=True)
            for path in self._dirs
            if path and path.rpartition("/")[0] == clean
        )
        return sorted(entries, key=lambda entry: entry.name)

    def read(self, path: str) -> bytes:
        clean = normalize_bundle_path(path)
        try:
            return self._files[clean]
        except KeyError:
            raise NotFoundError(f"bundle file {clean!r} not found", name=clean) from None


def _repo_root() -> Path:
    return Path(__file__).resolve().parent.parent


def default_bundle_roots(settings: Settings | None = None) -> list[Path]:
    roots: list[Path] = []
    if settings is not None and settings.bundle_root is not None:
        roots.append(settings.bundle_root)
    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        roots.append(exe_dir / "tools")
        meipass = getattr(sys, "_MEIPASS", None)
        if meipass:
            roots.append(Path(meipass) / "tools")
    else:
        roots.append(_repo_root() / "bundled_tools")
    return roots


def load_default_bundle(adapter: PlatformAdapter) -> ResourceBundle:
    """Pick the bundle for the running platform, or an empty one."""
    for root in default_bundle_roots(adapter.settings):
        candidate = root / adapter.bundle_dir_name()
        if candidate.is_dir():
            return TraversableBundle(candidate)
    return MemoryBundle({})
