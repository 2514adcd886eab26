from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .bundle import ResourceBundle, normalize_bundle_path
from .errors import ExecutablePermissionError, ExtractionError, NotFoundError
from .platform_adapter import PlatformAdapter

LogFn = Callable[[str], None]

_WRITE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)


def emit_log(log: LogFn | None, line: str) -> None:
    if log is not None:
        log(line)


@dataclass
class ExtractionWorkspace:
    """
    A temp file or temp directory tree owned by one extraction call.

    `path` is the extracted executable; `root` is what `cleanup()` removes
    (the file itself, or the whole directory for tree extractions).
    """

    root: Path
    path: Path
    is_tree: bool
    created_at: datetime = field(default_factory=datetime.now)
    alive: bool = True
    log: LogFn | None = field(default=None, repr=False, compare=False)

    def cleanup(self) -> None:
        if not self.alive:
            return
        self.alive = False
        try:
            if self.is_tree:
                shutil.rmtree(self.root)
            else:
                self.root.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            emit_log(self.log, f"[cleanup] could not remove {self.root}: {exc}")
            return
        emit_log(self.log, f"[cleanup] removed {self.root}")

    def __enter__(self) -> ExtractionWorkspace:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False


def is_tree_name(name: str) -> bool:
    return "/" in name or "\\" in name


class Extractor:
    def __init__(
        self,
        bundle: ResourceBundle,
        adapter: PlatformAdapter,
        *,
        log: LogFn | None = None,
    ) -> None:
        self.bundle = bundle
        self.adapter = adapter
        self._log = log

    def materialize(self, name: str) -> ExtractionWorkspace:
        if is_tree_name(name):
            return self.materialize_tree(name)
        return self.materialize_file(name)

    def materialize_file(self, name: str) -> ExtractionWorkspace:
        clean = normalize_bundle_path(name)
        if not clean or "/" in clean:
            raise ValueError(f"invalid bundle file name {name!r}")
        data = self.bundle.read(clean)
        suffix = self.adapter.executable_suffix()
        temp_root = self._temp_root(clean)
        try:
            fd, raw_path = tempfile.mkstemp(
                prefix=f"{self._base_name(clean)}-",
                suffix=suffix,
                dir=temp_root,
            )
        except OSError as exc:
            raise ExtractionError(
                f"create temp file for {clean!r} in {temp_root}: {exc}",
                name=clean,
                path=temp_root,
            ) from exc

        path = Path(raw_path)
        workspace = ExtractionWorkspace(root=path, path=path, is_tree=False, log=self._log)
        with self._release_on_error(workspace):
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
            except OSError as exc:
                raise ExtractionError(
                    f"write {clean!r} to {path}: {exc}",
                    name=clean,
                    path=path,
                ) from exc
            self.adapter.ensure_executable(path)

        emit_log(self._log, f"[extract] {clean} -> {path}")
        return workspace

    def materialize_tree(self, name: str) -> ExtractionWorkspace:
        clean = normalize_bundle_path(name)
        prefix, _, leaf = clean.rpartition("/")
        if not prefix or not leaf:
            raise ValueError(f"invalid bundle tree path {name!r}")
        if not self.bundle.is_file(clean):
            raise NotFoundError(f"bundle file {clean!r} not found", name=clean)

        temp_root = self._temp_root(clean)
        try:
            raw_dir = tempfile.mkdtemp(prefix=f"{self._base_name(leaf)}-", dir=temp_root)
        except OSError as exc:
            raise ExtractionError(
                f"create temp dir for {clean!r} in {temp_root}: {exc}",
                name=clean,
                path=temp_root,
            ) from exc

        root = Path(raw_dir)
        workspace = ExtractionWorkspace(
            root=root,
            path=root.joinpath(*clean.split("/")),
            is_tree=True,
            log=self._log,
        )
        with self._release_on_error(workspace):
            copied = self._copy_tree(prefix, root, clean)

        emit_log(self._log, f"[extract] {clean} -> {workspace.path} ({copied} files)")
        return workspace

    def _copy_tree(self, prefix: str, root: Path, name: str) -> int:
        target_dir = root.joinpath(*prefix.split("/"))
        copied = 0
        try:
            target_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            for relative, entry in self.bundle.walk(prefix):
                dest = target_dir.joinpath(*relative.split("/"))
                if entry.is_dir:
                    dest.mkdir(mode=0o700, parents=True, exist_ok=True)
                    continue
                _write_file(dest, self.bundle.read(entry.path))
                self.adapter.ensure_executable(dest)
                copied += 1
        except ExecutablePermissionError:
            raise
        except OSError as exc:
            # A bundle entry vanishing mid-walk is a local failure, not a miss.
            raise ExtractionError(
                f"copy bundle tree {prefix!r} to {root}: {exc}",
                name=name,
                path=root,
            ) from exc
        return copied

    def _temp_root(self, name: str) -> Path:
        try:
            return self.adapter.temp_root()
        except OSError as exc:
            raise ExtractionError(
                f"prepare temp root for {name!r}: {exc}",
                name=name,
                path=self.adapter.temp_root_path(),
            ) from exc

    def _base_name(self, filename: str) -> str:
        suffix = self.adapter.executable_suffix()
        if suffix and filename.lower().endswith(suffix):
            return filename[: -len(suffix)]
        return filename

    @contextmanager
    def _release_on_error(self, workspace: ExtractionWorkspace) -> Iterator[ExtractionWorkspace]:
        try:
            yield workspace
        except BaseException:
            workspace.cleanup()
            raise


def _write_file(dest: Path, data: bytes) -> None:
    fd = os.open(dest, _WRITE_FLAGS, 0o700)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
