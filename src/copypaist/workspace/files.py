"""
workspace/files.py — Project File Access

Reads project files for the service and enumerates the project tree that
start requests send as context. All paths handed in and out are relative to
the project root, with forward slashes.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Iterable, Optional

from copypaist.exceptions import FileResolutionError
from copypaist.observability.logger import get_logger

log = get_logger(__name__)

_MAX_RECENT = 10


class ProjectFiles:
    """File access rooted at one project directory."""

    def __init__(self, root: str | Path, ignored_paths: Optional[Iterable[str]] = None):
        self._root = Path(root).resolve()
        self._ignored = list(ignored_paths or [])
        self._recent: list[str] = []

    @property
    def root(self) -> Path:
        return self._root

    @property
    def recent_files(self) -> list[str]:
        return list(self._recent)

    # ─────────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, file_path: str) -> Path:
        target = (self._root / file_path).resolve()
        if self._root not in target.parents:
            raise FileResolutionError(file_path, "path is outside the project directory")
        return target

    def read_file(self, file_path: str) -> str:
        """Return a file's text. Raises FileResolutionError when it can't be read."""
        target = self.resolve(file_path)
        try:
            content = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise FileResolutionError(file_path, "no such file") from None
        except (OSError, UnicodeDecodeError) as exc:
            raise FileResolutionError(file_path, str(exc)) from exc
        self._remember(file_path)
        return content

    def relative(self, path: str | Path) -> str:
        """Project-relative form of a path given relative to the root or absolute."""
        target = (self._root / path).resolve()
        return target.relative_to(self._root).as_posix()

    # ─────────────────────────────────────────────────────────────────────────
    # Enumeration
    # ─────────────────────────────────────────────────────────────────────────

    def is_ignored(self, rel_path: str, *, directory: bool = False) -> bool:
        candidate = f"/{rel_path}/" if directory else f"/{rel_path}"
        return any(fnmatch.fnmatchcase(candidate, pattern) for pattern in self._ignored)

    def project_tree(self, pattern: str = "*") -> list[str]:
        """Sorted relative paths of every non-hidden, non-ignored file matching `pattern`."""
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            rel_dir = Path(dirpath).relative_to(self._root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = [
                d for d in dirnames
                if not d.startswith(".") and not self.is_ignored(prefix + d, directory=True)
            ]
            for name in filenames:
                rel = prefix + name
                if name.startswith(".") or self.is_ignored(rel):
                    continue
                if fnmatch.fnmatchcase(name, pattern):
                    files.append(rel)
        files.sort()
        log.debug("files.project_tree", root=str(self._root), count=len(files))
        return files

    def list_dir(self, rel_dir: str = "") -> tuple[list[str], list[str]]:
        """Immediate (directories, files) of a project directory, both sorted."""
        base = self._root / rel_dir if rel_dir else self._root
        prefix = f"{rel_dir.rstrip('/')}/" if rel_dir else ""
        dirs: list[str] = []
        files: list[str] = []
        for entry in sorted(base.iterdir(), key=lambda p: p.name):
            if entry.name.startswith("."):
                continue
            rel = prefix + entry.name
            if entry.is_dir():
                if not self.is_ignored(rel, directory=True):
                    dirs.append(rel)
            elif not self.is_ignored(rel):
                files.append(rel)
        return dirs, files

    def _remember(self, file_path: str) -> None:
        if file_path in self._recent:
            self._recent.remove(file_path)
        self._recent.insert(0, file_path)
        del self._recent[_MAX_RECENT:]
