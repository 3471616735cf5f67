"""
session/applier.py — Applying a Completed Change Set

Materialises the file changes of a COMPLETE envelope under the project root.

Every existing target is copied to `<path><suffix>` (".bak" by default,
overwriting an older backup) before the first write of the batch, then the
changes are written in payload order, creating missing directories. When
two changes in one batch target the same path the last write wins and the
backup holds the file as it was before the batch.

There is no cross-file transaction. If change k fails, changes 1..k-1 stay
applied and ApplyError carries the paths that were written. In staged mode
every change is first written to a temporary sibling, and only when all of
them were written are they moved into place; backups are kept for manual
recovery either way.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from copypaist.exceptions import ApplyError
from copypaist.observability.logger import get_logger
from copypaist.session.envelope import FileChange

log = get_logger(__name__)


@dataclass
class ApplyReport:
    written: list[str] = field(default_factory=list)
    backups: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)


class ChangeApplier:
    """Backs up and overwrites the files named by a change set."""

    def __init__(self, root: str | Path, *, backup_suffix: str = ".bak", staged: bool = False):
        self._root = Path(root).resolve()
        self._suffix = backup_suffix
        self._staged = staged

    def resolve(self, file_path: str) -> Path:
        """Absolute target for a project-relative path; refuses paths outside the root."""
        target = (self._root / file_path).resolve()
        if target != self._root and self._root not in target.parents:
            raise ApplyError(file_path, "path is outside the project directory")
        if target == self._root:
            raise ApplyError(file_path, "path names the project directory itself")
        return target

    def backup_path(self, target: Path) -> Path:
        return target.with_name(target.name + self._suffix)

    def apply(self, changes: Sequence[FileChange]) -> ApplyReport:
        report = ApplyReport()
        targets = [(change, self.resolve(change.file_path)) for change in changes]

        for change, target in targets:
            if target.is_file():
                self._backup(change.file_path, target, report)

        if self._staged:
            self._write_staged(targets, report)
        else:
            for change, target in targets:
                self._write(change, target, report)

        log.info(
            "applier.batch_applied",
            changes=len(changes),
            backups=len(report.backups),
            staged=self._staged,
        )
        return report

    # ─────────────────────────────────────────────────────────────────────────
    # Steps
    # ─────────────────────────────────────────────────────────────────────────

    def _backup(self, file_path: str, target: Path, report: ApplyReport) -> None:
        backup = self.backup_path(target)
        try:
            shutil.copy2(target, backup)
        except OSError as exc:
            raise ApplyError(file_path, f"backup failed: {exc}", report.written) from exc
        report.backups.append(str(backup))
        log.debug("applier.backup_created", path=file_path, backup=str(backup))

    def _write(self, change: FileChange, target: Path, report: ApplyReport) -> None:
        existed = target.exists()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8", newline="") as f:
                f.write(change.full_content)
        except OSError as exc:
            log.error("applier.write_failed", path=change.file_path, error=str(exc))
            raise ApplyError(change.file_path, str(exc), report.written) from exc
        report.written.append(change.file_path)
        if not existed:
            report.created.append(change.file_path)
        log.debug("applier.change_written", path=change.file_path, created=not existed)

    def _write_staged(self, targets: list[tuple[FileChange, Path]], report: ApplyReport) -> None:
        staged: list[tuple[FileChange, Path, Path]] = []
        try:
            for change, target in targets:
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    fd, tmp_name = tempfile.mkstemp(
                        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
                    )
                    with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                        f.write(change.full_content)
                except OSError as exc:
                    raise ApplyError(change.file_path, f"staging failed: {exc}") from exc
                staged.append((change, target, Path(tmp_name)))
        except ApplyError:
            for _, _, tmp in staged:
                tmp.unlink(missing_ok=True)
            raise

        for index, (change, target, tmp) in enumerate(staged):
            existed = target.exists()
            try:
                os.replace(tmp, target)
            except OSError as exc:
                for _, _, leftover in staged[index:]:
                    leftover.unlink(missing_ok=True)
                raise ApplyError(change.file_path, str(exc), report.written) from exc
            report.written.append(change.file_path)
            if not existed:
                report.created.append(change.file_path)
