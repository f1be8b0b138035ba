"""
PATCHWRIGHT Workspace — Contained Writes

Materializes proposed Change Items onto the repository checkout.
Every target is resolved to its canonical absolute path and must land
inside the root. Anything else is rejected, logged, and skipped; the
rest of the batch still goes through.

No locking. One invocation per repository checkout at a time.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from loguru import logger
from pydantic import ValidationError

from patchwright.agents.patcher import ChangeItem


class UnsafePathError(Exception):
    """A change targets something outside the root or inside a protected path."""


@dataclass
class ApplyReport:
    written: list[str] = field(default_factory=list)
    rejected: list[tuple[str, str]] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.written)

    def reject(self, path: str, reason: str) -> None:
        logger.warning(f"[APPLY] Skipping {path or '<no path>'}: {reason}")
        self.rejected.append((path, reason))


class Workspace:
    """
    Contained write access to a single repository root.
    """

    def __init__(
        self,
        root: Path,
        protected_paths: Iterable[str] = (".git",),
        max_changes: int = 50,
        max_file_bytes: int = 1_000_000,
    ):
        self.root = Path(root).resolve()
        self.protected = [(self.root / p).resolve() for p in protected_paths]
        self.max_changes = max_changes
        self.max_file_bytes = max_file_bytes

    # -----------------------------------------------------------------------
    # Containment
    # -----------------------------------------------------------------------

    def contains(self, target: Path) -> bool:
        """True if target is the root itself or strictly inside it."""
        return target == self.root or self.root in target.parents

    def resolve(self, rel_path: str) -> Path:
        """
        Canonical absolute path for rel_path, or UnsafePathError.

        Absolute inputs replace the root when joined, `..` and symlinks are
        collapsed by resolve(), so the containment test sees the real target.
        """
        try:
            target = (self.root / rel_path).resolve()
        except (OSError, ValueError) as e:
            raise UnsafePathError(f"cannot resolve path: {e}") from e

        if not self.contains(target):
            raise UnsafePathError("resolves outside the repository root")

        for guarded in self.protected:
            if target == guarded or guarded in target.parents:
                raise UnsafePathError(f"inside protected path {guarded.relative_to(self.root)}")

        return target

    # -----------------------------------------------------------------------
    # Application
    # -----------------------------------------------------------------------

    def apply(self, changes: list[Any]) -> ApplyReport:
        """
        Validate and write each change independently.
        Full-content overwrite semantics: applying twice is a no-op.
        """
        report = ApplyReport()

        for index, raw in enumerate(changes):
            label = raw.get("path", "") if isinstance(raw, dict) else ""
            label = label if isinstance(label, str) else repr(label)
            label = label.encode("utf-8", "backslashreplace").decode("utf-8")

            if index >= self.max_changes:
                report.reject(label, f"over the {self.max_changes}-change limit")
                continue

            try:
                item = ChangeItem.model_validate(raw)
            except ValidationError:
                report.reject(label, "needs a non-empty string 'path' and string 'content'")
                continue

            # json.loads lets lone surrogates (\ud800) through; they can't be written
            try:
                item.path.encode("utf-8")
                size = len(item.content.encode("utf-8"))
            except UnicodeEncodeError:
                report.reject(label, "path or content is not encodable as UTF-8")
                continue

            if size > self.max_file_bytes:
                report.reject(item.path, f"content is {size} bytes, limit {self.max_file_bytes}")
                continue

            try:
                target = self.resolve(item.path)
            except UnsafePathError as e:
                report.reject(item.path, str(e))
                continue

            if target == self.root:
                report.reject(item.path, "is the repository root, not a file")
                continue

            try:
                self._write(target, item.content)
            except OSError as e:
                report.reject(item.path, f"write failed: {e}")
                continue

            rel = target.relative_to(self.root).as_posix()
            logger.info(f"[APPLY] WRITE {rel} ({size} bytes)")
            report.written.append(rel)

        return report

    @staticmethod
    def _write(target: Path, content: str) -> None:
        """Write via a sibling temp file + rename so no file is left half-written."""
        target.parent.mkdir(parents=True, exist_ok=True)
        # mkstemp creates 0600; keep an existing file's mode (exec bit included)
        mode = target.stat().st_mode & 0o7777 if target.is_file() else 0o644
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
