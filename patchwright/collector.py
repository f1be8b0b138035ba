"""
PATCHWRIGHT Context Collector

Builds the immutable snapshot each pipeline hands to its prompt:
  - Issue-to-Patch: issue metadata + a bounded listing of repo paths
  - Diff-to-Review: PR metadata + the diff, truncated to a char budget

Only paths are listed. File contents are never read at this stage.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from loguru import logger
from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SKIP_DIRS = frozenset({"node_modules", ".git", "dist", "build"})

# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class IssueSnapshot(BaseModel):
    """Everything the patch prompt is allowed to know about an issue."""
    model_config = ConfigDict(frozen=True)

    issue_number: int
    title: str = ""
    body: str = ""
    file_list: tuple[str, ...] = ()


class PullRequestSnapshot(BaseModel):
    """Everything the review prompt is allowed to know about a PR."""
    model_config = ConfigDict(frozen=True)

    pr_number: int
    title: str = ""
    body: str = ""
    diff_text: str = ""
    truncated: bool = False


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def list_repo_files(
    root: Path,
    max_files: int = 200,
    skip_dirs: Iterable[str] = SKIP_DIRS,
) -> list[str]:
    """
    Depth-first listing of relative file paths under root.

    The cap is global: each recursive call gets only the budget that is
    left, and every level stops as soon as it is spent.
    """
    skip = frozenset(skip_dirs)
    return _walk(Path(root), "", max_files, skip)


def _walk(directory: Path, prefix: str, budget: int, skip: frozenset[str]) -> list[str]:
    files: list[str] = []
    if budget <= 0:
        return files

    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as e:
        logger.debug(f"[COLLECT] Cannot list {directory}: {e}")
        return files

    for entry in entries:
        if entry.name in skip:
            continue
        rel = f"{prefix}/{entry.name}" if prefix else entry.name

        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue

        if is_dir:
            files.extend(_walk(Path(entry.path), rel, budget - len(files), skip))
        else:
            files.append(rel)

        if len(files) >= budget:
            break

    return files


# ---------------------------------------------------------------------------
# Snapshot builders
# ---------------------------------------------------------------------------

def collect_issue(
    repo_root: Path,
    issue_number: int,
    title: str,
    body: str,
    max_files: int = 200,
    skip_dirs: Iterable[str] = SKIP_DIRS,
) -> IssueSnapshot:
    file_list = list_repo_files(repo_root, max_files=max_files, skip_dirs=skip_dirs)
    logger.info(f"[COLLECT] Issue #{issue_number}: {len(file_list)} paths listed (cap {max_files})")
    return IssueSnapshot(
        issue_number=issue_number,
        title=title,
        body=body,
        file_list=tuple(file_list),
    )


def collect_pull_request(
    pr_number: int,
    title: str,
    body: str,
    diff: str,
    max_diff_chars: int = 15_000,
) -> PullRequestSnapshot:
    # Character count, not tokens. Close enough to bound the prompt.
    truncated = len(diff) > max_diff_chars
    if truncated:
        logger.info(f"[COLLECT] PR #{pr_number}: diff truncated {len(diff)} → {max_diff_chars} chars")
    return PullRequestSnapshot(
        pr_number=pr_number,
        title=title,
        body=body,
        diff_text=diff[:max_diff_chars],
        truncated=truncated,
    )


def read_diff_file(path: Path) -> str:
    """Read a diff saved by the workflow (PR diffs can exceed env size limits)."""
    return Path(path).read_text(encoding="utf-8", errors="replace")
