"""
Outcome Records — the one file each run leaves behind for the workflow.

Field names are the contract with the CI layer. Readers ignore extras.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

PATCH_OUTCOME_FILE = "autofix-output.json"
REVIEW_OUTCOME_FILE = "review-output.json"


class PatchOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    branch: str = ""
    commit_message: str = Field(default="", alias="commitMessage")
    skip: bool
    reason: str | None = None
    # Run bookkeeping, never written to disk
    failed: bool = Field(default=False, exclude=True)
    files_written: list[str] = Field(default_factory=list, exclude=True)

    def write(self, output_dir: Path) -> Path:
        return _write(output_dir / PATCH_OUTCOME_FILE, self.model_dump(by_alias=True))

    @classmethod
    def read(cls, output_dir: Path) -> "PatchOutcome":
        return cls.model_validate_json((output_dir / PATCH_OUTCOME_FILE).read_text(encoding="utf-8"))


class ReviewOutcome(BaseModel):
    model_config = ConfigDict(extra="ignore")

    review: Any = None
    body: str
    approved: bool
    error: str | None = None
    failed: bool = Field(default=False, exclude=True)

    def write(self, output_dir: Path) -> Path:
        data = self.model_dump()
        if data["error"] is None:
            del data["error"]
        return _write(output_dir / REVIEW_OUTCOME_FILE, data)

    @classmethod
    def read(cls, output_dir: Path) -> "ReviewOutcome":
        return cls.model_validate_json((output_dir / REVIEW_OUTCOME_FILE).read_text(encoding="utf-8"))


def _write(path: Path, data: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Output written to {path}")
    return path
