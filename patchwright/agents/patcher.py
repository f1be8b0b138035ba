"""
🔧 Patcher — Issue-to-Patch

Reads an issue plus the repo's path listing and asks for complete
replacement contents of the files that need to change. Never sees
file contents, never touches the filesystem. The workspace does that.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from patchwright.agents import BaseAgent, Text, describe_validation_error
from patchwright.collector import IssueSnapshot
from patchwright.completion import CompletionResponse, MalformedJSONError


# ---------------------------------------------------------------------------
# Output Schemas
# ---------------------------------------------------------------------------

class ChangeItem(BaseModel):
    path: str = Field(min_length=1)
    content: str


class PatchProposal(BaseModel):
    """
    The patch answer. Every field has a default: an answer that omits
    `changes` means "no changes produced", not a crash.

    `changes` stays loosely typed here. Items are validated one by one
    when applied so a single bad item cannot sink the batch.
    """
    model_config = ConfigDict(populate_by_name=True)

    skip: bool = False
    reason: Text | None = None
    branch: Text | None = None
    commit_message: Text | None = Field(default=None, alias="commitMessage")
    changes: list[Any] = Field(default_factory=list)

    @field_validator("changes", mode="before")
    @classmethod
    def _null_changes(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def declined(self) -> bool:
        return self.skip and bool(self.reason)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_patch_prompt(snapshot: IssueSnapshot, max_prompt_files: int = 80) -> str:
    """Render an issue snapshot. Same snapshot and limit → same string."""
    n = snapshot.issue_number
    files = ", ".join(snapshot.file_list[:max_prompt_files])

    return f"""You are an expert developer. A GitHub issue was opened for this repo. Your job is to produce a minimal fix.

Issue #{n}
Title: {snapshot.title}

Description:
{snapshot.body}

Relevant files in the repo (path only): {files}

Respond with a single JSON object and nothing else. No prose, no markdown, no code fence.
Use this exact shape:
{{
  "skip": false,
  "reason": null,
  "branch": "autofix/issue-{n}",
  "commitMessage": "Fix: <short description> (#{n})",
  "changes": [
    {{ "path": "relative/path/from/repo/root", "content": "full file content as string" }}
  ]
}}

Field types: "skip" is a boolean, "reason" is a string or null, "branch" and "commitMessage" are strings, "changes" is an array of objects with string "path" and string "content".

Rules:
- If you cannot determine a safe fix from the issue alone, set "skip": true and set "reason" to a short message for the user.
- Only include files that need to be changed. "path" must be relative to repo root. Use "content" for the entire new file content.
- commitMessage should reference the issue and be concise.
- Keep changes minimal and match existing code style."""


# ---------------------------------------------------------------------------
# Agent Implementation
# ---------------------------------------------------------------------------

class PatcherAgent(BaseAgent[IssueSnapshot, PatchProposal]):
    role = "patcher"

    def build_prompt(self, snapshot: IssueSnapshot) -> str:
        return build_patch_prompt(snapshot, self.limits.max_prompt_files)

    def max_tokens(self) -> int:
        return self.limits.patch_max_tokens

    def parse_response(self, response: CompletionResponse) -> PatchProposal:
        try:
            proposal = PatchProposal.model_validate(response.payload)
        except ValidationError as e:
            logger.error(f"[PATCHER] Failed to validate patch JSON: {e}")
            raise MalformedJSONError(describe_validation_error(e)) from e

        logger.info(
            f"[PATCHER] Proposal ready — "
            f"skip={proposal.skip}, "
            f"{len(proposal.changes)} change(s), "
            f"{response.tokens_used} tokens"
        )
        return proposal
