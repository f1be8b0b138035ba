"""
🔍 Reviewer — Diff-to-Review

Reads a (truncated) PR diff and returns a summary, line-level
suggestions and an approval verdict. Writes nothing.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from patchwright.agents import BaseAgent, Text, describe_validation_error
from patchwright.collector import PullRequestSnapshot
from patchwright.completion import CompletionResponse, MalformedJSONError


# ---------------------------------------------------------------------------
# Output Schemas
# ---------------------------------------------------------------------------

class Suggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file: Text = ""
    line: int | None = None
    # Not a Literal: an unknown severity renders as a plain suggestion
    # rather than failing the whole review.
    severity: Text = "suggestion"
    message: Text = ""
    suggested_code: Text | None = Field(default=None, alias="suggestedCode")

    @field_validator("file", "severity", "message", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value


class ReviewProposal(BaseModel):
    summary: Text
    suggestions: list[Suggestion] = Field(default_factory=list)
    approved: bool | None = None

    @field_validator("suggestions", mode="before")
    @classmethod
    def _null_suggestions(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def verdict(self) -> bool:
        """Approved unless the model explicitly said otherwise."""
        return self.approved is not False


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_review_prompt(snapshot: PullRequestSnapshot) -> str:
    """Render a PR snapshot. Same snapshot → same string."""
    description = snapshot.body or "(No description provided)"

    return f"""You are an expert code reviewer. A pull request has been opened and you need to review it.

PR #{snapshot.pr_number}
Title: {snapshot.title}

Description:
{description}

Diff:
```diff
{snapshot.diff_text}
```

Analyze the changes and provide a constructive code review. Focus on:
1. Code quality and best practices
2. Potential bugs or edge cases
3. Security concerns
4. Performance implications
5. Readability and maintainability
6. Missing tests or documentation (if applicable)

Respond with a single JSON object and nothing else. No prose, no markdown, no code fence.
Use this exact shape:
{{
  "summary": "A brief 1-2 sentence overall assessment",
  "suggestions": [
    {{
      "file": "path/to/file.js",
      "line": 42,
      "severity": "suggestion|warning|critical",
      "message": "Description of what could be improved and why",
      "suggestedCode": "Optional: improved code snippet if applicable"
    }}
  ],
  "approved": true or false (true if changes look good overall, false if critical issues found)
}}

Rules:
- Be constructive and helpful, not nitpicky
- Only include meaningful suggestions that add value
- If the PR looks good, return an empty suggestions array and approved: true
- Use "critical" severity sparingly, only for bugs or security issues
- "warning" for potential issues or anti-patterns
- "suggestion" for style improvements or minor enhancements
- Line numbers should reference the new file line (after changes), use 0 if not applicable to a specific line
- Keep suggestions concise but actionable"""


# ---------------------------------------------------------------------------
# Agent Implementation
# ---------------------------------------------------------------------------

class ReviewerAgent(BaseAgent[PullRequestSnapshot, ReviewProposal]):
    role = "reviewer"

    def build_prompt(self, snapshot: PullRequestSnapshot) -> str:
        return build_review_prompt(snapshot)

    def max_tokens(self) -> int:
        return self.limits.review_max_tokens

    def parse_response(self, response: CompletionResponse) -> ReviewProposal:
        try:
            review = ReviewProposal.model_validate(response.payload)
        except ValidationError as e:
            logger.error(f"[REVIEWER] Failed to validate review JSON: {e}")
            raise MalformedJSONError(describe_validation_error(e)) from e

        logger.info(
            f"[REVIEWER] Verdict: {'approved' if review.verdict else 'changes requested'} — "
            f"{len(review.suggestions)} suggestion(s)"
        )
        return review
