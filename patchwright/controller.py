"""
PATCHWRIGHT Controller — The Brainstem

It is NOT smart. It is deterministic.

Pipelines:
  autofix: collect → prompt → complete → validate → write files → outcome
  review:  collect → prompt → complete → validate → render body → outcome

Responsibilities:
  - Enforce preconditions before any network call
  - Turn completion failures into a skipped Outcome Record
  - Apply accepted changes through the contained Workspace
  - Write exactly one Outcome Record per run

It never decides what code to write. It only coordinates.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from patchwright.agents.patcher import PatcherAgent, PatchProposal
from patchwright.agents.reviewer import ReviewerAgent, ReviewProposal
from patchwright.collector import collect_issue, collect_pull_request
from patchwright.completion import CompletionClient, CompletionError
from patchwright.config_loader import AgentConfig
from patchwright.outcome import PatchOutcome, ReviewOutcome
from patchwright.workspace import Workspace

NO_CHANGES_REASON = "no changes produced"

SEVERITY_ICONS = {
    "critical": "🔴",
    "warning": "🟡",
}
DEFAULT_ICON = "💡"


class PreconditionError(Exception):
    """Required input missing. Raised before any side effect."""


# ---------------------------------------------------------------------------
# Invocation inputs
# ---------------------------------------------------------------------------

class IssueInput(BaseModel):
    number: int = 0
    title: str = ""
    body: str = ""


class PullRequestInput(BaseModel):
    number: int = 0
    title: str = ""
    body: str = ""
    diff: str = ""


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Controller:
    """
    Runs one pipeline per invocation against an explicit AgentConfig.

    Exactly one invocation per issue/PR event is the caller's job:
    nothing here locks the repository checkout.
    """

    def __init__(self, config: AgentConfig, client: CompletionClient | None = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> CompletionClient:
        if self._client is None:
            self._client = CompletionClient(self.config.provider)
        return self._client

    def _require_api_key(self) -> None:
        if self._client is None and not self.config.provider.api_key:
            raise PreconditionError("OPENAI_API_KEY is not set")

    # -----------------------------------------------------------------------
    # Issue-to-Patch
    # -----------------------------------------------------------------------

    def run_autofix(self, issue: IssueInput) -> PatchOutcome:
        self._require_api_key()
        if not issue.title and not issue.body:
            raise PreconditionError("ISSUE_TITLE and ISSUE_BODY are required")

        limits = self.config.limits
        snapshot = collect_issue(
            self.config.repo_root,
            issue.number,
            issue.title,
            issue.body,
            max_files=limits.max_listed_files,
            skip_dirs=self.config.collector.skip_dirs,
        )

        logger.info("[AUTOFIX] Calling LLM...")
        try:
            proposal = PatcherAgent(self.client, limits).run(snapshot)
        except CompletionError as e:
            logger.error(f"[AUTOFIX] {e}")
            outcome = PatchOutcome(skip=True, reason=str(e), failed=True)
            outcome.write(self.config.output_dir)
            return outcome

        outcome = self.apply_proposal(proposal, issue.number)
        outcome.write(self.config.output_dir)
        self._log_usage()
        return outcome

    def apply_proposal(self, proposal: PatchProposal, issue_number: int) -> PatchOutcome:
        """Steps 1-4 of the patch path. Writes files, not the outcome."""
        if proposal.declined:
            logger.info(f"[AUTOFIX] Agent skipped: {proposal.reason}")
            return PatchOutcome(
                branch=proposal.branch or "",
                commit_message=proposal.commit_message or "",
                skip=True,
                reason=proposal.reason,
            )

        if not proposal.changes:
            logger.info("[AUTOFIX] No changes produced")
            return PatchOutcome(
                branch=proposal.branch or "",
                commit_message=proposal.commit_message or "",
                skip=True,
                reason=NO_CHANGES_REASON,
            )

        workspace = Workspace(
            self.config.repo_root,
            protected_paths=self.config.boundaries.protected_paths,
            max_changes=self.config.limits.max_changes,
            max_file_bytes=self.config.limits.max_file_bytes,
        )
        report = workspace.apply(proposal.changes)

        branch = proposal.branch or f"autofix/issue-{issue_number}"
        logger.info(
            f"[AUTOFIX] Applied {report.applied_count} file(s), "
            f"rejected {len(report.rejected)}. Branch: {branch}"
        )
        return PatchOutcome(
            branch=branch,
            commit_message=proposal.commit_message or f"Fix (#{issue_number})",
            skip=False,
            reason=None,
            files_written=report.written,
        )

    # -----------------------------------------------------------------------
    # Diff-to-Review
    # -----------------------------------------------------------------------

    def run_review(self, pr: PullRequestInput) -> ReviewOutcome | None:
        """Review a PR diff. Returns None when there is nothing to review."""
        self._require_api_key()
        if not pr.diff:
            logger.info("[REVIEW] PR diff is empty - no changes to review")
            return None

        snapshot = collect_pull_request(
            pr.number,
            pr.title,
            pr.body,
            pr.diff,
            max_diff_chars=self.config.limits.max_diff_chars,
        )

        logger.info(f"[REVIEW] Reviewing PR #{pr.number}...")
        try:
            review = ReviewerAgent(self.client, self.config.limits).run(snapshot)
        except CompletionError as e:
            logger.error(f"[REVIEW] LLM call failed: {e}")
            outcome = ReviewOutcome(
                review=None,
                body=self._build_failure_body(str(e)),
                approved=True,
                error=str(e),
                failed=True,
            )
            outcome.write(self.config.output_dir)
            return outcome

        outcome = ReviewOutcome(
            review=review.model_dump(by_alias=True),
            body=self._build_review_body(review),
            approved=review.verdict,
        )
        outcome.write(self.config.output_dir)
        logger.info(f"[REVIEW] Review complete. Approved: {outcome.approved}")
        self._log_usage()
        return outcome

    @staticmethod
    def _build_review_body(review: ReviewProposal) -> str:
        body = "## 🤖 AI Code Review\n\n"
        body += f"**Summary:** {review.summary}\n\n"

        if review.suggestions:
            body += "### Suggestions\n\n"
            for s in review.suggestions:
                icon = SEVERITY_ICONS.get(s.severity.lower(), DEFAULT_ICON)
                body += f"{icon} **{s.file}**"
                if s.line and s.line > 0:
                    body += f" (line {s.line})"
                body += f"\n\n{s.message}\n\n"
                if s.suggested_code:
                    body += f"```suggestion\n{s.suggested_code}\n```\n\n"
        else:
            body += "✅ No issues found. The changes look good!\n\n"

        body += "---\n*This review was generated automatically by the AI review agent.*"
        return body

    @staticmethod
    def _build_failure_body(message: str) -> str:
        return (
            "## 🤖 AI Code Review\n\n"
            f"⚠️ The review could not be completed: {message}\n\n"
            "---\n*This review was generated automatically by the AI review agent.*"
        )

    # -----------------------------------------------------------------------
    # Utilities
    # -----------------------------------------------------------------------

    def _log_usage(self) -> None:
        summary = self.client.usage.summary()
        logger.info(
            f"Usage: {summary['total_tokens']:,} tokens / "
            f"${summary['estimated_cost']:.4f} / "
            f"{summary['call_count']} call(s)"
        )
