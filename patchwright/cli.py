"""
PATCHWRIGHT CLI — The Interface

Two pipelines, driven by the workflow runner's environment:
  1. patchwright autofix     (issue → file changes + autofix-output.json)
  2. patchwright review      (PR diff → review body + review-output.json)

Plus utilities:
  - patchwright status       (resolved endpoint, model, limits, key presence)

Run one invocation per issue/PR event; nothing here locks the checkout.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from patchwright.identity import __codename__, __tagline__, __version__, BANNER
from patchwright.collector import read_diff_file
from patchwright.completion import is_azure_url
from patchwright.config_loader import AgentConfig, ConfigError, load_config
from patchwright.controller import Controller, IssueInput, PreconditionError, PullRequestInput

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".patchwright" / ".env")

app = typer.Typer(
    name="patchwright",
    help=f"{__codename__} — {__tagline__}\nIssue-to-patch and diff-to-review agent.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def autofix(
    issue_number: int = typer.Option(0, "--issue-number", "-n", envvar="ISSUE_NUMBER", help="Issue number"),
    title: str = typer.Option("", "--title", envvar="ISSUE_TITLE", help="Issue title"),
    body: str = typer.Option("", "--body", envvar="ISSUE_BODY", help="Issue body"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository root (default: $GITHUB_WORKSPACE or cwd)"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where to write autofix-output.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Propose and apply file changes for an issue."""
    _configure_logging(verbose)
    config = _load(repo, output_dir)

    controller = Controller(config)
    try:
        outcome = controller.run_autofix(IssueInput(number=issue_number, title=title, body=body))
    except PreconditionError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)
    except OSError as e:
        _fail_io(e)

    if outcome.failed:
        console.print(f"[red]LLM call failed: {escape(outcome.reason or '')}[/]")
        raise typer.Exit(1)

    if outcome.skip:
        console.print(f"[yellow]Skipped: {escape(outcome.reason or '')}[/]")
        return

    console.print(
        f"[bold green]Applied {len(outcome.files_written)} file(s). "
        f"Branch: {escape(outcome.branch)}[/]"
    )


@app.command()
def review(
    pr_number: int = typer.Option(0, "--pr-number", "-n", envvar="PR_NUMBER", help="Pull request number"),
    title: str = typer.Option("", "--title", envvar="PR_TITLE", help="Pull request title"),
    body: str = typer.Option("", "--body", envvar="PR_BODY", help="Pull request description"),
    diff: str = typer.Option("", "--diff", envvar="PR_DIFF", help="Unified diff text"),
    diff_file: Optional[Path] = typer.Option(None, "--diff-file", "-f", help="Read the diff from a file instead"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where to write review-output.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Review a pull request diff."""
    _configure_logging(verbose)
    config = _load(None, output_dir)

    if diff_file:
        if not diff_file.is_file():
            console.print(f"[red]Diff file not found: {escape(str(diff_file))}[/]")
            raise typer.Exit(1)
        try:
            diff = read_diff_file(diff_file)
        except OSError as e:
            _fail_io(e)

    controller = Controller(config)
    try:
        outcome = controller.run_review(
            PullRequestInput(number=pr_number, title=title, body=body, diff=diff)
        )
    except PreconditionError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)
    except OSError as e:
        _fail_io(e)

    if outcome is None:
        console.print("[dim]Nothing to review.[/]")
        return

    if outcome.failed:
        console.print(f"[red]LLM call failed: {escape(outcome.error or '')}[/]")
        raise typer.Exit(1)

    n = len((outcome.review or {}).get("suggestions", []))
    color = "green" if outcome.approved else "yellow"
    console.print(f"[bold {color}]Approved: {outcome.approved}[/] — {n} suggestion(s)")


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check PATCHWRIGHT configuration and readiness."""
    _print_banner()
    config = _load(repo, None)
    provider = config.provider

    table = Table(title="Provider", border_style="cyan")
    table.add_column("Setting")
    table.add_column("Value")

    key_str = "[green]✓ Available[/]" if provider.api_key else "[red]✗ Missing[/]"
    table.add_row("OPENAI_API_KEY", key_str)
    table.add_row("Endpoint", escape(f"{provider.base_url.rstrip('/')}/chat/completions"))
    table.add_row("Variant", "azure" if is_azure_url(provider.base_url) else "standard")
    table.add_row("API version", escape(provider.api_version or "-"))
    table.add_row("Model", escape(provider.model))
    table.add_row("Timeout", f"{provider.timeout_seconds:g}s")
    console.print(table)

    limits = config.limits
    console.print("\n[bold]Limits:[/]")
    console.print(f"  Listed files:    {limits.max_listed_files} ({limits.max_prompt_files} in prompt)")
    console.print(f"  Diff chars:      {limits.max_diff_chars:,}")
    console.print(f"  Max changes:     {limits.max_changes}")
    console.print(f"  Max file bytes:  {limits.max_file_bytes:,}")
    console.print(f"  Attempts:        {limits.max_attempts}")

    console.print("\n[bold]Paths:[/]")
    console.print(f"  Repo root:   {escape(str(config.repo_root))}")
    console.print(f"  Output dir:  {escape(str(config.output_dir))}")
    for p in config.boundaries.protected_paths:
        console.print(f"  🔒 {escape(p)}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(repo: Path | None, output_dir: Path | None) -> AgentConfig:
    try:
        config = load_config(repo.resolve() if repo else None)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)
    if output_dir:
        config.output_dir = output_dir
    return config


def _fail_io(error: OSError) -> NoReturn:
    logger.error(f"[IO] {error}")
    console.print(f"[red]Filesystem error: {escape(str(error))}[/]")
    raise typer.Exit(1)


def _console_sink(message) -> None:
    console.print(f"[dim]{escape(message.rstrip())}[/]", highlight=False)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(
        _console_sink,
        level="DEBUG" if verbose else "INFO",
        format="{time:HH:mm:ss} | {level:<7} | {message}" if verbose else "{message}",
    )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
