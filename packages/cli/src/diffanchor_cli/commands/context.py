"""context command: rank the files related to a diff."""

from __future__ import annotations

import asyncio
import subprocess

import click
from github import GithubException
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from diffanchor_cli.commands.common import get_config, read_diff
from diffanchor_core.config import ContextSettings
from diffanchor_core.context.models import DiffBundle
from diffanchor_core.context.orchestrator import build_orchestrator

console = Console()


def _build_scm(repo: str | None, repo_path: str | None, ref: str | None, config: dict):
    if bool(repo) == bool(repo_path):
        raise click.UsageError("Pass exactly one of --repo or --repo-path.")

    if repo_path:
        from diffanchor_core.scm.local import LocalGitSourceControl

        return LocalGitSourceControl(repo_path, ref or "HEAD"), repo_path

    from diffanchor_cli.auth import resolve_github_token
    from diffanchor_core.scm.github import GitHubSourceControl

    token = resolve_github_token() or config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    try:
        return GitHubSourceControl.connect(repo, token, ref), repo
    except GithubException as e:
        raise click.ClickException(f"Cannot open {repo}: {e}") from e


@click.command("context")
@click.argument("diff_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--repo", default=None, help="GitHub repository in owner/name format.")
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Local clone to read the file listing and history from.",
)
@click.option("--ref", default=None, help="Commit, branch or tag to read. Defaults to HEAD / the default branch.")
@click.option("--top", default=20, show_default=True, help="Number of matches to show.")
@click.pass_context
def context_cmd(ctx, diff_path: str, repo: str | None, repo_path: str | None, ref: str | None, top: int):
    """List the files most likely relevant to reviewing DIFF_PATH.

    \b
    Runs the strategies enabled under `context.strategies` in the config:
      metadata-based   imports, type names, siblings, test/layer naming
      git-history      files frequently committed together with the changes
    """
    config = get_config(ctx)
    try:
        settings = ContextSettings.from_config(config)
    except ValueError as e:
        raise click.ClickException(f"Invalid context configuration: {e}") from e

    diff, raw = read_diff(diff_path)
    scm, repository = _build_scm(repo, repo_path, ref, config)

    orchestrator = build_orchestrator(scm, settings)
    bundle = DiffBundle(diff=diff, raw_text=raw, repository=repository)

    skip = orchestrator.skip_reason(bundle)
    if skip:
        console.print(f"[yellow]Context retrieval skipped: {skip}.[/yellow]")
        return

    try:
        enriched = asyncio.run(orchestrator.retrieve_enriched_context(bundle))
    except asyncio.TimeoutError as e:
        raise click.ClickException("Context retrieval timed out; raise context.strategy_timeout_seconds.") from e
    except subprocess.CalledProcessError as e:
        raise click.ClickException(f"git failed: {(e.stderr or '').strip() or e}") from e
    except GithubException as e:
        raise click.ClickException(f"GitHub API error: {e}") from e
    context = enriched.context

    console.print(f"[bold]{enriched.summary()}[/bold]")
    if context is None or context.is_empty():
        console.print("[yellow]No related files found.[/yellow]")
        return

    table = Table(title=f"Top {min(top, context.total_matches)} related file(s)", show_header=True)
    table.add_column("File")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    table.add_column("Evidence", overflow="fold")
    ranked = sorted(context.matches, key=lambda m: m.confidence, reverse=True)
    for match in ranked[:top]:
        style = "bold green" if match.is_high_confidence else "white"
        table.add_row(
            f"[{style}]{escape(match.file_path)}[/{style}]",
            f"{match.confidence:.2f}",
            match.reason.description,
            escape(match.evidence),
        )
    console.print(table)

    for name, result in enriched.strategy_results.items():
        meta = result.metadata
        console.print(
            f"  {name}: {meta.total_candidates} candidate(s), "
            f"{meta.high_confidence_count} high confidence, {meta.duration:.2f}s"
        )
