"""place command: route review findings onto a diff."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from diffanchor_cli.commands.common import read_diff
from diffanchor_core.diff.positions import DiffPositionMapper, line_content
from diffanchor_core.review.merger import merge_results, review_statistics
from diffanchor_core.review.models import parse_review_json
from diffanchor_core.review.router import split_findings

console = Console()

_SEVERITY_STYLE = {"critical": "red", "major": "yellow", "minor": "blue", "nitpick": "dim"}


@click.command("place")
@click.argument("diff_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("findings", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the placement as JSON instead of tables.")
def place_cmd(diff_path: str, findings: tuple[str, ...], as_json: bool):
    """Merge FINDINGS (one JSON file per chunk) and place them on DIFF_PATH.

    Findings on lines the diff shows become inline comments with their diff
    position; everything else is listed as fallback with the reason.
    """
    diff, _ = read_diff(diff_path)

    parts = []
    for path in findings:
        try:
            parts.append(parse_review_json(Path(path).read_text(encoding="utf-8")))
        except ValueError as e:
            raise click.ClickException(f"{path}: {e}") from e

    review = merge_results(parts)
    split = split_findings(diff, review)
    mapper = DiffPositionMapper(diff)

    if as_json:
        inline = split.inline.to_dict()
        for issue in inline["issues"]:
            issue["position"] = mapper.position_for(issue["file"], issue["start_line"])
        for note in inline["non_blocking_notes"]:
            note["position"] = mapper.position_for(note["file"], note["line"])
        payload = {
            "inline": inline,
            "fallback": split.fallback.to_dict(),
            "diagnostics": list(split.diagnostics),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    console.print(f"[bold]Merged review:[/bold] {review_statistics(review)}")
    if review.summary:
        console.print(escape(review.summary))

    if split.inline.item_count:
        table = Table(title="Inline", show_header=True)
        table.add_column("Location")
        table.add_column("Pos", justify="right")
        table.add_column("Severity")
        table.add_column("Finding")
        table.add_column("Code", overflow="fold")
        for issue in split.inline.issues:
            style = _SEVERITY_STYLE.get(issue.severity, "white")
            table.add_row(
                f"{issue.file}:{issue.start_line}",
                str(mapper.position_for(issue.file, issue.start_line)),
                f"[{style}]{escape(issue.severity)}[/{style}]",
                escape(issue.title),
                escape(line_content(diff, issue.file, issue.start_line).strip()),
            )
        for note in split.inline.notes:
            table.add_row(
                f"{note.file}:{note.line}",
                str(mapper.position_for(note.file, note.line)),
                "note",
                escape(note.text),
                escape(line_content(diff, note.file, note.line).strip()),
            )
        console.print(table)

    if split.diagnostics:
        console.print(f"\n[yellow]{len(split.diagnostics)} finding(s) cannot be placed inline:[/yellow]")
        for diagnostic in split.diagnostics:
            console.print(f"  - {escape(diagnostic)}")
