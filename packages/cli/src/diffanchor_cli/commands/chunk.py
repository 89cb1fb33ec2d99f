"""chunk command: split a diff into hunk-atomic chunks."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from diffanchor_cli.commands.common import get_config, read_diff
from diffanchor_core.diff.chunker import split_diff

console = Console()


@click.command("chunk")
@click.argument("diff_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--max-lines",
    type=int,
    default=None,
    help="Maximum body lines per chunk. Overrides max_lines_per_chunk from the config file.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Write each chunk to DIR/chunk-NNN.diff.",
)
@click.pass_context
def chunk_cmd(ctx, diff_path: str, max_lines: int | None, output_dir: str | None):
    """Split DIFF_PATH into chunks that never cut a hunk in two.

    A hunk longer than the limit is kept whole in a chunk of its own.
    """
    config = get_config(ctx)
    limit = max_lines if max_lines is not None else config["max_lines_per_chunk"]

    diff, _ = read_diff(diff_path)
    try:
        chunks = split_diff(diff, limit)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if not chunks:
        console.print("[yellow]The diff has no hunks; nothing to chunk.[/yellow]")
        return

    table = Table(title=f"{len(chunks)} chunk(s) of at most {limit} lines", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Files")
    table.add_column("Hunks", justify="right")
    table.add_column("Lines", justify="right")
    for number, chunk in enumerate(chunks, 1):
        paths = dict.fromkeys(f.effective_path or "?" for f in chunk.files)
        table.add_row(str(number), ", ".join(paths), str(chunk.hunk_count), str(chunk.total_line_count))
    console.print(table)

    if output_dir:
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        for number, chunk in enumerate(chunks, 1):
            (out / f"chunk-{number:03d}.diff").write_text(chunk.to_unified_string(), encoding="utf-8")
        console.print(f"[green]Wrote {len(chunks)} chunk file(s) to {out}[/green]")
