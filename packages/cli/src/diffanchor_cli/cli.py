"""CLI entry point for diffanchor.

Commands:
  chunk    split a diff into hunk-atomic chunks
  place    route review findings to inline comments or the fallback body
  context  rank the files related to a diff
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from diffanchor_cli.commands.chunk import chunk_cmd
from diffanchor_cli.commands.context import context_cmd
from diffanchor_cli.commands.place import place_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("diffanchor"),
    prog_name="diffanchor",
)
@click.option(
    "--config",
    "config_path",
    default=".diffanchor.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="DIFFANCHOR_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every step at debug level.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Chunk diffs, retrieve related-file context and place review comments."""
    from diffanchor_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        ctx.obj["config"] = load_config(config_path)
    except (ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid configuration in {config_path}: {e}") from e


main.add_command(chunk_cmd)
main.add_command(place_cmd)
main.add_command(context_cmd)
