from __future__ import annotations

from pathlib import Path

import click

from diffanchor_core.config import DEFAULT_CONFIG
from diffanchor_core.diff.models import Diff
from diffanchor_core.diff.parser import DiffParseError, parse_diff


def read_diff(path: str) -> tuple[Diff, str]:
    """Parse the diff file at ``path``; returns the model and the raw text."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    try:
        return parse_diff(text), text
    except DiffParseError as e:
        raise click.ClickException(f"{path}: {e}") from e


def get_config(ctx: click.Context) -> dict:
    """The config loaded by the group, or the defaults when a command runs standalone."""
    if ctx.obj and "config" in ctx.obj:
        return ctx.obj["config"]
    return DEFAULT_CONFIG
