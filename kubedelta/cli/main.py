"""kubedelta command-line interface."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import yaml

from kubedelta.diff.classifier import REVISION_MASK
from kubedelta.diff.engine import DEFAULT_CONTEXT_LINES, diff_documents, render
from kubedelta.diff.masking import VolatilityMask
from kubedelta.errors import SerializationError


@click.group()
@click.version_option(package_name="kubedelta")
def cli() -> None:
    """Watch Kubernetes resources and report meaningful changes."""


@cli.command()
def run() -> None:
    """Run the watch pipeline configured by KUBEDELTA_* environment variables."""
    from kubedelta.app import main

    asyncio.run(main())


def _load_document(path: Path) -> object:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise click.BadParameter(f"{path}: {exc}") from exc


@cli.command("diff")
@click.argument("old", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("new", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--mask",
    "masks",
    multiple=True,
    metavar="PATH",
    help="Dotted field path to ignore (repeatable), e.g. --mask status.",
)
@click.option("--context", default=DEFAULT_CONTEXT_LINES, show_default=True, type=click.IntRange(min=0))
def diff_command(old: Path, new: Path, masks: tuple[str, ...], context: int) -> None:
    """Print the canonical diff between two resource manifests."""
    try:
        mask = REVISION_MASK.union(VolatilityMask.from_strings(masks))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--mask") from exc

    old_doc = _load_document(old)
    new_doc = _load_document(new)
    if isinstance(old_doc, dict):
        old_doc = mask.apply(old_doc)
    if isinstance(new_doc, dict):
        new_doc = mask.apply(new_doc)

    try:
        lines = diff_documents(old_doc, new_doc, context=context)
    except SerializationError as exc:
        raise click.ClickException(str(exc)) from exc
    for line in render(lines):
        click.echo(line)
