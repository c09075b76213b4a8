"""Attribute mapping CLI commands."""

import json
from pathlib import Path

import click

from ubcshib.core.attributes import UBC_ATTRIBUTES, map_attributes


@click.group()
def attributes() -> None:
    """Inspect and test SAML attribute mappings."""
    pass


@attributes.command("list")
def attributes_list() -> None:
    """List known attributes and their wire identifiers."""
    for definition in UBC_ATTRIBUTES:
        click.echo(f"{definition.friendly_name}")
        if definition.description:
            click.echo(f"  {definition.description}")
        for index, wire_id in enumerate(definition.wire_ids):
            suffix = " (preferred)" if index == 0 and len(definition.wire_ids) > 1 else ""
            click.echo(f"    {wire_id}{suffix}")


@attributes.command("map")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))  # type: ignore[type-var]
@click.option(
    "--attribute",
    "-a",
    "requested",
    multiple=True,
    help="Friendly attribute name to keep (repeatable). Default: all.",
)
def attributes_map(source: Path, requested: tuple[str, ...]) -> None:
    """Map raw assertion attributes in SOURCE (a JSON object) to friendly names."""
    try:
        raw = json.loads(source.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {source}: {e}") from None

    if not isinstance(raw, dict):
        raise click.ClickException(f"{source} must contain a JSON object")

    click.echo(json.dumps(map_attributes(raw, list(requested)), indent=2))
