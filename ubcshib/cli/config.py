"""Configuration CLI commands."""

import json
from pathlib import Path

import click

from ubcshib.core.config import (
    DEFAULT_CONFIG_FILE,
    build_configuration,
    get_default_config_yaml,
    load_options,
)
from ubcshib.core.errors import ConfigurationError


@click.group()
def config() -> None:
    """Manage ubcshib configuration."""
    pass


@config.command("init")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Where to write the config file",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(output: Path, force: bool) -> None:
    """Write a commented sample ubcshib.yaml."""
    if output.exists() and not force:
        raise click.ClickException(f"{output} already exists (use --force to overwrite)")

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(get_default_config_yaml())
    click.echo(f"Configuration written to: {output}")


@config.command("show")
@click.option(
    "--config-file",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),  # type: ignore[type-var]
    help="Config file to read (default: ubcshib.yaml or $UBCSHIB_CONFIG)",
)
def config_show(config_file: Path | None) -> None:
    """Show the effective strategy configuration.

    Merges the config file, environment variables and UBC environment
    defaults exactly as the strategy does. Private keys are redacted.
    """
    try:
        options = load_options(config_file)
        configuration = build_configuration(options)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from None

    click.echo(json.dumps(configuration.to_dict(), indent=2))
