"""CLI entry point for ubcshib."""

import click

from ubcshib import __version__
from ubcshib.cli import attributes as attributes_commands
from ubcshib.cli import cert as cert_commands
from ubcshib.cli import config as config_commands
from ubcshib.cli import env as env_commands
from ubcshib.cli import serve as serve_commands


@click.group()
@click.version_option(version=__version__, prog_name="ubcshib")
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "INFO", "DEBUG", "TRACE"], case_sensitive=False),
    default="ERROR",
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """ubcshib - UBC Shibboleth SAML authentication toolkit."""
    from ubcshib.core.logging import configure_logging

    configure_logging(level=log_level)


cli.add_command(env_commands.env)
cli.add_command(cert_commands.cert)
cli.add_command(attributes_commands.attributes)
cli.add_command(config_commands.config)
cli.add_command(serve_commands.serve)
