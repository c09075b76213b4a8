"""Environment CLI commands."""

import json

import click

from ubcshib.core.environments import DEFAULT_ENVIRONMENT, list_environments, resolve_environment


@click.group()
def env() -> None:
    """Show UBC IdP environments and their endpoints."""
    pass


@env.command("list")
def env_list() -> None:
    """List all known environments."""
    for profile in list_environments():
        marker = " (default)" if profile.environment is DEFAULT_ENVIRONMENT else ""
        click.echo(f"{profile.name}{marker}")
        click.echo(f"  SSO:      {profile.entry_point}")
        click.echo(f"  Logout:   {profile.logout_url}")
        click.echo(f"  Metadata: {profile.metadata_url}")


@env.command("show")
@click.argument("name", required=False, envvar="SAML_ENVIRONMENT")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def env_show(name: str | None, as_json: bool) -> None:
    """Show the endpoints NAME resolves to.

    Unknown or missing names resolve to the default environment.
    """
    profile = resolve_environment(name)
    if as_json:
        click.echo(json.dumps(profile.to_dict(), indent=2))
        return

    click.echo(f"Environment: {profile.name}")
    click.echo(f"  SSO:      {profile.entry_point}")
    click.echo(f"  Logout:   {profile.logout_url}")
    click.echo(f"  Metadata: {profile.metadata_url}")
