"""IdP certificate CLI commands."""

import click

from ubcshib.core.environments import resolve_environment
from ubcshib.core.errors import CertificateResolutionError
from ubcshib.core.metadata import fetch_idp_certificate, format_pem_certificate, get_certificate_info


@click.group()
def cert() -> None:
    """Inspect the IdP signing certificate."""
    pass


@cert.command("fetch")
@click.option(
    "--environment",
    "-e",
    envvar="SAML_ENVIRONMENT",
    help="Environment whose metadata URL to use (default: STAGING)",
)
@click.option("--url", help="Metadata URL (overrides --environment)")
@click.option("--pem", is_flag=True, help="Print the certificate in PEM format")
@click.option("--timeout", type=float, default=10.0, help="Request timeout in seconds")
def cert_fetch(environment: str | None, url: str | None, pem: bool, timeout: float) -> None:
    """Fetch IdP metadata and print its signing certificate."""
    metadata_url = url or resolve_environment(environment).metadata_url

    try:
        certificate = fetch_idp_certificate(metadata_url, timeout=timeout)
    except CertificateResolutionError as e:
        raise click.ClickException(str(e)) from None

    try:
        info = get_certificate_info(certificate)
    except ValueError as e:
        click.echo(f"Warning: certificate could not be parsed: {e}", err=True)
    else:
        click.echo(f"Subject:     {info.subject}", err=True)
        click.echo(f"Issuer:      {info.issuer}", err=True)
        click.echo(f"Valid until: {info.not_after.isoformat()}", err=True)
        click.echo(f"SHA-256:     {info.fingerprint_sha256}", err=True)
        if info.is_expired:
            click.echo("Warning: certificate has expired", err=True)

    click.echo(format_pem_certificate(certificate) if pem else certificate)
