"""Server CLI commands."""

import click


@click.command()
@click.option("--host", "-h", default="127.0.0.1", show_default=True, help="Host to bind to")
@click.option("--port", "-p", type=int, default=3000, show_default=True, help="Port to bind to")
@click.option("--debug", is_flag=True, help="Enable debug mode")
def serve(host: str, port: int, debug: bool) -> None:
    """Run the example application.

    Configuration comes from ubcshib.yaml and SAML_* environment variables.
    The IdP certificate is fetched in the background if not configured.

    Examples:

        # Start against the staging IdP
        SAML_ISSUER=https://myapp/shibboleth SAML_CALLBACK_URL=... ubcshib serve

        # Custom port
        ubcshib serve --port 8080
    """
    from ubcshib.app import run_server
    from ubcshib.core.errors import ConfigurationError

    try:
        run_server(host=host, port=port, debug=debug)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from None
