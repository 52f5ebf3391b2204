"""
geminiproxy CLI entry point.

Usage:
    geminiproxy [OPTIONS] COMMAND [ARGS]...

Commands:
    run            Start the proxy
    lookup         Resolve an I2P name through SAM
    dest-generate  Generate a destination keypair through SAM
    cert           Write a self-signed certificate/key pair
    version        Show version information

Point your Gemini client's proxy setting at the listen address
(default localhost:8882) and trust the proxy certificate.
"""

import asyncio
from typing import Annotated

import typer

from geminiproxy.cli.output import console, print_error, print_success
from geminiproxy.config import config
from geminiproxy.models.enums import LogLevel
from geminiproxy.sam.client import SamClient
from geminiproxy.sam.exceptions import SamError
from geminiproxy.utils.logger import configure_logging

app = typer.Typer(
    name="geminiproxy",
    help="Gemini proxy for I2P (SAM v3)",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def main(
    sam_host: Annotated[
        str,
        typer.Option("--sam-host", help="SAM bridge host", envvar="GEMINIPROXY_SAM_HOST"),
    ] = config.SAM_HOST,
    sam_port: Annotated[
        int,
        typer.Option("--sam-port", help="SAM bridge port", envvar="GEMINIPROXY_SAM_PORT"),
    ] = config.SAM_PORT,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", help="Log verbosity", envvar="GEMINIPROXY_LOG_LEVEL"),
    ] = config.LOG_LEVEL,
):
    """
    Gemini proxy for I2P.

    Terminates TLS from Gemini clients and forwards requests to I2P
    destinations through the local SAM bridge.
    """
    config.SAM_HOST = sam_host
    config.SAM_PORT = sam_port
    config.LOG_LEVEL = log_level


@app.command("run")
def run_command(
    host: Annotated[
        str,
        typer.Option("--host", "-H", help="Listen address", envvar="GEMINIPROXY_HOST"),
    ] = config.LISTEN_HOST,
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Listen port", envvar="GEMINIPROXY_PORT"),
    ] = config.LISTEN_PORT,
    session_id: Annotated[
        str,
        typer.Option("--session-id", help="SAM session nickname"),
    ] = config.SESSION_ID,
    signature_type: Annotated[
        str,
        typer.Option("--signature-type", help="Destination signature type"),
    ] = config.SIGNATURE_TYPE,
    tunnel_length: Annotated[
        int | None,
        typer.Option("--tunnel-length", help="Inbound and outbound tunnel length"),
    ] = None,
    tunnel_quantity: Annotated[
        int | None,
        typer.Option("--tunnel-quantity", help="Inbound and outbound tunnel count"),
    ] = None,
    cert_file: Annotated[
        str,
        typer.Option("--cert", help="PEM certificate (generated if omitted)"),
    ] = config.TLS_CERT_FILE,
    key_file: Annotated[
        str,
        typer.Option("--key", help="PEM private key for --cert"),
    ] = config.TLS_KEY_FILE,
    key_size: Annotated[
        int,
        typer.Option("--key-size", help="RSA key size for generated certificates"),
    ] = config.RSA_KEY_SIZE,
    max_connections: Annotated[
        int,
        typer.Option("--max-connections", help="Concurrent request cap (0 = none)"),
    ] = config.MAX_CONNECTIONS,
):
    """Start the proxy."""
    from geminiproxy.app import run

    config.LISTEN_HOST = host
    config.LISTEN_PORT = port
    config.SESSION_ID = session_id
    config.SIGNATURE_TYPE = signature_type
    config.RSA_KEY_SIZE = key_size
    config.MAX_CONNECTIONS = max_connections
    if tunnel_length is not None:
        config.INBOUND_LENGTH = config.OUTBOUND_LENGTH = tunnel_length
    if tunnel_quantity is not None:
        config.INBOUND_QUANTITY = config.OUTBOUND_QUANTITY = tunnel_quantity

    if bool(cert_file) != bool(key_file):
        print_error("--cert and --key must be given together.")
        raise typer.Exit(2)
    config.TLS_CERT_FILE = cert_file
    config.TLS_KEY_FILE = key_file

    try:
        run(config)
    except SamError as e:
        print_error(f"Cannot start SAM session on {config.get_sam_address()}: {e}")
        raise typer.Exit(1)
    except OSError as e:
        print_error(f"Cannot start proxy: {e}")
        raise typer.Exit(1)


async def _lookup(name: str) -> tuple[bool, str | None, str | None]:
    async with await SamClient.connect(config.SAM_HOST, config.SAM_PORT) as sam:
        await sam.handshake(config.get_handshake_options())
        ok, _, reply = await sam.naming_lookup(name)
        return ok, reply.get("value"), reply.result


@app.command("lookup")
def lookup(
    name: Annotated[str, typer.Argument(help="I2P hostname, e.g. example.i2p")],
):
    """Resolve an I2P name to its base64 destination."""
    configure_logging(config.LOG_LEVEL)
    try:
        ok, value, result = asyncio.run(_lookup(name))
    except SamError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not ok:
        print_error(f"Lookup of {name} failed: {result}")
        raise typer.Exit(1)
    console.print(value, soft_wrap=True)


async def _dest_generate(signature_type: str) -> tuple[str | None, str | None]:
    async with await SamClient.connect(config.SAM_HOST, config.SAM_PORT) as sam:
        await sam.handshake(config.get_handshake_options())
        return await sam.dest_generate({"SIGNATURE_TYPE": signature_type})


@app.command("dest-generate")
def dest_generate(
    signature_type: Annotated[
        str,
        typer.Option("--signature-type", help="Destination signature type"),
    ] = config.SIGNATURE_TYPE,
):
    """Generate a new destination keypair."""
    configure_logging(config.LOG_LEVEL)
    try:
        pub, priv = asyncio.run(_dest_generate(signature_type))
    except SamError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not pub or not priv:
        print_error("SAM bridge returned no keypair.")
        raise typer.Exit(1)
    console.print("[bold]Public destination:[/bold]")
    console.print(pub, soft_wrap=True)
    console.print("[bold]Private key:[/bold]")
    console.print(priv, soft_wrap=True)


@app.command("cert")
def cert(
    cert_file: Annotated[str, typer.Argument(help="Certificate output path")],
    key_file: Annotated[str, typer.Argument(help="Private key output path")],
    key_size: Annotated[
        int, typer.Option("--key-size", help="RSA key size")
    ] = config.RSA_KEY_SIZE,
    days: Annotated[
        int, typer.Option("--days", help="Validity in days")
    ] = config.CERT_VALIDITY_DAYS,
):
    """Write a self-signed certificate for use with `run --cert/--key`."""
    from geminiproxy.utils.tls import generate_identity

    identity = generate_identity(key_size, days)
    try:
        identity.write(cert_file, key_file)
    except OSError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Wrote {cert_file} and {key_file}")
    console.print(f"SHA-256: {identity.fingerprint()}")


@app.command("version")
def version():
    """Show version information."""
    from geminiproxy import __version__

    console.print(f"geminiproxy v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
