"""
Gemini to I2P bridge.

For every request a fresh SAM control connection is opened and turned into a
stream to the requested destination. TLS is layered over that stream toward
the remote capsule, the original request line is forwarded and the response
is copied back to the client untouched.
"""

import asyncio
import re
import ssl
from urllib.parse import urlsplit

from geminiproxy.gemini.relay import copy_stream
from geminiproxy.gemini.server import REQUEST_ENCODING, REQUEST_ERRORS, status_line
from geminiproxy.models.enums import GeminiStatus
from geminiproxy.sam.client import SamClient
from geminiproxy.sam.exceptions import StreamConnectFailed, TlsFailure
from geminiproxy.sam.session import OverlaySession
from geminiproxy.utils.logger import format_traceback, get_logger
from geminiproxy.utils.tls import build_client_context

logger = get_logger(__name__)

# Requests for this host are answered by the proxy itself
STATUS_HOST = "status"

_DNS_LABEL = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?")


def parse_target(request_line: str) -> str:
    """
    Extract the target host from a request line, case preserved.

    Base64 destinations are case-sensitive, so the host is taken from the
    raw netloc (userinfo and port dropped) rather than ``urlsplit().hostname``.

    Raises:
        ValueError: If the line has no host.
    """
    url = request_line.strip()
    netloc = urlsplit(url).netloc
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        host = host[1:].partition("]")[0]
    else:
        name, sep, port = host.rpartition(":")
        if sep and (port.isdigit() or not port):
            host = name
    if not host:
        raise ValueError(f"Invalid request URL: {url}")
    return host


def tls_server_name(host: str) -> str | None:
    """SNI name for the remote capsule, or None when host is not a DNS name."""
    labels = host.rstrip(".").split(".")
    if len(host) > 253 or not all(_DNS_LABEL.fullmatch(label) for label in labels):
        return None
    return host


class GeminiBridge:
    """
    Request handler forwarding Gemini requests over I2P.

    Instances are callables matching ``RequestHandler``; every error is turned
    into a ``53`` response, nothing propagates to the listener.
    """

    def __init__(
        self,
        session: OverlaySession,
        sam_host: str | None = None,
        sam_port: int | None = None,
        client_context: ssl.SSLContext | None = None,
    ):
        self.session = session
        self.sam_host = sam_host or session.sam_host
        self.sam_port = sam_port or session.sam_port
        self.client_context = client_context or build_client_context()

    async def __call__(
        self,
        writer: asyncio.StreamWriter,
        peer_cert: bytes | None,
        request_line: str,
    ) -> None:
        await self.handle_request(writer, peer_cert, request_line)

    def status_page(self) -> bytes:
        return status_line(GeminiStatus.SUCCESS, "text/gemini") + (
            "# Proxy status\r\n"
            "The proxy works!\r\n"
            f"SAM API: {self.session.version}\r\n"
        ).encode("utf-8")

    async def handle_request(
        self,
        writer: asyncio.StreamWriter,
        peer_cert: bytes | None,
        request_line: str,
    ) -> None:
        """Serve one request. Never raises."""
        client_addr = writer.get_extra_info("peername")
        log_prefix = f"[Client {client_addr}]"
        sam: SamClient | None = None

        try:
            host = parse_target(request_line)

            if host == STATUS_HOST:
                writer.write(self.status_page())
                await writer.drain()
                return

            sam = await SamClient.connect(self.sam_host, self.sam_port)
            await sam.handshake(self.session.handshake_options)
            logger.debug(f"{log_prefix} Connected to SAM, opening stream to {host}...")

            ok, (remote_reader, remote_writer), reply = await sam.stream_connect(
                {"ID": self.session.nickname, "DESTINATION": host}
            )
            if not ok:
                logger.warning(
                    f"{log_prefix} Stream to {host} failed: "
                    f"{reply.result} {reply.get('message') or ''}".rstrip()
                )
                raise StreamConnectFailed(host, reply.result)

            logger.info(f"{log_prefix} Connected to {host}.")

            try:
                await remote_writer.start_tls(
                    self.client_context, server_hostname=tls_server_name(host)
                )
            except OSError as e:
                raise TlsFailure(host, str(e) or type(e).__name__) from e

            remote_writer.write(request_line.encode(REQUEST_ENCODING, REQUEST_ERRORS))
            await remote_writer.drain()

            copied = await copy_stream(remote_reader, writer)
            logger.info(f"{log_prefix} Forwarded {copied} bytes from {host}.")

        except Exception as e:
            message = " ".join(str(e).split()) or type(e).__name__
            logger.warning(f"{log_prefix} Request failed: {message}")
            logger.debug(format_traceback(e))
            try:
                writer.write(status_line(GeminiStatus.PROXY_ERROR, message))
                await writer.drain()
            except OSError:
                pass

        finally:
            if sam is not None:
                await sam.close()
