"""
Gemini TLS listener.

Accepts Gemini clients, terminates TLS, reads the single request line and
hands it to a request handler. Each connection runs in its own task.
"""

import asyncio
import ssl
from typing import Awaitable, Callable

from geminiproxy.models.enums import GeminiStatus
from geminiproxy.utils.logger import get_logger
from geminiproxy.utils.tls import AcceptAnyClientCertificate

logger = get_logger(__name__)

# handler(writer, peer_cert_der, request_line)
RequestHandler = Callable[[asyncio.StreamWriter, bytes | None, str], Awaitable[None]]

# Request lines are decoded so that re-encoding gives back the exact bytes
REQUEST_ENCODING = "utf-8"
REQUEST_ERRORS = "surrogateescape"

# Gemini URLs are at most 1024 bytes, plus CRLF
MAX_REQUEST_LINE = 1024 + 2


def status_line(status: GeminiStatus, meta: str) -> bytes:
    """Build a Gemini response header."""
    return f"{status.value} {meta}\r\n".encode("utf-8")


class GeminiServer:
    """
    TLS listener that dispatches one request line per connection.

    Concurrency is one task per connection, unbounded unless
    ``max_connections`` is positive, in which case handling (not accepting)
    waits on a semaphore.
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        handler: RequestHandler,
        client_cert_policy: AcceptAnyClientCertificate | None = None,
        max_connections: int = 0,
    ):
        self.ssl_context = ssl_context
        self.handler = handler
        self.client_cert_policy = client_cert_policy or AcceptAnyClientCertificate()
        self._limit = (
            asyncio.Semaphore(max_connections) if max_connections > 0 else None
        )
        self._server: asyncio.Server | None = None

    @property
    def sockets(self):
        return self._server.sockets if self._server else ()

    @property
    def port(self) -> int | None:
        """First bound port (useful when started on port 0)."""
        for sock in self.sockets:
            return sock.getsockname()[1]
        return None

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        """Handle a single accepted client connection."""
        client_addr = writer.get_extra_info("peername")
        log_prefix = f"[Client {client_addr}]"
        logger.debug(f"{log_prefix} New connection.")

        try:
            if self._limit is not None:
                async with self._limit:
                    await self._dispatch(reader, writer, log_prefix)
            else:
                await self._dispatch(reader, writer, log_prefix)

        except Exception as e:
            logger.exception(f"{log_prefix} Unexpected error in connection handler: {e}")

        finally:
            try:
                await writer.drain()
            except OSError:
                pass
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            logger.debug(f"{log_prefix} Connection closed.")

    async def _dispatch(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        log_prefix: str,
    ):
        try:
            data = await reader.readline()
        except (ValueError, asyncio.LimitOverrunError):
            logger.warning(f"{log_prefix} Request line too long.")
            writer.write(status_line(GeminiStatus.PROXY_ERROR, "Request line too long"))
            return

        if not data:
            logger.debug(f"{log_prefix} Closed before sending a request.")
            return

        request_line = data.decode(REQUEST_ENCODING, REQUEST_ERRORS)
        logger.info(f"{log_prefix} Request: {request_line.strip()}")

        ssl_object = writer.get_extra_info("ssl_object")
        peer_cert = ssl_object.getpeercert(binary_form=True) if ssl_object else None

        if not self.client_cert_policy.verify(peer_cert):
            logger.warning(f"{log_prefix} Client certificate rejected.")
            return

        await self.handler(writer, peer_cert, request_line)

    async def start(self, host: str, port: int) -> asyncio.Server:
        """
        Bind and start accepting.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._server = await asyncio.start_server(
            self.handle_connection,
            host,
            port,
            ssl=self.ssl_context,
            limit=MAX_REQUEST_LINE,
        )
        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"Gemini proxy listening on {addrs}")
        return self._server

    async def serve_forever(self):
        """Serve until cancelled."""
        if self._server is None:
            raise RuntimeError("Server not started")
        try:
            async with self._server:
                await self._server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Gemini listener task cancelled.")
            raise

    async def close(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
