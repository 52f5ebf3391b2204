"""
SAM v3 control client.

One SamClient owns one TCP connection to the SAM bridge. Every verb sends a
single command line and waits for exactly one reply line; the protocol has no
pipelining, so a client must not be shared between concurrent tasks.

After a successful STREAM CONNECT/ACCEPT the same connection becomes the data
path to the remote destination. The client is then "streaming": its reader and
writer carry application bytes and no further commands may be sent.
"""

import asyncio
import time

from geminiproxy.sam.exceptions import (
    HandshakeFailed,
    MalformedCommand,
    SessionCreateFailed,
    TransportIOError,
)
from geminiproxy.sam.protocol import (
    LINE_ENCODING,
    Command,
    decode_line,
    encode,
    encode_line,
)
from geminiproxy.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SAM_HOST = "127.0.0.1"
DEFAULT_SAM_PORT = 7656

# How long check_ping() looks at the connection for an already-arrived line
PING_POLL_SECONDS = 0.05

# SAM private keys are long; keep debug output readable
_LOG_LINE_LIMIT = 160


def _shorten(line: str) -> str:
    if len(line) <= _LOG_LINE_LIMIT:
        return line
    return f"{line[:_LOG_LINE_LIMIT]}... ({len(line)} chars)"


class SamClient:
    """
    Control connection to a SAM bridge.

    Use ``await SamClient.connect(host, port)`` to open one. Supports
    ``async with`` for automatic close.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        host: str = DEFAULT_SAM_HOST,
        port: int = DEFAULT_SAM_PORT,
    ):
        self.host = host
        self.port = port
        self.version: str | None = None
        self._reader = reader
        self._writer = writer
        self._streaming = False
        self._closed = False
        self._log_prefix = f"[SAM {host}:{port}]"

    @classmethod
    async def connect(
        cls, host: str = DEFAULT_SAM_HOST, port: int = DEFAULT_SAM_PORT
    ) -> "SamClient":
        """
        Open a control connection. Does not perform the handshake.

        Raises:
            TransportIOError: If the bridge is unreachable
        """
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise TransportIOError(
                f"Cannot connect to SAM bridge at {host}:{port}: {e}"
            ) from e
        logger.debug(f"[SAM {host}:{port}] Control connection opened.")
        return cls(reader, writer, host, port)

    async def __aenter__(self) -> "SamClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --- State ---

    @property
    def reader(self) -> asyncio.StreamReader:
        return self._reader

    @property
    def writer(self) -> asyncio.StreamWriter:
        return self._writer

    @property
    def is_open(self) -> bool:
        return not self._closed and not self._writer.is_closing()

    @property
    def streaming(self) -> bool:
        return self._streaming

    # --- Raw I/O ---

    async def _write_raw(self, data: bytes) -> None:
        if self._closed:
            raise TransportIOError("SAM connection is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise TransportIOError(f"Failed to write to SAM bridge: {e}") from e

    async def _read_raw(self) -> bytes:
        try:
            data = await self._reader.readline()
        except (asyncio.LimitOverrunError, ValueError) as e:
            raise MalformedCommand(f"SAM reply line too long: {e}") from e
        except OSError as e:
            raise TransportIOError(f"Failed to read from SAM bridge: {e}") from e

        if not data:
            raise TransportIOError("SAM bridge closed the connection")
        return data

    async def _read_text(self) -> str:
        data = await self._read_raw()
        line = data.decode(LINE_ENCODING, errors="replace").rstrip("\r\n")
        logger.debug(f"{self._log_prefix} << {_shorten(line)}")
        return line

    async def _write_text(self, line: str) -> None:
        logger.debug(f"{self._log_prefix} >> {_shorten(line)}")
        await self._write_raw(line.encode(LINE_ENCODING) + b"\n")

    async def send_cmd(
        self, first: str, second: str | None = None, args: dict | None = None
    ) -> Command:
        """
        Send one command and decode the single reply line.

        Raises:
            TransportIOError: On I/O failure or EOF
            MalformedCommand: If the reply cannot be parsed
        """
        if self._streaming:
            raise TransportIOError("Connection is streaming; commands not allowed")

        logger.debug(f"{self._log_prefix} >> {_shorten(encode(first, second, args))}")
        await self._write_raw(encode_line(first, second, args))

        data = await self._read_raw()
        logger.debug(
            f"{self._log_prefix} << {_shorten(data.decode(LINE_ENCODING, 'replace').rstrip())}"
        )
        return decode_line(data)

    # --- Handshake & Session ---

    async def handshake(self, options: dict | None = None) -> Command:
        """
        HELLO VERSION.

        Args:
            options: MIN, MAX, USER, PASSWORD

        Returns:
            The reply; ``self.version`` holds the negotiated version.

        Raises:
            HandshakeFailed: If RESULT is not OK
        """
        reply = await self.send_cmd("hello", "version", options)
        if not reply.ok:
            raise HandshakeFailed(reply.result, reply.get("message"))

        self.version = reply.get("version")
        logger.debug(f"{self._log_prefix} Handshake OK, SAM version {self.version}.")
        return reply

    async def session_create(self, options: dict | None = None) -> tuple[str, Command]:
        """
        SESSION CREATE.

        Returns:
            Tuple of (destination private key, reply)

        Raises:
            SessionCreateFailed: If RESULT is not OK
        """
        options = options or {}
        reply = await self.send_cmd("session", "create", options)
        if not reply.ok:
            nickname = str(options.get("ID") or options.get("id") or "?")
            raise SessionCreateFailed(nickname, reply.result, reply.get("message"))
        return reply.get("destination"), reply

    async def session_add(
        self, options: dict | None = None
    ) -> tuple[bool, str | None, Command]:
        """SESSION ADD (subsession). Returns (success, destination, reply)."""
        reply = await self.send_cmd("session", "add", options)
        return reply.ok, reply.get("destination"), reply

    async def session_remove(self, options: dict | None = None) -> tuple[bool, Command]:
        """SESSION REMOVE (subsession). Returns (success, reply)."""
        reply = await self.send_cmd("session", "remove", options)
        return reply.ok, reply

    # --- Streams ---

    async def stream_connect(
        self, options: dict | None = None
    ) -> tuple[bool, tuple[asyncio.StreamReader, asyncio.StreamWriter], Command]:
        """
        STREAM CONNECT.

        The transport is never closed here; the caller owns it either way.

        Returns:
            Tuple of (success, (reader, writer), reply)
        """
        reply = await self.send_cmd("stream", "connect", options)
        if reply.ok:
            self._streaming = True
        return reply.ok, (self._reader, self._writer), reply

    async def stream_accept(
        self, options: dict | None = None
    ) -> tuple[bool, tuple[asyncio.StreamReader, asyncio.StreamWriter], Command]:
        """STREAM ACCEPT. Same shape as stream_connect()."""
        reply = await self.send_cmd("stream", "accept", options)
        if reply.ok:
            self._streaming = True
        return reply.ok, (self._reader, self._writer), reply

    async def stream_forward(self, options: dict | None = None) -> tuple[bool, Command]:
        """STREAM FORWARD. Returns (success, reply)."""
        reply = await self.send_cmd("stream", "forward", options)
        return reply.ok, reply

    # --- Utility verbs ---

    async def naming_lookup(self, name: str) -> tuple[bool, str | None, Command]:
        """
        NAMING LOOKUP.

        Returns:
            Tuple of (success, NAME from the reply, reply).
            The base64 destination is ``reply.get("value")``.
        """
        reply = await self.send_cmd("naming", "lookup", {"NAME": name})
        return reply.ok, reply.get("name"), reply

    async def dest_generate(self, options: dict | None = None) -> tuple[str | None, str | None]:
        """DEST GENERATE. Returns (public destination, private key) from PUB/PRIV."""
        reply = await self.send_cmd("dest", "generate", options)
        return reply.get("pub"), reply.get("priv")

    # --- Keepalive ---

    async def check_ping(self) -> bool:
        """
        Answer a PING the bridge has already sent.

        Looks only for a line that has already arrived. StreamReader exposes no
        buffered-byte count, so this waits at most PING_POLL_SECONDS (50 ms)
        for it and never longer; an idle bridge costs one poll interval.

        Returns:
            True if a PING was answered
        """
        if not self.is_open or self._streaming:
            return False

        try:
            data = await asyncio.wait_for(
                self._reader.readline(), timeout=PING_POLL_SECONDS
            )
        except asyncio.TimeoutError:
            return False
        except OSError as e:
            raise TransportIOError(f"Failed to read from SAM bridge: {e}") from e

        if not data:
            raise TransportIOError("SAM bridge closed the connection")

        line = data.decode(LINE_ENCODING, errors="replace").rstrip("\r\n")
        logger.debug(f"{self._log_prefix} << {_shorten(line)}")

        word, _, token = line.partition(" ")
        if word.upper() != "PING":
            logger.warning(f"{self._log_prefix} Unexpected unsolicited line: {line!r}")
            return False

        await self._write_text(f"PONG {token}" if token else "PONG")
        return True

    async def send_ping(self, token: str | None = None) -> bool:
        """
        Send PING and wait for the matching PONG.

        Args:
            token: Text to echo; defaults to the current unix time

        Returns:
            True only if the reply is ``PONG <token>``
        """
        if token is None:
            token = str(int(time.time()))

        await self._write_text(f"PING {token}")
        line = await self._read_text()

        word, _, echoed = line.partition(" ")
        return word.upper() == "PONG" and echoed == token

    # --- Teardown ---

    async def close(self) -> None:
        """Send QUIT (unless streaming) and close the transport. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if not self._streaming and not self._writer.is_closing():
            try:
                self._writer.write(b"QUIT\n")
                await self._writer.drain()
            except OSError as e:
                logger.debug(f"{self._log_prefix} QUIT not delivered: {e}")

        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            pass
        logger.debug(f"{self._log_prefix} Control connection closed.")
