"""
Long-lived SAM session and its keepalive task.

The session is created once at startup on its own control connection. That
connection must stay open for the session to live, so it is also the one the
keepalive loop pings. Request handlers never touch it; they only read the
session nickname and open their own connections.
"""

import asyncio
import time

from geminiproxy.sam.client import DEFAULT_SAM_HOST, DEFAULT_SAM_PORT, SamClient
from geminiproxy.sam.exceptions import KeepaliveProbeFailed
from geminiproxy.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 10.0


class OverlaySession:
    """
    Owner of the process-wide SAM STREAM session.

    Lifecycle:
        start()            -> connect, HELLO, SESSION CREATE (fatal on error)
        start_keepalive()  -> background PING/PONG loop
        close()            -> cancel keepalive, close control connection
    """

    def __init__(
        self,
        nickname: str,
        sam_host: str = DEFAULT_SAM_HOST,
        sam_port: int = DEFAULT_SAM_PORT,
        session_options: dict | None = None,
        handshake_options: dict | None = None,
    ):
        self._nickname = nickname
        self.sam_host = sam_host
        self.sam_port = sam_port
        self.session_options = dict(session_options or {})
        self.handshake_options = dict(handshake_options or {})

        self.version: str | None = None
        self.destination: str | None = None

        self._control: SamClient | None = None
        self._keepalive_task: asyncio.Task | None = None

    @property
    def nickname(self) -> str:
        return self._nickname

    @property
    def started(self) -> bool:
        return self._control is not None

    async def start(self) -> None:
        """
        Create the session.

        Raises:
            TransportIOError: SAM bridge unreachable
            HandshakeFailed: HELLO rejected
            SessionCreateFailed: SESSION CREATE rejected
        """
        if self._control is not None:
            raise RuntimeError(f"Session {self._nickname} already started")

        control = await SamClient.connect(self.sam_host, self.sam_port)
        try:
            await control.handshake(self.handshake_options)
            logger.info(f"Handshake complete, SAM version {control.version}.")

            options = {
                "STYLE": "STREAM",
                "ID": self._nickname,
                "DESTINATION": "TRANSIENT",
                **self.session_options,
            }
            self.destination, _ = await control.session_create(options)
        except BaseException:
            await control.close()
            raise

        self.version = control.version
        self._control = control
        logger.info(f"Session {self._nickname} created.")

    async def probe(self) -> None:
        """
        One keepalive tick: answer a pending PING, then ping the bridge.

        Raises:
            KeepaliveProbeFailed: If the bridge did not echo our PING
        """
        if self._control is None:
            raise RuntimeError("Session not started")

        await self._control.check_ping()

        token = str(int(time.time()))
        if not await self._control.send_ping(token):
            raise KeepaliveProbeFailed(token)

    async def keepalive(self, interval: float = DEFAULT_KEEPALIVE_INTERVAL) -> None:
        """
        Ping the bridge forever.

        A failed tick is logged and the loop carries on; the session is never
        recreated here.
        """
        logger.debug(f"Keepalive started for session {self._nickname} ({interval}s).")
        while True:
            try:
                await self.probe()
            except KeepaliveProbeFailed as e:
                logger.warning(f"Keepalive: {e}")
            except Exception as e:
                logger.warning(f"Keepalive tick failed: {e}")
                logger.debug(format_traceback(e))
            await asyncio.sleep(interval)

    def start_keepalive(
        self, interval: float = DEFAULT_KEEPALIVE_INTERVAL
    ) -> asyncio.Task:
        """Spawn keepalive() as a background task."""
        if self._keepalive_task is None or self._keepalive_task.done():
            self._keepalive_task = asyncio.create_task(
                self.keepalive(interval), name=f"sam-keepalive-{self._nickname}"
            )
        return self._keepalive_task

    async def close(self) -> None:
        """Stop keepalive and close the control connection (ends the session)."""
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            try:
                await self._keepalive_task
            except asyncio.CancelledError:
                pass
            self._keepalive_task = None

        if self._control is not None:
            await self._control.close()
            self._control = None
            logger.info(f"Session {self._nickname} closed.")
