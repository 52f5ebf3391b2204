"""
Proxy application.

Startup order:
    1. Create the SAM session (fatal on failure)
    2. Load or generate the TLS identity
    3. Start the keepalive task
    4. Bind the Gemini listener and serve forever
"""

import asyncio

from geminiproxy.config import ProxyConfig, config
from geminiproxy.gemini.bridge import GeminiBridge
from geminiproxy.gemini.server import GeminiServer
from geminiproxy.sam.session import OverlaySession
from geminiproxy.utils.logger import configure_logging, get_logger
from geminiproxy.utils.tls import (
    AcceptAnyClientCertificate,
    TlsIdentity,
    build_server_context,
    generate_identity,
    load_identity,
)

logger = get_logger(__name__)


def create_session(cfg: ProxyConfig) -> OverlaySession:
    """Build the (not yet started) overlay session from config."""
    return OverlaySession(
        nickname=cfg.SESSION_ID,
        sam_host=cfg.SAM_HOST,
        sam_port=cfg.SAM_PORT,
        session_options=cfg.get_session_options(),
        handshake_options=cfg.get_handshake_options(),
    )


async def prepare_identity(cfg: ProxyConfig) -> TlsIdentity:
    """Load the configured identity, or generate a fresh one."""
    if cfg.has_static_identity():
        identity = load_identity(cfg.TLS_CERT_FILE, cfg.TLS_KEY_FILE)
        logger.info(f"Loaded TLS identity from {cfg.TLS_CERT_FILE}")
    else:
        logger.info(f"Generating {cfg.RSA_KEY_SIZE}-bit self-signed certificate...")
        identity = await asyncio.to_thread(
            generate_identity, cfg.RSA_KEY_SIZE, cfg.CERT_VALIDITY_DAYS
        )
        logger.warning(
            "A new certificate was generated; clients must trust it again."
        )
    logger.info(f"Certificate SHA-256 fingerprint: {identity.fingerprint()}")
    return identity


async def run_proxy(cfg: ProxyConfig = config) -> None:
    """Run the proxy until cancelled."""
    session = create_session(cfg)
    await session.start()

    server: GeminiServer | None = None
    try:
        identity = await prepare_identity(cfg)
        session.start_keepalive(cfg.KEEPALIVE_INTERVAL_SECONDS)

        policy = AcceptAnyClientCertificate()
        server = GeminiServer(
            build_server_context(identity, policy),
            GeminiBridge(session),
            client_cert_policy=policy,
            max_connections=cfg.MAX_CONNECTIONS,
        )
        if cfg.MAX_CONNECTIONS <= 0:
            logger.debug("No limit on concurrent connections.")

        await server.start(cfg.LISTEN_HOST, cfg.LISTEN_PORT)
        await server.serve_forever()

    finally:
        if server is not None:
            await server.close()
        await session.close()


def run(cfg: ProxyConfig = config) -> None:
    """Configure logging and run the proxy in a fresh event loop."""
    configure_logging(cfg.LOG_LEVEL)
    try:
        asyncio.run(run_proxy(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
