"""
Proxy configuration.

A global Config instance that can be modified at runtime (CLI options and
environment variables are applied to it before startup).
"""

from dataclasses import dataclass

from geminiproxy.models.enums import LogLevel


@dataclass
class ProxyConfig:
    """Gemini proxy configuration."""

    # Listener Configuration
    LISTEN_HOST: str = "localhost"
    LISTEN_PORT: int = 8882
    MAX_CONNECTIONS: int = 0  # 0 = unbounded

    # SAM Bridge Configuration
    SAM_HOST: str = "127.0.0.1"
    SAM_PORT: int = 7656
    SAM_MIN_VERSION: str = ""  # Empty = let the bridge pick
    SAM_MAX_VERSION: str = ""

    # Session Configuration
    SESSION_ID: str = "GeminiProxy"
    SIGNATURE_TYPE: str = "EdDSA_SHA512_Ed25519"
    INBOUND_LENGTH: int = 3
    OUTBOUND_LENGTH: int = 3
    INBOUND_QUANTITY: int = 2
    OUTBOUND_QUANTITY: int = 2
    INBOUND_BACKUP_QUANTITY: int = 1
    OUTBOUND_BACKUP_QUANTITY: int = 1

    # Timing Configuration
    KEEPALIVE_INTERVAL_SECONDS: float = 10

    # TLS Configuration
    RSA_KEY_SIZE: int = 4096
    CERT_VALIDITY_DAYS: int = 30
    TLS_CERT_FILE: str = ""  # Empty = generate a fresh identity every start
    TLS_KEY_FILE: str = ""

    # Logging Configuration
    LOG_LEVEL: LogLevel = LogLevel.INFO

    def get_handshake_options(self) -> dict[str, str]:
        """Get HELLO VERSION arguments. Empty values are dropped on the wire."""
        return {"MIN": self.SAM_MIN_VERSION, "MAX": self.SAM_MAX_VERSION}

    def get_session_options(self) -> dict[str, str]:
        """Get the tunnel options passed to SESSION CREATE."""
        return {
            "SIGNATURE_TYPE": self.SIGNATURE_TYPE,
            "inbound.length": str(self.INBOUND_LENGTH),
            "outbound.length": str(self.OUTBOUND_LENGTH),
            "inbound.quantity": str(self.INBOUND_QUANTITY),
            "outbound.quantity": str(self.OUTBOUND_QUANTITY),
            "inbound.backupQuantity": str(self.INBOUND_BACKUP_QUANTITY),
            "outbound.backupQuantity": str(self.OUTBOUND_BACKUP_QUANTITY),
        }

    def has_static_identity(self) -> bool:
        """Whether a certificate/key pair is configured on disk."""
        return bool(self.TLS_CERT_FILE and self.TLS_KEY_FILE)

    def get_sam_address(self) -> str:
        return f"{self.SAM_HOST}:{self.SAM_PORT}"


# Global config instance
config = ProxyConfig()
