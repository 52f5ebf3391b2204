"""
SAM v3 client for the I2P overlay network.

Provides the command codec, a control connection client and the long-lived
STREAM session used to open virtual streams to I2P destinations.
"""

from geminiproxy.sam.client import SamClient
from geminiproxy.sam.exceptions import (
    HandshakeFailed,
    KeepaliveProbeFailed,
    MalformedCommand,
    SamError,
    SessionCreateFailed,
    StreamConnectFailed,
    TlsFailure,
    TransportIOError,
)
from geminiproxy.sam.protocol import Command, decode, encode
from geminiproxy.sam.session import OverlaySession

__all__ = [
    "Command",
    "encode",
    "decode",
    "SamClient",
    "OverlaySession",
    "SamError",
    "HandshakeFailed",
    "SessionCreateFailed",
    "StreamConnectFailed",
    "MalformedCommand",
    "TlsFailure",
    "TransportIOError",
    "KeepaliveProbeFailed",
]
