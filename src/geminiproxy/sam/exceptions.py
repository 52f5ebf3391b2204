"""SAM-related exception classes."""


class SamError(Exception):
    """Base exception for SAM bridge operations."""

    pass


class MalformedCommand(SamError):
    """A SAM line could not be parsed."""

    def __init__(self, message: str, line: str = ""):
        self.line = line
        super().__init__(message)


class TransportIOError(SamError):
    """The connection to the SAM bridge failed or was closed."""

    pass


class HandshakeFailed(SamError):
    """HELLO VERSION was rejected by the SAM bridge."""

    def __init__(self, result: str | None, message: str | None = None):
        self.result = result
        detail = f"Handshake failed: {result or 'no result'}"
        if message:
            detail += f" ({message})"
        super().__init__(detail)


class SessionCreateFailed(SamError):
    """SESSION CREATE was rejected by the SAM bridge."""

    def __init__(self, nickname: str, result: str | None, message: str | None = None):
        self.nickname = nickname
        self.result = result
        detail = f"Session {nickname} creation failed: {result or 'no result'}"
        if message:
            detail += f" ({message})"
        super().__init__(detail)


class StreamConnectFailed(SamError):
    """STREAM CONNECT did not reach the destination."""

    def __init__(self, destination: str, result: str | None = None):
        self.destination = destination
        self.result = result
        super().__init__(f"Failed to connect to {destination}")


class KeepaliveProbeFailed(SamError):
    """The SAM bridge did not answer a keepalive PING."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"No PONG received for PING {token}")


class TlsFailure(SamError):
    """TLS handshake over an overlay stream failed."""

    def __init__(self, destination: str, reason: str):
        self.destination = destination
        super().__init__(f"TLS handshake with {destination} failed: {reason}")
