"""TLS client handshake with chain capture."""

from installcert.protocol.constants import SSL_PORT, TIMEOUT
from installcert.protocol.handshake import (
    ConnectionTarget,
    HandshakeOrchestrator,
    HandshakeResult,
    HandshakeStatus,
)

__all__ = [
    "SSL_PORT",
    "TIMEOUT",
    "ConnectionTarget",
    "HandshakeOrchestrator",
    "HandshakeResult",
    "HandshakeStatus",
]
