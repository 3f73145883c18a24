"""TLS client handshake that captures the server's certificate chain.

The connection uses its own SSL context with the library's built-in
verification switched off. The chain the server presents is handed to a
CapturingTrustEvaluator, which records it and then applies the strict
decision. No other context in the process is touched.
"""

import enum
import ipaddress
import logging
import socket
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field

from cryptography import x509

from installcert.exceptions import ChainNotTrusted, ConnectionFailed
from installcert.protocol.constants import AUTH_TYPE_UNKNOWN, SSL_PORT, TIMEOUT
from installcert.security.trust import CapturingTrustEvaluator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionTarget:
    """Host and port to enroll."""

    host: str
    port: int = SSL_PORT

    @classmethod
    def parse(cls, text: str, default_port: int = SSL_PORT) -> "ConnectionTarget":
        """Parse host, host:port, [v6addr]:port or a bare IPv6 address.

        Raises:
            ValueError: If the host is empty or the port is invalid
        """
        text = text.strip()
        port_text = None

        if text.startswith("["):
            host, bracket, rest = text[1:].partition("]")
            if not bracket or (rest and not rest.startswith(":")):
                raise ValueError(f"Invalid target: {text}")
            port_text = rest[1:] if rest else None
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
        else:
            host = text

        if not host:
            raise ValueError(f"Invalid target: {text}")

        if port_text is None:
            return cls(host, default_port)

        if not port_text.isdigit() or not 0 < int(port_text) < 65536:
            raise ValueError(f"Invalid port: {port_text}")

        return cls(host, int(port_text))

    def __str__(self) -> str:
        try:
            if ipaddress.ip_address(self.host).version == 6:
                return f"[{self.host}]:{self.port}"
        except ValueError:
            pass
        return f"{self.host}:{self.port}"


class HandshakeStatus(enum.Enum):
    ALREADY_TRUSTED = "already_trusted"
    NEEDS_ENROLLMENT = "needs_enrollment"


@dataclass
class HandshakeResult:
    """Outcome of one handshake attempt.

    Attributes:
        status: Whether the chain passed the strict evaluation
        chain: Captured chain, leaf first; empty if none was presented
        error: Handshake failure reported for NEEDS_ENROLLMENT
    """

    status: HandshakeStatus
    chain: list[x509.Certificate] = field(default_factory=list)
    error: Exception | None = None


def _presented_chain(tls_socket: ssl.SSLSocket) -> list[x509.Certificate]:
    """Chain as sent by the peer, leaf first."""
    get_unverified_chain = getattr(tls_socket, "get_unverified_chain", None)

    if get_unverified_chain is not None:
        der_chain = get_unverified_chain() or []
    else:
        # Python < 3.13 keeps the call on the _ssl object, returning Certificate objects
        presented = tls_socket._sslobj.get_unverified_chain() or []
        der_chain = [certificate.public_bytes(ssl._ssl.ENCODING_DER) for certificate in presented]

    return [x509.load_der_x509_certificate(der) for der in der_chain]


class HandshakeOrchestrator:
    """Connects to a target and runs the capturing trust decision."""

    def __init__(
        self,
        trust: CapturingTrustEvaluator,
        timeout: float = TIMEOUT,
        report: Callable[[str], None] | None = None,
    ):
        self.trust = trust
        self.timeout = timeout
        self.report = report or logger.info

    def _client_context(self) -> ssl.SSLContext:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        # Trust is decided by self.trust once the chain has been received
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        return ssl_context

    def _connect(self, target: ConnectionTarget) -> socket.socket:
        self.report(f"Opening connection to {target}...")

        try:
            return socket.create_connection((target.host, target.port), timeout=self.timeout)
        except socket.gaierror as error:
            raise ConnectionFailed(
                f"Cannot resolve {target.host}: {error.strerror}", host=target.host, port=target.port
            ) from error
        except TimeoutError as error:
            raise ConnectionFailed(
                f"Timed out connecting to {target}", host=target.host, port=target.port
            ) from error
        except OSError as error:
            raise ConnectionFailed(
                f"Cannot connect to {target}: {error.strerror or error}", host=target.host, port=target.port
            ) from error

    def run(self, target: ConnectionTarget) -> HandshakeResult:
        """Attempt the handshake and return the captured chain.

        Raises:
            ConnectionFailed: On DNS, connect, timeout or other socket errors
        """
        ssl_context = self._client_context()

        with self._connect(target) as raw_socket:
            self.report("Starting SSL handshake...")

            try:
                with ssl_context.wrap_socket(raw_socket, server_hostname=target.host) as tls_socket:
                    cipher = tls_socket.cipher()
                    auth_type = cipher[0] if cipher else AUTH_TYPE_UNKNOWN
                    self.trust.check_server_trusted(_presented_chain(tls_socket), auth_type)
            except (ChainNotTrusted, ssl.SSLError) as error:
                return self._failed(target, error)
            except ValueError as error:
                return self._failed(target, ChainNotTrusted(f"Malformed server certificate: {error}"))
            except TimeoutError as error:
                raise ConnectionFailed(
                    f"Timed out during handshake with {target}", host=target.host, port=target.port
                ) from error
            except OSError as error:
                raise ConnectionFailed(
                    f"Connection to {target} lost during handshake: {error.strerror or error}",
                    host=target.host,
                    port=target.port,
                ) from error

        logger.info("Handshake with %s succeeded, chain is trusted", target)
        return HandshakeResult(HandshakeStatus.ALREADY_TRUSTED, list(self.trust.chain))

    def _failed(self, target: ConnectionTarget, error: Exception) -> HandshakeResult:
        logger.warning("Handshake with %s failed: %s", target, error)
        logger.debug("Handshake failure details", exc_info=error)
        return HandshakeResult(HandshakeStatus.NEEDS_ENROLLMENT, list(self.trust.chain), error)
