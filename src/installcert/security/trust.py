"""Server trust decisions used during the enrollment handshake.

The handshake layer only ever asks one question: is this chain, presented by
a server, acceptable? ServerTrustEvaluator is that single capability.
Accepted-issuer enumeration and client-chain evaluation are deliberately not
part of the interface since this tool only ever initiates connections.

CapturingTrustEvaluator records every chain it is asked about before handing
the decision to a strict evaluator, so a rejected chain can still be shown to
the operator afterwards.
"""

import ipaddress
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.verification import (
    Criticality,
    ExtensionPolicy,
    PolicyBuilder,
    ServerVerifier,
    Store,
    VerificationError,
)

from installcert.exceptions import ChainNotTrusted

if TYPE_CHECKING:
    from installcert.store.models import TrustStore

logger = logging.getLogger(__name__)


class ServerTrustEvaluator(Protocol):
    """Decides whether a server-presented chain is acceptable."""

    def check_server_trusted(self, chain: Sequence[x509.Certificate], auth_type: str) -> None:
        """Return normally to accept, raise ChainNotTrusted to reject."""
        ...


def _subject_for(server_name: str) -> x509.DNSName | x509.IPAddress:
    try:
        return x509.IPAddress(ipaddress.ip_address(server_name))
    except ValueError:
        return x509.DNSName(server_name)


def _der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


def _extension_policies() -> dict[str, ExtensionPolicy]:
    # Web PKI defaults, except that AKI is optional and a leaf may assert cA
    ca_policy = ExtensionPolicy.webpki_defaults_ca().may_be_present(
        x509.AuthorityKeyIdentifier, Criticality.AGNOSTIC, None
    )
    ee_policy = (
        ExtensionPolicy.webpki_defaults_ee()
        .may_be_present(x509.AuthorityKeyIdentifier, Criticality.AGNOSTIC, None)
        .may_be_present(x509.BasicConstraints, Criticality.AGNOSTIC, None)
    )
    return {"ca_policy": ca_policy, "ee_policy": ee_policy}


class StrictTrustEvaluator:
    """Standard chain validation against a set of trust anchors.

    A leaf that is itself one of the anchors is accepted as is, the way PKIX
    treats a trust anchor. Anything else goes through cryptography's X.509
    verifier for path building, signature checks, validity periods and name
    matching.
    """

    def __init__(self, anchors: Sequence[x509.Certificate], server_name: str):
        self.anchors = list(anchors)
        self.server_name = server_name
        self._anchor_der = {_der(anchor) for anchor in self.anchors}
        self._verifier: ServerVerifier | None = None
        self._name_error: str | None = None

        if self.anchors:
            try:
                self._verifier = (
                    PolicyBuilder()
                    .store(Store(self.anchors))
                    .extension_policies(**_extension_policies())
                    .build_server_verifier(_subject_for(server_name))
                )
            except ValueError as error:
                self._name_error = f"Server name '{server_name}' cannot be matched against certificates: {error}"
                logger.warning(self._name_error)

    @classmethod
    def from_store(cls, store: "TrustStore", server_name: str) -> "StrictTrustEvaluator":
        """Create an evaluator trusting every certificate entry of a store."""
        return cls(store.anchors(), server_name)

    def check_server_trusted(self, chain: Sequence[x509.Certificate], auth_type: str) -> None:
        if not chain:
            raise ChainNotTrusted("Server presented no certificates")

        if not self.anchors:
            raise ChainNotTrusted("Trust store holds no trusted certificates")

        if _der(chain[0]) in self._anchor_der:
            logger.debug("Leaf for %s is a trust anchor (%s)", self.server_name, auth_type)
            return

        if self._verifier is None:
            raise ChainNotTrusted(self._name_error)

        try:
            self._verifier.verify(chain[0], list(chain[1:]))
        except VerificationError as error:
            raise ChainNotTrusted(f"Unable to find valid certification path: {error}") from error

        logger.debug("Chain for %s accepted (%s)", self.server_name, auth_type)


class CapturingTrustEvaluator:
    """Wraps a strict evaluator and records the last chain presented to it."""

    def __init__(self, delegate: ServerTrustEvaluator):
        self.delegate = delegate
        self.chain: list[x509.Certificate] = []

    def check_server_trusted(self, chain: Sequence[x509.Certificate], auth_type: str) -> None:
        # Recorded before delegating so a rejected chain stays observable
        self.chain = list(chain)

        try:
            self.delegate.check_server_trusted(chain, auth_type)
        except ChainNotTrusted:
            raise
        except Exception as error:
            raise ChainNotTrusted(str(error)) from error
