"""Enrollment of a server certificate into the local trust store.

The flow moves through these states:

    LOADING_STORE -> CONNECTING -> ALREADY_TRUSTED -> DONE
                                -> AWAITING_SELECTION -> PERSISTING -> DONE

FAILED is recorded from any state before a fatal error propagates. Runs that
stop early (no chain captured, operator declined or mistyped) end in DONE
without touching the store file.
"""

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from cryptography import x509

from installcert.config import InstallCertConfig
from installcert.console import Console
from installcert.exceptions import InstallCertError, NoChainCaptured
from installcert.protocol.handshake import ConnectionTarget, HandshakeOrchestrator, HandshakeStatus
from installcert.schemas import CertificateDetails, CertificateSummary
from installcert.security.trust import CapturingTrustEvaluator, ServerTrustEvaluator, StrictTrustEvaluator
from installcert.store import keystore
from installcert.store.models import TrustStore

logger = logging.getLogger(__name__)

QUIT_WORDS = frozenset({"q", "quit"})

EvaluatorFactory = Callable[[TrustStore, ConnectionTarget], ServerTrustEvaluator]
HandshakeFactory = Callable[[CapturingTrustEvaluator, float, Callable[[str], None]], HandshakeOrchestrator]


class EnrollmentState(enum.Enum):
    LOADING_STORE = "loading_store"
    CONNECTING = "connecting"
    ALREADY_TRUSTED = "already_trusted"
    AWAITING_SELECTION = "awaiting_selection"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class EnrollmentStatus(enum.Enum):
    ALREADY_TRUSTED = "already_trusted"
    NO_CHAIN_CAPTURED = "no_chain_captured"
    NOT_CHANGED = "not_changed"
    ENROLLED = "enrolled"


@dataclass
class EnrollmentResult:
    status: EnrollmentStatus
    alias: str | None = None
    certificate: x509.Certificate | None = None


def derive_alias(host: str, index: int) -> str:
    """Alias for the certificate at 0-based chain index."""
    return f"{host}-{index + 1}"


def parse_selection(text: str, count: int) -> int | None:
    """Turn the operator's answer into a 0-based chain index.

    Empty input selects the leaf. Returns None when the operator quits or
    the answer is not a number between 1 and count.
    """
    text = text.strip()

    if not text:
        return 0

    if text.lower() in QUIT_WORDS:
        logger.info("Operator declined enrollment")
        return None

    try:
        index = int(text) - 1
    except ValueError:
        logger.info("Selection %r is not a number", text)
        return None

    if not 0 <= index < count:
        logger.info("Selection %s is out of range 1-%d", text, count)
        return None

    return index


def _strict_evaluator(store: TrustStore, target: ConnectionTarget) -> ServerTrustEvaluator:
    return StrictTrustEvaluator.from_store(store, target.host)


class EnrollmentFlow:
    """Loads the store, captures the server chain and enrolls a certificate."""

    def __init__(
        self,
        config: InstallCertConfig,
        console: Console,
        evaluator_factory: EvaluatorFactory | None = None,
        handshake_factory: HandshakeFactory | None = None,
    ):
        self.config = config
        self.console = console
        self.evaluator_factory = evaluator_factory or _strict_evaluator
        self.handshake_factory = handshake_factory or HandshakeOrchestrator
        self.state = EnrollmentState.LOADING_STORE
        self.store: TrustStore | None = None

    def _transition(self, state: EnrollmentState):
        logger.debug("Enrollment state %s -> %s", self.state.name, state.name)
        self.state = state

    def run(self, target: ConnectionTarget) -> EnrollmentResult:
        """Run one enrollment against target.

        Raises:
            StoreUnreadable: If no usable trust store could be loaded
            ConnectionFailed: If the target could not be reached
            StoreWriteFailed: If the updated store could not be written
        """
        try:
            return self._run(target)
        except InstallCertError:
            self._transition(EnrollmentState.FAILED)
            raise

    def _run(self, target: ConnectionTarget) -> EnrollmentResult:
        self._transition(EnrollmentState.LOADING_STORE)
        self.store = self._load_store()

        self._transition(EnrollmentState.CONNECTING)
        trust = CapturingTrustEvaluator(self.evaluator_factory(self.store, target))
        orchestrator = self.handshake_factory(trust, self.config.timeout, self.console.print)
        result = orchestrator.run(target)

        if result.status is HandshakeStatus.ALREADY_TRUSTED:
            self._transition(EnrollmentState.ALREADY_TRUSTED)
            self.console.print()
            self.console.print("No errors, certificate is already trusted")
            self._transition(EnrollmentState.DONE)
            return EnrollmentResult(EnrollmentStatus.ALREADY_TRUSTED)

        self.console.print()
        if result.error is not None:
            self.console.print(f"Handshake failed: {result.error}")

        try:
            chain = self._require_chain(result.chain)
        except NoChainCaptured as error:
            logger.info("%s", error)
            self.console.print("Could not obtain server certificate chain")
            self._transition(EnrollmentState.DONE)
            return EnrollmentResult(EnrollmentStatus.NO_CHAIN_CAPTURED)

        self._transition(EnrollmentState.AWAITING_SELECTION)
        self._show_chain(chain)

        answer = self.console.prompt("Enter certificate to add to trusted keystore or 'q' to quit: [1]")
        index = parse_selection(answer, len(chain))

        if index is None:
            self.console.print("KeyStore not changed")
            self._transition(EnrollmentState.DONE)
            return EnrollmentResult(EnrollmentStatus.NOT_CHANGED)

        self._transition(EnrollmentState.PERSISTING)
        certificate = chain[index]
        alias = derive_alias(target.host, index)
        self._enroll(alias, certificate)

        self._transition(EnrollmentState.DONE)
        return EnrollmentResult(EnrollmentStatus.ENROLLED, alias=alias, certificate=certificate)

    def _load_store(self) -> TrustStore:
        path = keystore.locate(self.config)

        if path is None:
            self.console.print("No KeyStore found, starting a new one...")
            return TrustStore()

        self.console.print(f"Loading KeyStore {path}...")
        return keystore.load(path, self.config.passphrase)

    @staticmethod
    def _require_chain(chain: list[x509.Certificate]) -> list[x509.Certificate]:
        if not chain:
            raise NoChainCaptured("Handshake failed before the server presented a certificate")
        return chain

    def _show_chain(self, chain: list[x509.Certificate]):
        self.console.print()
        self.console.print(f"Server sent {len(chain)} certificate(s):")
        self.console.print()

        for number, certificate in enumerate(chain, start=1):
            summary = CertificateSummary.from_certificate(certificate, self.config.fingerprint_algorithms)
            self.console.print(f" {number} Subject {summary.subject_name}")
            self.console.print(f"   Issuer  {summary.issuer_name}")
            for algorithm, value in summary.fingerprints.items():
                self.console.print(f"   {algorithm:<7} {value}")
            self.console.print()

    def _enroll(self, alias: str, certificate: x509.Certificate):
        replaced = keystore.insert(self.store, alias, certificate)
        if replaced is not None and replaced != certificate:
            self.console.print(f"Replacing existing entry '{alias}' ({replaced.subject.rfc4514_string()})")

        output = self.config.output_file
        keystore.persist(self.store, output, self.config.passphrase)

        algorithms = list(dict.fromkeys([*self.config.fingerprint_algorithms, "sha256"]))
        details = CertificateDetails.from_certificate(certificate, algorithms)

        self.console.print()
        self.console.print(f"Subject:    {details.subject_name}")
        self.console.print(f"Issuer:     {details.issuer_name}")
        self.console.print(f"Serial:     {details.serial_number}")
        self.console.print(f"Valid from: {details.not_valid_before.isoformat()}")
        self.console.print(f"Valid to:   {details.not_valid_after.isoformat()}")
        self.console.print(f"SHA-256:    {details.fingerprints['sha256']}")
        self.console.print(details.pem.rstrip("\n"))
        self.console.print()
        self.console.print(f"Added certificate to keystore '{output}' using alias '{alias}'")
