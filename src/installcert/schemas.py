"""Pydantic models describing certificates for display."""

from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from pydantic import BaseModel

from installcert.security.fingerprint import fingerprints


def _name(name: x509.Name) -> str:
    return ",".join([attr.rfc4514_string() for attr in name])


class CertificateSummary(BaseModel):
    """Attributes of a presented certificate shown to the operator."""

    subject_name: str
    issuer_name: str
    fingerprints: dict[str, str]

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate, algorithms: list[str]) -> "CertificateSummary":
        return cls(
            subject_name=_name(certificate.subject),
            issuer_name=_name(certificate.issuer),
            fingerprints=fingerprints(certificate, algorithms),
        )


class CertificateDetails(CertificateSummary):
    """Full description printed after a certificate has been enrolled."""

    serial_number: str
    not_valid_before: datetime
    not_valid_after: datetime
    pem: str

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate, algorithms: list[str]) -> "CertificateDetails":
        summary = CertificateSummary.from_certificate(certificate, algorithms)
        return cls(
            **summary.model_dump(),
            serial_number=format(certificate.serial_number, "x"),
            not_valid_before=certificate.not_valid_before_utc,
            not_valid_after=certificate.not_valid_after_utc,
            pem=certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8"),
        )
