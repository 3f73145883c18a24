"""In-memory trust store model."""

import binascii
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import pkcs12


@dataclass
class TrustStore:
    """Trusted certificate entries keyed by unique alias.

    Attributes:
        entries: Alias to certificate mapping, insertion ordered
        key_entry: Private key entry found in the container, written back unchanged
        source: File the store was loaded from, None for a new store
    """

    entries: dict[str, x509.Certificate] = field(default_factory=dict)
    key_entry: pkcs12.PKCS12KeyAndCertificates | None = None
    source: Path | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, alias: str) -> bool:
        return alias in self.entries

    def get(self, alias: str) -> x509.Certificate | None:
        return self.entries.get(alias)

    def aliases(self) -> list[str]:
        return list(self.entries)

    def anchors(self) -> list[x509.Certificate]:
        """Certificates trusted as chain anchors."""
        return list(self.entries.values())

    def insert(self, alias: str, certificate: x509.Certificate) -> x509.Certificate | None:
        """Add or replace the entry at alias, returning the replaced certificate."""
        replaced = self.entries.get(alias)
        self.entries[alias] = certificate
        return replaced

    def add_loaded(self, alias: str | None, certificate: x509.Certificate) -> str:
        """Add an entry read from a container, keeping aliases unique."""
        if not alias:
            alias = binascii.hexlify(certificate.fingerprint(hashes.SHA256())).decode("utf-8")

        unique_alias = alias
        suffix = 1
        while unique_alias in self.entries:
            suffix += 1
            unique_alias = f"{alias}-{suffix}"

        self.entries[unique_alias] = certificate
        return unique_alias
