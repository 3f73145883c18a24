"""Certificate fingerprints for out-of-band verification by an operator.

Fingerprints are display aids only. They are compared by a human against
values published elsewhere and never feed a trust decision, so legacy
digests such as SHA-1 and MD5 are acceptable here.
"""

import binascii
from collections.abc import Iterable

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

SUPPORTED_ALGORITHMS = {
    "sha1": hashes.SHA1,
    "md5": hashes.MD5,
    "sha256": hashes.SHA256,
}


def fingerprint(data: bytes, algorithm: str) -> str:
    """Digest data and format it as space separated lowercase hex.

    Args:
        data: Encoded certificate bytes (DER)
        algorithm: Digest identifier, one of SUPPORTED_ALGORITHMS

    Returns:
        Fingerprint such as "a1 b2 c3 ..."

    Raises:
        ValueError: If the algorithm identifier is unknown
    """
    try:
        hash_class = SUPPORTED_ALGORITHMS[algorithm.lower()]
    except KeyError:
        raise ValueError(f"Unsupported digest algorithm: {algorithm}") from None

    digest = hashes.Hash(hash_class())
    digest.update(data)
    return binascii.hexlify(digest.finalize(), " ").decode("ascii")


def fingerprints(certificate: x509.Certificate, algorithms: Iterable[str] = ("sha1", "md5")) -> dict[str, str]:
    """Fingerprint set of a certificate, keyed by algorithm in the given order."""
    der = certificate.public_bytes(serialization.Encoding.DER)
    return {algorithm: fingerprint(der, algorithm) for algorithm in algorithms}
