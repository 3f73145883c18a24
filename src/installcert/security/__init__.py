"""Fingerprints and server trust decisions."""

from installcert.security.fingerprint import SUPPORTED_ALGORITHMS, fingerprint, fingerprints
from installcert.security.trust import CapturingTrustEvaluator, ServerTrustEvaluator, StrictTrustEvaluator

__all__ = [
    "SUPPORTED_ALGORITHMS",
    "CapturingTrustEvaluator",
    "ServerTrustEvaluator",
    "StrictTrustEvaluator",
    "fingerprint",
    "fingerprints",
]
