"""Trust store model and file access."""

from installcert.store.keystore import insert, load, locate, persist
from installcert.store.models import TrustStore

__all__ = [
    "TrustStore",
    "insert",
    "load",
    "locate",
    "persist",
]
