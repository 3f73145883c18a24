"""Trust store file access.

Stores are PKCS#12 containers, the default keystore type of current Java
runtimes. Trusted certificates are kept as certificate bags whose friendly
name is the alias. A private key entry, if present, is carried through
untouched.
"""

import contextlib
import logging
import os
import stat
import tempfile
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from installcert.config import InstallCertConfig
from installcert.exceptions import StoreUnreadable, StoreWriteFailed
from installcert.store.models import TrustStore

logger = logging.getLogger(__name__)

# Key derivation rounds for the PBES2 encryption of written stores
KDF_ROUNDS = 50000


def _password(passphrase: str) -> bytes | None:
    return passphrase.encode("utf-8") if passphrase else None


def _encryption(passphrase: str) -> serialization.KeySerializationEncryption:
    if not passphrase:
        return serialization.NoEncryption()

    return (
        serialization.PrivateFormat.PKCS12.encryption_builder()
        .kdf_rounds(KDF_ROUNDS)
        .key_cert_algorithm(pkcs12.PBES.PBESv2SHA256AndAES256CBC)
        .hmac_hash(hashes.SHA256())
        .build(passphrase.encode("utf-8"))
    )


def locate(config: InstallCertConfig) -> Path | None:
    """Find the trust store to start from.

    The first existing candidate of config.store_candidates() wins. When none
    exists a new empty store is used if config.create_missing is set.

    Raises:
        StoreUnreadable: If no candidate exists and create_missing is off
    """
    candidates = config.store_candidates()

    for candidate in candidates:
        if candidate.is_file():
            return candidate
        logger.debug("No trust store at %s", candidate)

    if config.create_missing:
        return None

    searched = ", ".join(str(candidate) for candidate in candidates)
    raise StoreUnreadable(f"No trust store found (searched {searched})")


def load(path: Path, passphrase: str) -> TrustStore:
    """Load a trust store from a PKCS#12 file.

    Raises:
        StoreUnreadable: If the file is missing or unreadable, corrupt, or the
            passphrase is wrong
    """
    try:
        data = path.read_bytes()
    except OSError as error:
        raise StoreUnreadable(f"{error.strerror}: {path}", path=str(path)) from error

    try:
        container = pkcs12.load_pkcs12(data, _password(passphrase))
    except ValueError as error:
        raise StoreUnreadable(
            f"Cannot read trust store {path}: corrupt file or wrong passphrase", path=str(path)
        ) from error

    store = TrustStore(source=path)

    if container.key is not None:
        store.key_entry = container
    elif container.cert is not None:
        friendly_name = container.cert.friendly_name
        store.add_loaded(friendly_name.decode("utf-8") if friendly_name else None, container.cert.certificate)

    for bag in container.additional_certs:
        friendly_name = bag.friendly_name
        store.add_loaded(friendly_name.decode("utf-8") if friendly_name else None, bag.certificate)

    logger.info("Loaded %d trusted certificates from %s", len(store), path)
    return store


def insert(store: TrustStore, alias: str, certificate: x509.Certificate) -> x509.Certificate | None:
    """Add or replace a trusted certificate entry in memory."""
    replaced = store.insert(alias, certificate)
    if replaced is not None and replaced != certificate:
        logger.info("Replacing entry %s <%s>", alias, replaced.subject.rfc4514_string())
    return replaced


def _serialize(store: TrustStore, passphrase: str) -> bytes:
    cas = [
        pkcs12.PKCS12Certificate(certificate, alias.encode("utf-8")) for alias, certificate in store.entries.items()
    ]

    name = key = cert = None
    if store.key_entry is not None:
        key = store.key_entry.key
        if store.key_entry.cert is not None:
            cert = store.key_entry.cert.certificate
            name = store.key_entry.cert.friendly_name

    return pkcs12.serialize_key_and_certificates(name, key, cert, cas or None, _encryption(passphrase))


def _file_mode(path: Path) -> int:
    """Permission bits for the written store: those of the file it replaces, else the umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def persist(store: TrustStore, path: Path, passphrase: str) -> None:
    """Write a trust store to path atomically.

    The container is written to a temporary file next to path and renamed
    over it, so readers see either the old store or the new one. The file keeps
    the permission bits of the store it replaces.

    Raises:
        StoreWriteFailed: On any serialization or I/O error
    """
    try:
        data = _serialize(store, passphrase)
    except (TypeError, ValueError) as error:
        raise StoreWriteFailed(f"Cannot serialize trust store: {error}", path=str(path)) from error

    temp_name = None

    try:
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_name, _file_mode(path))
        os.replace(temp_name, path)
    except OSError as error:
        if temp_name is not None:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_name)
        raise StoreWriteFailed(f"{error.strerror or error}: {path}", path=str(path)) from error

    logger.info("Wrote %d trusted certificates to %s", len(store), path)
