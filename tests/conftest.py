"""Shared fixtures: locally generated certificates and trust stores."""

import ipaddress
import socket
import ssl
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from installcert.config import InstallCertConfig
from installcert.store import keystore
from installcert.store.models import TrustStore

PASSPHRASE = "changeit"


@dataclass
class Issued:
    key: ec.EllipticCurvePrivateKey
    certificate: x509.Certificate

    def key_pem(self) -> bytes:
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def cert_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _key_usage(**enabled) -> x509.KeyUsage:
    flags = dict.fromkeys(
        [
            "digital_signature",
            "content_commitment",
            "key_encipherment",
            "data_encipherment",
            "key_agreement",
            "key_cert_sign",
            "crl_sign",
            "encipher_only",
            "decipher_only",
        ],
        False,
    )
    flags.update(enabled)
    return x509.KeyUsage(**flags)


def make_ca(common_name: str, issuer: Issued | None = None) -> Issued:
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(issuer.certificate.subject if issuer else _name(common_name))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if issuer is not None:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer.key.public_key()),
            critical=False,
        )
    return Issued(key, builder.sign(issuer.key if issuer else key, hashes.SHA256()))


def _server_builder(key, issuer_name: x509.Name, common_name: str) -> x509.CertificateBuilder:
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName(common_name), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )


def make_server(issuer: Issued, common_name: str = "localhost", authority_key_id: bool = True) -> Issued:
    key = ec.generate_private_key(ec.SECP256R1())
    builder = (
        _server_builder(key, issuer.certificate.subject, common_name)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True), critical=True)
    )
    if authority_key_id:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer.key.public_key()),
            critical=False,
        )
    return Issued(key, builder.sign(issuer.key, hashes.SHA256()))


def make_self_signed(common_name: str = "localhost", ca: bool | None = True) -> Issued:
    """Server certificate signed by its own key, like `openssl req -x509` produces.

    ca=None leaves out basicConstraints altogether.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    builder = _server_builder(key, _name(common_name), common_name)
    if ca is not None:
        builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    return Issued(key, builder.sign(key, hashes.SHA256()))


@pytest.fixture(scope="session")
def ca() -> Issued:
    return make_ca("installcert test CA")


@pytest.fixture(scope="session")
def server(ca) -> Issued:
    return make_server(ca)


@pytest.fixture(scope="session")
def stranger() -> Issued:
    return make_ca("unrelated root")


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run in an empty directory so relative store paths land in tmp_path."""
    monkeypatch.chdir(tmp_path)
    for name in ("JAVA_HOME", "INSTALLCERT_PASSPHRASE", "INSTALLCERT_KEYSTORE_FILE", "INSTALLCERT_OUTPUT_FILE"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def make_store(workdir):
    def _make_store(entries: dict[str, x509.Certificate], name: str = "input.p12", passphrase: str = PASSPHRASE):
        path = workdir / name
        keystore.persist(TrustStore(entries=dict(entries)), path, passphrase)
        return path

    return _make_store


@pytest.fixture
def config_for(workdir):
    def _config_for(store_path, **overrides) -> InstallCertConfig:
        settings = {
            "keystore_file": store_path,
            "output_file": workdir / "jssecacerts",
            "security_dir": workdir / "security",
            "passphrase": PASSPHRASE,
        }
        settings.update(overrides)
        return InstallCertConfig(**settings)

    return _config_for


class TlsServer:
    """Loopback TLS server answering a single handshake."""

    def __init__(self, certfile, keyfile):
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(certfile, keyfile)
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.listener.settimeout(5)
        self.port = self.listener.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        try:
            connection, _ = self.listener.accept()
        except OSError:
            return

        with connection:
            try:
                with self.context.wrap_socket(connection, server_side=True) as tls_socket:
                    tls_socket.recv(1)
            except OSError:
                pass

    def close(self):
        self.listener.close()
        self.thread.join(timeout=5)


@pytest.fixture
def serve_chain(tmp_path):
    """Start loopback servers presenting a leaf followed by extra chain certificates."""
    servers = []

    def _serve_chain(leaf: Issued, *extra: Issued) -> TlsServer:
        index = len(servers)
        certfile = tmp_path / f"server-chain-{index}.pem"
        keyfile = tmp_path / f"server-key-{index}.pem"
        certfile.write_bytes(leaf.cert_pem() + b"".join(issued.cert_pem() for issued in extra))
        keyfile.write_bytes(leaf.key_pem())

        tls = TlsServer(certfile, keyfile)
        servers.append(tls)
        return tls

    yield _serve_chain

    for tls in servers:
        tls.close()


@pytest.fixture
def tls_server(serve_chain, ca, server):
    return serve_chain(server, ca)
