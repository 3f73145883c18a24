"""Error taxonomy for trust-store enrollment."""


class InstallCertError(Exception):
    """Base exception for installcert errors."""


class StoreUnreadable(InstallCertError):
    """Trust store is missing, corrupt, or the passphrase is wrong."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class StoreWriteFailed(InstallCertError):
    """Updated trust store could not be written."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class ConnectionFailed(InstallCertError):
    """Transport-level failure before any trust decision ran."""

    def __init__(self, message: str, host: str | None = None, port: int | None = None):
        super().__init__(message)
        self.host = host
        self.port = port


class ChainNotTrusted(InstallCertError):
    """Presented certificate chain was rejected by the strict evaluator."""


class NoChainCaptured(InstallCertError):
    """Handshake failed before the peer presented any certificate."""
