"""Configuration for installcert."""

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from installcert.protocol.constants import SSL_PORT, TIMEOUT
from installcert.security.fingerprint import SUPPORTED_ALGORITHMS


def _default_security_dir() -> Path:
    """Platform security directory holding the default trust stores."""
    java_home = os.environ.get("JAVA_HOME")
    if java_home:
        return Path(java_home) / "lib" / "security"
    return Path("/etc/ssl/certs/java")


class InstallCertConfig(BaseSettings):
    """installcert configuration via environment variables."""

    # Connection settings
    port: int = Field(default=SSL_PORT, ge=1, le=65535)
    timeout: float = Field(default=TIMEOUT, gt=0)

    # Trust store settings
    passphrase: str = "changeit"
    keystore_file: Path | None = None  # Disables the fallback search
    keystore_name: str = "jssecacerts"
    system_keystore_name: str = "cacerts"
    security_dir: Path = Field(default_factory=_default_security_dir)
    output_file: Path = Path("jssecacerts")
    create_missing: bool = False

    # Display
    fingerprint_algorithms: list[str] = ["sha1", "md5"]

    # Logging
    log_level: str = "WARNING"

    model_config = {"env_prefix": "INSTALLCERT_", "env_file": ".env", "extra": "ignore"}

    @field_validator("fingerprint_algorithms")
    @classmethod
    def _check_algorithms(cls, value: list[str]) -> list[str]:
        algorithms = [name.lower() for name in value]
        unknown = [name for name in algorithms if name not in SUPPORTED_ALGORITHMS]
        if unknown:
            raise ValueError(f"Unsupported fingerprint algorithms: {', '.join(unknown)}")
        if not algorithms:
            raise ValueError("At least one fingerprint algorithm is required")
        return algorithms

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.upper()

    def store_candidates(self) -> list[Path]:
        """Trust store files to try, in search order."""
        if self.keystore_file is not None:
            return [self.keystore_file]
        return [
            Path(self.keystore_name),
            self.security_dir / self.keystore_name,
            self.security_dir / self.system_keystore_name,
        ]
