"""installcert runner - command line entry point for trust enrollment."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from installcert.config import InstallCertConfig
from installcert.console import Console
from installcert.enrollment import EnrollmentFlow, EnrollmentResult
from installcert.exceptions import InstallCertError
from installcert.protocol.handshake import ConnectionTarget

logger = logging.getLogger(__name__)

USAGE = "%(prog)s <host>[:port] [passphrase]"


class InstallCertService:
    """Runs one enrollment and maps its outcome to an exit status."""

    def __init__(self, config: InstallCertConfig, console: Console | None = None):
        self.config = config
        self.console = console or Console()
        self.result: EnrollmentResult | None = None

    def _setup_logging(self):
        """Configure logging."""
        logging.basicConfig(
            level=getattr(logging, self.config.log_level.upper()),
            format="%(name)s %(message)s",
            stream=sys.stdout,
            force=True,
        )

    def run(self, target: ConnectionTarget) -> int:
        """Enroll target, returning 0 unless a fatal error occurred."""
        self._setup_logging()

        logger.info("Enrolling %s", target)
        logger.info("Output keystore: %s", self.config.output_file)

        flow = EnrollmentFlow(self.config, self.console)

        try:
            self.result = flow.run(target)
        except InstallCertError as error:
            logger.debug("Enrollment failed in state %s", flow.state.name, exc_info=error)
            self.console.print(f"Error: {error}")
            return 1

        logger.info("Enrollment finished: %s", self.result.status.value)
        return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="installcert",
        usage=USAGE,
        description="Add a TLS server certificate to a local trust store.",
    )
    parser.add_argument("arguments", nargs="*", help=argparse.SUPPRESS)
    parser.add_argument("--keystore", type=Path, help="input trust store (skips the fallback search)")
    parser.add_argument("--output", type=Path, help="where to write the updated trust store")
    parser.add_argument("--timeout", type=float, help="socket timeout in seconds")
    parser.add_argument("--create", action="store_true", help="start a new store when none is found")
    parser.add_argument("--log-level", help="logging level (default WARNING)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point."""
    try:
        from importlib.metadata import version

        package_version = version("installcert")
    except Exception:
        package_version = "1.0.0"

    print(f"InstallCert v{package_version}")

    parser = _build_parser()
    args = parser.parse_args(argv)

    if len(args.arguments) not in (1, 2):
        parser.print_usage(sys.stdout)
        return 0

    overrides = {}
    if len(args.arguments) == 2:
        overrides["passphrase"] = args.arguments[1]
    if args.keystore is not None:
        overrides["keystore_file"] = args.keystore
    if args.output is not None:
        overrides["output_file"] = args.output
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.create:
        overrides["create_missing"] = True
    if args.log_level is not None:
        overrides["log_level"] = args.log_level

    try:
        config = InstallCertConfig(**overrides)
    except ValidationError as error:
        print(f"Invalid configuration: {error}")
        return 1

    try:
        target = ConnectionTarget.parse(args.arguments[0], default_port=config.port)
    except ValueError:
        parser.print_usage(sys.stdout)
        return 0

    service = InstallCertService(config)
    return service.run(target)


if __name__ == "__main__":
    sys.exit(main())
