"""
Application entry point — wires dependencies and runs a CLI command.

Composition root: this is the ONLY place where concrete adapters are
instantiated. Everything else depends on the CertificateStore and
ProtectionLog protocols.

Commands:
  smime-store init-db
  smime-store import-certificates FILE
  smime-store import-keys FILE              (secret from $SMIME_KEY_SECRET)
  smime-store sign    --from ADDR BODY      (S/MIME to stdout)
  smime-store encrypt --to ADDR [--cc ADDR] BODY

Exit codes: 0 success, 1 configuration error, 2 usage or certificate/protection error.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import structlog

from smime_store import __version__
from smime_store.adapters.protection_log import StructlogProtectionLog
from smime_store.adapters.repository import PsycopgCertificateStore
from smime_store.config import AppSettings
from smime_store.domain.errors import SmimeError
from smime_store.domain.models import OutgoingMessage
from smime_store.engine import SecureMailEngine
from smime_store.importer import import_certificates, import_private_keys
from smime_store.result import ErrorCode, Result

KEY_SECRET_ENV = "SMIME_KEY_SECRET"


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging to stderr.

    stdout is reserved for command output (S/MIME bytes).
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def create_components(settings: AppSettings) -> tuple[PsycopgCertificateStore, SecureMailEngine]:
    """Instantiate the PostgreSQL store and an engine bound to it."""
    store = PsycopgCertificateStore(dsn=settings.database.get_dsn())
    engine = SecureMailEngine(
        store=store,
        options=settings.security_options(),
        protection_log=StructlogProtectionLog(),
        batch_size=settings.scan_batch_size,
    )
    return store, engine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="smime-store", description="S/MIME certificate store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="create the certificate table")

    certs = commands.add_parser("import-certificates", help="store every certificate in FILE")
    certs.add_argument("file", type=Path)

    keys = commands.add_parser(
        "import-keys", help=f"attach every private key in FILE (secret from ${KEY_SECRET_ENV})"
    )
    keys.add_argument("file", type=Path)

    sign = commands.add_parser("sign", help="write a detached S/MIME signature of BODY")
    sign.add_argument("--from", dest="from_address", required=True)
    sign.add_argument("body", type=Path)

    encrypt = commands.add_parser("encrypt", help="write BODY encrypted to all recipients")
    encrypt.add_argument("--from", dest="from_address", default="")
    encrypt.add_argument("--to", action="append", default=[])
    encrypt.add_argument("--cc", action="append", default=[])
    encrypt.add_argument("body", type=Path)
    return parser


def run(args: argparse.Namespace, store: PsycopgCertificateStore, engine: SecureMailEngine) -> None:
    """Execute one parsed command. Typed errors propagate to the caller."""
    match args.command:
        case "init-db":
            store.ensure_schema().get_or_raise()
        case "import-certificates":
            for record in import_certificates(store, args.file.read_text()):
                print(f"{record.fingerprint} {record.subject}")  # noqa: T201
        case "import-keys":
            secret = os.environ.get(KEY_SECRET_ENV)
            for record in import_private_keys(store, args.file.read_text(), secret):
                print(f"{record.fingerprint} {record.subject}")  # noqa: T201
        case "sign":
            message = OutgoingMessage(from_address=args.from_address, body=args.body.read_bytes())
            sys.stdout.buffer.write(engine.sign(message))
        case "encrypt":
            message = OutgoingMessage(
                from_address=args.from_address,
                to=args.to,
                cc=args.cc,
                body=args.body.read_bytes(),
            )
            sys.stdout.buffer.write(engine.encrypt(message))


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, load settings, wire adapters, run the command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "encrypt" and not (args.to or args.cc):
        parser.error("encrypt needs at least one --to or --cc recipient")

    loaded = Result.from_computation(
        AppSettings, ErrorCode.CONFIGURATION_ERROR, "Configuration error"
    )
    if loaded.is_failure():
        failure = loaded.error()
        print(f"FATAL: {failure.code.value} — {failure.exception}", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    settings = loaded.value()

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    store, engine = create_components(settings)

    try:
        run(args, store, engine)
    except SmimeError as e:
        log.error("app.command_failed", command=args.command, code=e.code.value, error=str(e))
        print(f"ERROR: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(2)


if __name__ == "__main__":
    main()
