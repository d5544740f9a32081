"""
Railway entry points for callers that want Result values instead of exceptions.

The message-composition layer typically does not want to know about every
exception type: it wants "protected bytes, or a failure with a code it can
map to a user-facing message". These functions give it exactly that:

  run_import:      certificates → private keys           → Result[ImportSummary]
  protect_message: sign (optional) → encrypt (optional)  → Result[bytes]

Each stage is captured with Result.from_computation and chained with
flat_map, so the first failing stage short-circuits the rest. Typed errors
keep their own ErrorCode and are available as `error().exception`.
"""

from __future__ import annotations

from smime_store.domain.models import ImportSummary, OutgoingMessage
from smime_store.domain.ports import CertificateStore
from smime_store.engine import SecureMailEngine
from smime_store.importer import import_certificates, import_private_keys
from smime_store.result import ErrorCode, Result


def run_import(
    store: CertificateStore,
    raw: str,
    secret: str | None = None,
) -> Result[ImportSummary]:
    """
    Import every certificate in `raw`, then every private key in it.

    Keys are imported second so a bundle carrying both a certificate and its
    key can be loaded in one call.
    """
    return Result.from_computation(
        lambda: import_certificates(store, raw),
        ErrorCode.TECHNICAL_ERROR,
        "Failed to import certificates",
    ).flat_map(
        lambda certificates: Result.from_computation(
            lambda: ImportSummary(
                certificates=certificates,
                private_keys=import_private_keys(store, raw, secret),
            ),
            ErrorCode.TECHNICAL_ERROR,
            "Failed to import private keys",
        )
    )


def protect_message(
    engine: SecureMailEngine,
    message: OutgoingMessage,
    sign: bool = True,
    encrypt: bool = True,
) -> Result[bytes]:
    """Sign and/or encrypt `message`; the signed output is what gets encrypted."""
    signed = (
        Result.from_computation(
            lambda: engine.sign(message),
            ErrorCode.TECHNICAL_ERROR,
            "Failed to sign message",
        )
        if sign
        else Result.success(message.body)
    )
    if not encrypt:
        return signed
    return signed.flat_map(
        lambda data: Result.from_computation(
            lambda: engine.encrypt(message, data),
            ErrorCode.TECHNICAL_ERROR,
            "Failed to encrypt message",
        )
    )
