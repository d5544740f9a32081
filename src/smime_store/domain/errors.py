"""
Typed failures of the certificate store and the S/MIME engine.

Each exception carries the ErrorCode it maps to on the Result railway, so
adapters can capture them with Result.from_computation() without losing
their category.
"""

from __future__ import annotations

from collections.abc import Iterable

from smime_store.result import ErrorCode


class SmimeError(Exception):
    """Base class for every failure raised by smime_store."""

    code: ErrorCode = ErrorCode.TECHNICAL_ERROR


class MalformedCertificate(SmimeError):
    """Input could not be decoded as an X.509 certificate."""

    code = ErrorCode.VALIDATION_ERROR


class DuplicateCertificate(SmimeError):
    """A certificate with the same fingerprint is already stored."""

    code = ErrorCode.BUSINESS_RULE_ERROR

    def __init__(self, fingerprint: str) -> None:
        super().__init__(f"A certificate with fingerprint {fingerprint} is already stored.")
        self.fingerprint = fingerprint


class CertificateNotFound(SmimeError):
    """No stored certificate matches the modulus of an imported private key."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "The certificate for this private key could not be found.") -> None:
        super().__init__(message)


class KeyDecryptionError(SmimeError):
    """The secret does not decrypt the private key, or the key material is corrupt."""

    code = ErrorCode.AUTHENTICATION_ERROR


class CertificatesNotFound(SmimeError):
    """
    One or more recipients have no usable encryption certificate.

    `addresses` holds exactly the unresolved addresses; recipients that were
    satisfied never appear here or in the message.
    """

    code = ErrorCode.NOT_FOUND

    def __init__(self, addresses: Iterable[str]) -> None:
        self.addresses = list(addresses)
        super().__init__(
            f"Can't find S/MIME encryption certificates for: {', '.join(self.addresses)}"
        )


class SignerCertificateNotFound(SmimeError):
    """No certificate with a private key may sign for the sender address."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, address: str) -> None:
        super().__init__(f"Unable to find S/MIME private key for '{address}'")
        self.address = address


class ExpiredCertificate(SmimeError):
    """A resolved certificate is outside its validity window and expired use is not allowed."""

    code = ErrorCode.BUSINESS_RULE_ERROR


class StoreError(SmimeError):
    """The certificate store could not complete an operation."""

    code = ErrorCode.DATABASE_ERROR
