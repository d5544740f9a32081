"""
Domain models — certificate records, outgoing messages, protection options.

CertificateRecord is a frozen dataclass: attaching a private key produces a
new record (dataclasses.replace), so the lazily derived fields below are
computed once per instance and can never go stale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from functools import cached_property

from cryptography import x509

from smime_store.adapters import x509_parser


@unique
class KeyUsage(Enum):
    """Intended use of a certificate's key, named after the keyUsage bits it needs."""

    DIGITAL_SIGNATURE = "digital_signature"
    KEY_ENCIPHERMENT = "key_encipherment"


@unique
class SymmetricCipher(Enum):
    """Content-encryption ciphers accepted for PKCS#7 enveloped data."""

    AES_128_CBC = "aes-128-cbc"
    AES_256_CBC = "aes-256-cbc"


@dataclass(frozen=True)
class CertificateRecord:
    """
    A stored X.509 certificate, optionally with its encrypted private key.

    `public_key` holds the PEM text of the certificate itself. `fingerprint`
    is the lowercase hex SHA-1 of the DER encoding and is unique in the store.
    `modulus` is the uppercase hex RSA modulus used to pair private keys.
    """

    subject: str
    issuer: str
    fingerprint: str
    modulus: str
    not_before: datetime
    not_after: datetime
    public_key: str = field(repr=False)
    private_key: str | None = field(default=None, repr=False)
    private_key_secret: str | None = field(default=None, repr=False)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @cached_property
    def parsed(self) -> x509.Certificate:
        return x509_parser.parse_certificate(self.public_key)

    @cached_property
    def email_addresses(self) -> list[str]:
        """Lowercase email addresses from the subjectAltName extension."""
        return x509_parser.extract_email_addresses(self.parsed, fingerprint=self.fingerprint)

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    @property
    def is_self_signed(self) -> bool:
        return self.subject == self.issuer

    def expired(self, now: datetime | None = None) -> bool:
        """True when `now` lies outside [not_before, not_after]."""
        now = now or datetime.now(UTC)
        return not (self.not_before <= now <= self.not_after)


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    """
    An already composed message handed over for protection.

    `body` is the exact byte payload that gets signed or encrypted.
    """

    from_address: str
    body: bytes = field(repr=False)
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SecurityOptions:
    """Per-deployment switches consumed by the SecureMailEngine."""

    allow_expired_for_signing: bool = False
    allow_expired_for_encryption: bool = False
    cipher: SymmetricCipher = SymmetricCipher.AES_128_CBC


@dataclass(frozen=True, slots=True)
class ImportSummary:
    """Outcome of an import run: the records created and the records given a key."""

    certificates: list[CertificateRecord] = field(default_factory=list)
    private_keys: list[CertificateRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.certificates) + len(self.private_keys)
