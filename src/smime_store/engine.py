"""
Secure mail engine — S/MIME signing and encryption of outgoing messages.

Uses cryptography's PKCS#7 builders:
  - PKCS7SignatureBuilder: detached signed-data, signer + issuer chain included
  - PKCS7EnvelopeBuilder:  enveloped-data, RSA key transport per recipient,
                           AES-CBC content encryption

Both operations are single-shot: resolve certificates, check validity,
build the PKCS#7 structure, return S/MIME bytes. Every failure is reported
to the ProtectionLog and re-raised unchanged; nothing is retried.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.ciphers import algorithms
from cryptography.hazmat.primitives.serialization import pkcs7

from smime_store.adapters import x509_parser
from smime_store.chain import build_chain
from smime_store.domain.errors import (
    ExpiredCertificate,
    KeyDecryptionError,
    SignerCertificateNotFound,
)
from smime_store.domain.models import (
    CertificateRecord,
    OutgoingMessage,
    SecurityOptions,
    SymmetricCipher,
)
from smime_store.domain.ports import CertificateStore, ProtectionLog
from smime_store.resolver import DEFAULT_BATCH_SIZE, CertificateResolver

log = structlog.get_logger()

_CIPHERS = {
    SymmetricCipher.AES_128_CBC: algorithms.AES128,
    SymmetricCipher.AES_256_CBC: algorithms.AES256,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SecureMailEngine:
    """
    Sign and/or encrypt message payloads with certificates from a CertificateStore.

    The engine holds no per-message state; one instance serves any number
    of messages.
    """

    type = "S/MIME"

    def __init__(
        self,
        store: CertificateStore,
        options: SecurityOptions,
        protection_log: ProtectionLog,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._options = options
        self._protection_log = protection_log
        self._resolver = CertificateResolver(store, batch_size=batch_size)
        self._clock = clock

    @property
    def cipher(self) -> SymmetricCipher:
        return self._options.cipher

    def sign(self, message: OutgoingMessage) -> bytes:
        """
        Detached S/MIME signature over `message.body` (multipart/signed).

        Raises SignerCertificateNotFound, ExpiredCertificate, KeyDecryptionError,
        or whatever the PKCS#7 backend raises.
        """
        try:
            return self._sign(message)
        except Exception as e:
            self._protection_log.log("sign", "failed", str(e))
            raise

    def _sign(self, message: OutgoingMessage) -> bytes:
        sender = message.from_address
        certificate = self._resolver.resolve_sender(sender)
        if certificate is None:
            raise SignerCertificateNotFound(sender)
        if not self._options.allow_expired_for_signing and certificate.expired(self._clock()):
            raise ExpiredCertificate(
                f"Expired certificate for {sender} (fingerprint {certificate.fingerprint}) "
                f"with {certificate.not_before} to {certificate.not_after}"
            )
        if certificate.private_key is None:
            raise KeyDecryptionError("The signing certificate has no private key.")
        private_key = x509_parser.load_private_key(
            certificate.private_key, certificate.private_key_secret
        )

        builder = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(message.body)
            .add_signer(certificate.parsed, private_key, hashes.SHA256())
        )
        for issuer in build_chain(self._store, certificate):
            # the signer certificate is already carried by add_signer
            if issuer.fingerprint == certificate.fingerprint:
                continue
            builder = builder.add_certificate(issuer.parsed)

        signed = builder.sign(
            serialization.Encoding.SMIME,
            [pkcs7.PKCS7Options.DetachedSignature],
        )
        log.info("engine.signed", fingerprint=certificate.fingerprint)
        return signed

    def encrypt(self, message: OutgoingMessage, data: bytes | None = None) -> bytes:
        """
        S/MIME enveloped data (application/pkcs7-mime) for every to/cc recipient.

        `data` defaults to `message.body`; pass the output of sign() to encrypt
        a signed message. Raises CertificatesNotFound or ExpiredCertificate.
        """
        try:
            return self._encrypt(message, message.body if data is None else data)
        except Exception as e:
            self._protection_log.log("encryption", "failed", str(e))
            raise

    def _encrypt(self, message: OutgoingMessage, data: bytes) -> bytes:
        certificates = self._recipient_certificates(message)
        if not self._options.allow_expired_for_encryption:
            now = self._clock()
            expired = next((c for c in certificates if c.expired(now)), None)
            if expired is not None:
                raise ExpiredCertificate(
                    f"Expired certificates for cert with {expired.not_before} to {expired.not_after}"
                )

        builder = (
            pkcs7.PKCS7EnvelopeBuilder()
            .set_data(data)
            .set_content_encryption_algorithm(_CIPHERS[self._options.cipher])
        )
        for certificate in certificates:
            builder = builder.add_recipient(certificate.parsed)

        encrypted = builder.encrypt(serialization.Encoding.SMIME, [])
        log.info("engine.encrypted", recipients=len(certificates), cipher=self._options.cipher.value)
        return encrypted

    def _recipient_certificates(self, message: OutgoingMessage) -> list[CertificateRecord]:
        """to and cc resolved independently, concatenated as is."""
        certificates: list[CertificateRecord] = []
        for addresses in (message.to, message.cc):
            if not addresses:
                continue
            certificates += self._resolver.resolve_recipients(addresses)
        return certificates

    def protect(self, message: OutgoingMessage, sign: bool = True, encrypt: bool = True) -> bytes:
        """Sign, then encrypt the signed result; either step may be switched off."""
        data = message.body
        if sign:
            data = self.sign(message)
        if encrypt:
            data = self.encrypt(message, data)
        return data
