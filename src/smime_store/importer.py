"""
Certificate and private key import.

Turns raw text (anything containing PEM blocks: a .pem file, a chain bundle,
a pasted key) into stored CertificateRecords:

  raw text
    → extract_pem_blocks()
      → blocks containing CERTIFICATE → record_from_pem() → store.insert()
      → blocks containing PRIVATE KEY → decrypt → modulus → store.find_by_modulus()
                                        → store.attach_private_key()

Errors are raised per block, immediately: the first malformed or duplicate
block stops the call, blocks before it stay stored.
"""

from __future__ import annotations

import structlog

from smime_store.adapters import x509_parser
from smime_store.domain.errors import CertificateNotFound
from smime_store.domain.models import CertificateRecord
from smime_store.domain.ports import CertificateStore

log = structlog.get_logger()


def record_from_pem(pem: str) -> CertificateRecord:
    """
    Derive an unsaved CertificateRecord from one PEM certificate block.

    Raises MalformedCertificate for undecodable input or a non-RSA key.
    """
    cert = x509_parser.parse_certificate(pem)
    return CertificateRecord(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        fingerprint=x509_parser.fingerprint(cert),
        modulus=x509_parser.rsa_modulus(cert.public_key()),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        public_key=x509_parser.certificate_pem(cert),
    )


def import_certificates(store: CertificateStore, raw: str) -> list[CertificateRecord]:
    """Parse and store every certificate block in `raw`; return the stored records."""
    created: list[CertificateRecord] = []
    for block in x509_parser.extract_pem_blocks(raw):
        if "CERTIFICATE" not in block:
            continue
        stored = store.insert(record_from_pem(block)).get_or_raise()
        log.info(
            "importer.certificate_stored",
            id=stored.id,
            fingerprint=stored.fingerprint,
            subject=stored.subject,
        )
        created.append(stored)
    return created


def import_private_keys(
    store: CertificateStore,
    raw: str,
    secret: str | None,
) -> list[CertificateRecord]:
    """
    Attach every private key block in `raw` to the certificate sharing its modulus.

    Raises KeyDecryptionError when `secret` does not open a key and
    CertificateNotFound when no stored certificate matches it.
    """
    updated: list[CertificateRecord] = []
    for block in x509_parser.extract_pem_blocks(raw):
        if "PRIVATE KEY" not in block:
            continue
        private_key = x509_parser.load_private_key(block, secret)
        modulus = x509_parser.rsa_modulus(private_key.public_key())
        certificate = store.find_by_modulus(modulus)
        if certificate is None:
            raise CertificateNotFound()
        record = store.attach_private_key(certificate, block, secret).get_or_raise()
        log.info("importer.private_key_attached", id=record.id, fingerprint=record.fingerprint)
        updated.append(record)
    return updated
