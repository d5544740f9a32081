"""
Shared test fixtures and helpers for the smime-store test suite.

Certificates are generated at test time with cryptography instead of being
checked in as fixture files, so validity windows can be placed relative to
"now" and every test can shape keyUsage / subjectAltName as it needs.
"""

from __future__ import annotations

import email
import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from asn1crypto import cms
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from smime_store.adapters.memory_store import InMemoryCertificateStore
from smime_store.domain.models import CertificateRecord
from smime_store.importer import import_certificates, import_private_keys

KEY_SECRET = "s3cr3t-passphrase"

# keyUsage bits: None means "no keyUsage extension at all"
SIGN_AND_ENCRYPT = frozenset({"digital_signature", "key_encipherment"})
CA_USAGE = frozenset({"key_cert_sign", "crl_sign"})

_KEY_USAGE_BITS = (
    "digital_signature",
    "content_commitment",
    "key_encipherment",
    "data_encipherment",
    "key_agreement",
    "key_cert_sign",
    "crl_sign",
    "encipher_only",
    "decipher_only",
)


@dataclass(frozen=True)
class Issued:
    """A generated certificate together with its private key."""

    certificate: x509.Certificate
    key: rsa.RSAPrivateKey

    @property
    def pem(self) -> str:
        return self.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")

    @property
    def fingerprint(self) -> str:
        return self.certificate.fingerprint(hashes.SHA1()).hex()

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    def key_pem(self, secret: str | None = KEY_SECRET) -> str:
        encryption = (
            serialization.BestAvailableEncryption(secret.encode("utf-8"))
            if secret
            else serialization.NoEncryption()
        )
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            encryption,
        ).decode("ascii")


def fresh_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def make_certificate(
    emails: list[str] | None = None,
    common_name: str = "Test User",
    issuer: Issued | None = None,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    key_usage: frozenset[str] | None = SIGN_AND_ENCRYPT,
    ca: bool = False,
    key: rsa.RSAPrivateKey | None = None,
) -> Issued:
    """
    Build an RSA certificate.

    Self-signed unless `issuer` is given. Validity defaults to one day ago
    until one year from now.
    """
    key = key or fresh_key()
    subject = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Org"),
    ])
    issuer_name = issuer.certificate.subject if issuer else subject
    signing_key = issuer.key if issuer else key
    not_before = not_before or now() - timedelta(days=1)
    not_after = not_after or now() + timedelta(days=365)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if emails:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.RFC822Name(e) for e in emails]),
            critical=False,
        )
    if key_usage is not None:
        builder = builder.add_extension(
            x509.KeyUsage(**{bit: bit in key_usage for bit in _KEY_USAGE_BITS}),
            critical=True,
        )
    certificate = builder.sign(signing_key, hashes.SHA256())
    return Issued(certificate=certificate, key=key)


def make_ca(common_name: str = "Test Root CA", issuer: Issued | None = None) -> Issued:
    return make_certificate(common_name=common_name, issuer=issuer, key_usage=CA_USAGE, ca=True)


def add_certificate(
    store: InMemoryCertificateStore,
    issued: Issued,
    with_private_key: bool = False,
    secret: str | None = KEY_SECRET,
) -> CertificateRecord:
    """Import `issued` into `store` through the public import functions."""
    (record,) = import_certificates(store, issued.pem)
    if with_private_key:
        (record,) = import_private_keys(store, issued.key_pem(secret), secret)
    return record


@pytest.fixture()
def store() -> InMemoryCertificateStore:
    """A fresh, empty in-memory certificate store."""
    return InMemoryCertificateStore()


# ─────────────────────── S/MIME inspection ───────────────────────

SIGNATURE_TYPES = ("application/x-pkcs7-signature", "application/pkcs7-signature")
ENVELOPE_TYPES = ("application/x-pkcs7-mime", "application/pkcs7-mime")


def smime_part(smime: bytes, content_types: tuple[str, ...]) -> bytes:
    """Return the decoded payload of the first MIME part with one of `content_types`."""
    message = email.message_from_bytes(smime)
    for part in message.walk():
        if part.get_content_type() in content_types:
            return part.get_payload(decode=True)
    raise AssertionError(f"No {content_types} part in S/MIME output")


def signed_data_of(smime: bytes) -> cms.SignedData:
    content_info = cms.ContentInfo.load(smime_part(smime, SIGNATURE_TYPES))
    assert content_info["content_type"].native == "signed_data"
    return content_info["content"]


def enveloped_data_of(smime: bytes) -> cms.EnvelopedData:
    content_info = cms.ContentInfo.load(smime_part(smime, ENVELOPE_TYPES))
    assert content_info["content_type"].native == "enveloped_data"
    return content_info["content"]


def verify_detached_signature(signed_data: cms.SignedData, content: bytes, signer: x509.Certificate) -> None:
    """
    Check the first SignerInfo was produced by `signer` over `content`.

    Verifies messageDigest against SHA-256(content) and the RSA signature over
    the DER SET OF signed attributes.
    """
    signer_info = signed_data["signer_infos"][0]
    sid = signer_info["sid"].chosen
    assert sid["serial_number"].native == signer.serial_number

    attrs = {a["type"].native: a["values"][0].native for a in signer_info["signed_attrs"]}
    assert attrs["message_digest"] == hashlib.sha256(content).digest()

    signed_attrs_der = b"\x31" + signer_info["signed_attrs"].dump()[1:]
    signer.public_key().verify(
        signer_info["signature"].native,
        signed_attrs_der,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
