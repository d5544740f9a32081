"""
X.509 / PEM parser adapter — decoding of raw certificate and key material.

Uses cryptography (PyCA) for everything:
  - x509.load_pem_x509_certificate() for certificates
  - serialization.load_pem_private_key() for (encrypted) private keys
  - typed extension access for subjectAltName

Pipeline for raw input:
  raw text
    → extract_pem_blocks()          (regex, BEGIN/END armor)
    → parse_certificate()           (TRUSTED CERTIFICATE → CERTIFICATE, decode)
    → fingerprint / rsa_modulus / extract_email_addresses
"""

from __future__ import annotations

import base64
import re

import structlog
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.extensions import ExtensionNotFound

from smime_store.domain.errors import KeyDecryptionError, MalformedCertificate

log = structlog.get_logger()

_PEM_BLOCK = re.compile(r"-----BEGIN[^-]+-----.+?-----END[^-]+-----", re.DOTALL)
_TRUSTED_MARKER = re.compile(r"(?:TRUSTED\s)?(CERTIFICATE---)")
_TRUSTED_BODY = re.compile(
    r"-----BEGIN TRUSTED CERTIFICATE-----(.+?)-----END TRUSTED CERTIFICATE-----", re.DOTALL
)
_EMAIL_ADDRESS = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def extract_pem_blocks(raw: str) -> list[str]:
    """Return every BEGIN/END armored block in `raw`, in order of appearance."""
    return _PEM_BLOCK.findall(raw)


def parse_certificate(pem: str) -> x509.Certificate:
    """
    Decode a PEM certificate, accepting OpenSSL's TRUSTED CERTIFICATE armor.

    A trusted certificate is the DER certificate followed by X509_AUX trust
    settings; only the leading certificate is decoded, the trust data is
    dropped.

    Raises MalformedCertificate when the block cannot be decoded.
    """
    try:
        trusted = _TRUSTED_BODY.search(pem)
        if trusted:
            der = _first_der_element(base64.b64decode(trusted.group(1)))
            return x509.load_der_x509_certificate(der)
        normalized = _TRUSTED_MARKER.sub(r"\1", pem)
        return x509.load_pem_x509_certificate(normalized.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise MalformedCertificate(f"Unable to parse certificate: {e}") from e


def _first_der_element(der: bytes) -> bytes:
    """Slice the first DER TLV (tag, definite length, value) off `der`."""
    if len(der) < 2:
        raise ValueError("truncated DER element")
    length = der[1]
    offset = 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or len(der) < offset + count:
            raise ValueError("unsupported or truncated DER length")
        length = int.from_bytes(der[offset:offset + count], "big")
        offset += count
    end = offset + length
    if len(der) < end:
        raise ValueError("truncated DER element")
    return der[:end]


def fingerprint(cert: x509.Certificate) -> str:
    """Lowercase hex SHA-1 digest of the DER encoding."""
    return cert.fingerprint(hashes.SHA1()).hex()  # noqa: S303


def certificate_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def rsa_modulus(public_key: object) -> str:
    """Uppercase hex RSA modulus; the pairing key between certificates and private keys."""
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise MalformedCertificate(
            f"Only RSA keys are supported for S/MIME, got {type(public_key).__name__}"
        )
    return format(public_key.public_numbers().n, "X")


def load_private_key(pem: str, secret: str | None) -> rsa.RSAPrivateKey:
    """
    Decrypt a PEM private key with `secret`.

    Raises KeyDecryptionError for a wrong secret, corrupt material, or a
    non-RSA key. The secret never appears in the error.
    """
    password = secret.encode("utf-8") if secret else None
    try:
        key = serialization.load_pem_private_key(pem.encode("ascii"), password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm, UnicodeEncodeError) as e:
        raise KeyDecryptionError("Unable to decrypt the private key with the given secret.") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyDecryptionError(f"Only RSA private keys are supported, got {type(key).__name__}")
    return key


def extract_email_addresses(cert: x509.Certificate, **context: object) -> list[str]:
    """
    Collect the rfc822Name entries of the subjectAltName extension, lowercased.

    A certificate without the extension, or an entry that is not a plausible
    address, is useless for S/MIME; both are logged and skipped.
    """
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except ExtensionNotFound:
        log.warning("certificate.missing_subject_alt_name", **context)
        return []

    addresses: list[str] = []
    for value in san.value.get_values_for_type(x509.RFC822Name):
        address = value.strip().lower()
        if not _EMAIL_ADDRESS.match(address):
            log.warning("certificate.malformed_email_address", address=address, **context)
            continue
        addresses.append(address)
    return addresses
