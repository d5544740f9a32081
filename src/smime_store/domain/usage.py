"""
Usage policy — keyUsage restrictions for signing and encryption.

Follows RFC 5280 §4.2.1.3: when the keyUsage extension is present the key
may only be used for the purposes it lists; when it is absent, nothing is
restricted.
"""

from __future__ import annotations

from cryptography import x509
from cryptography.x509.extensions import ExtensionNotFound

from smime_store.domain.models import KeyUsage


def key_usage_prohibits(certificate: x509.Certificate, usage: KeyUsage) -> bool:
    """True when the certificate's keyUsage extension exists and lacks `usage`."""
    try:
        ext = certificate.extensions.get_extension_for_class(x509.KeyUsage)
    except ExtensionNotFound:
        return False
    return not getattr(ext.value, usage.value)
