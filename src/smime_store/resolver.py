"""
Certificate resolution — which stored certificate signs for a sender, which
ones encrypt to a set of recipients.

Both lookups walk the store page by page in its default order (newest
validity window first), so the first acceptable record is always the newest
eligible one: an old or expired certificate for an address can never shadow a
newer one.
"""

from __future__ import annotations

import structlog

from smime_store.domain.errors import CertificatesNotFound
from smime_store.domain.models import CertificateRecord, KeyUsage
from smime_store.domain.ports import CertificateStore
from smime_store.domain.usage import key_usage_prohibits

log = structlog.get_logger()

DEFAULT_BATCH_SIZE = 100


class CertificateResolver:
    def __init__(self, store: CertificateStore, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self._store = store
        self._batch_size = batch_size

    def resolve_sender(self, address: str) -> CertificateRecord | None:
        """
        Newest certificate with a private key that may sign for `address`.

        Certificates whose keyUsage excludes digitalSignature are skipped.
        Returns None when nothing matches.
        """
        wanted = address.lower()
        for batch in self._store.scan(self._batch_size, with_private_key=True):
            for certificate in batch:
                if key_usage_prohibits(certificate.parsed, KeyUsage.DIGITAL_SIGNATURE):
                    continue
                if wanted in certificate.email_addresses:
                    return certificate
        return None

    def resolve_recipients(self, addresses: list[str]) -> list[CertificateRecord]:
        """
        Certificates that together cover every address in `addresses`.

        A certificate is taken only if it matches at least one address still
        unresolved and its keyUsage allows keyEncipherment. The scan ends as
        soon as every address is covered.

        Raises CertificatesNotFound naming exactly the addresses left
        uncovered after the full scan.
        """
        remaining = _unique_lowercase(addresses)
        found: list[CertificateRecord] = []
        for batch in self._store.scan(self._batch_size):
            remaining = _consume(batch, remaining, found)
            if not remaining:
                return found

        if remaining:
            log.warning("resolver.recipients_unresolved", unresolved=len(remaining))
            raise CertificatesNotFound(remaining)
        return found


def _consume(
    batch: list[CertificateRecord],
    remaining: list[str],
    found: list[CertificateRecord],
) -> list[str]:
    """Accept matching certificates from one page; return the addresses still unresolved."""
    for certificate in batch:
        if not remaining:
            break
        matched = [a for a in remaining if a in certificate.email_addresses]
        if not matched:
            continue
        if key_usage_prohibits(certificate.parsed, KeyUsage.KEY_ENCIPHERMENT):
            continue
        found.append(certificate)
        remaining = [a for a in remaining if a not in matched]
    return remaining


def _unique_lowercase(addresses: list[str]) -> list[str]:
    return list(dict.fromkeys(a.lower() for a in addresses))
