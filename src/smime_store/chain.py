"""
Issuer chain collection for inclusion in a signature.

This is not trust validation: it only gathers whatever stored certificates
link the signer to its root so recipients can build the path themselves.
"""

from __future__ import annotations

import structlog

from smime_store.domain.models import CertificateRecord
from smime_store.domain.ports import CertificateStore

log = structlog.get_logger()

MAX_CHAIN_LENGTH = 10


def build_chain(store: CertificateStore, certificate: CertificateRecord) -> list[CertificateRecord]:
    """
    Follow issuer → subject links through the store, starting at `certificate`'s issuer.

    Stops at a missing issuer, after including a self-signed root, on a
    subject seen before, or after MAX_CHAIN_LENGTH certificates. An incomplete
    chain is returned as is.

    A self-signed signer is its own issuer: the record stored under its
    subject is included once and the walk ends there.
    """
    chain: list[CertificateRecord] = []
    visited: set[str] = set()
    lookup_issuer = certificate.issuer

    while len(chain) < MAX_CHAIN_LENGTH:
        found = store.find_by_subject(lookup_issuer)
        if found is None:
            break
        if found.subject in visited:
            log.warning("chain.cycle_detected", subject=found.subject, length=len(chain))
            break
        chain.append(found)
        visited.add(found.subject)
        if found.is_self_signed:
            break
        lookup_issuer = found.issuer

    return chain
