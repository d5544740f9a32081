"""
Ports — Protocol-based interfaces for the certificate store and the log sink.

Domain ← Ports (protocols) ← Adapters (implementations)

Adapters satisfy a port by implementing its methods; no inheritance.
Write operations return Result so storage failures travel as values;
read operations return plain values and raise StoreError on I/O failure.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from smime_store.domain.models import CertificateRecord
from smime_store.result import Result


@runtime_checkable
class CertificateStore(Protocol):
    """
    Port: persisted collection of certificate records.

    Invariants the implementation must enforce itself (not the caller):
      - fingerprint is unique; a duplicate insert fails with DuplicateCertificate
        and leaves the store unchanged
      - scan() yields records ordered by not_after DESC, not_before DESC, id DESC
    """

    def insert(self, record: CertificateRecord) -> Result[CertificateRecord]:
        """Persist a new record; the returned record carries its store id."""
        ...

    def attach_private_key(
        self,
        record: CertificateRecord,
        private_key: str,
        secret: str | None,
    ) -> Result[CertificateRecord]:
        """Store a private key and its secret on an existing record."""
        ...

    def find_by_modulus(self, modulus: str) -> CertificateRecord | None: ...

    def find_by_subject(self, subject: str) -> CertificateRecord | None: ...

    def scan(
        self,
        batch_size: int,
        with_private_key: bool = False,
    ) -> Iterator[list[CertificateRecord]]:
        """
        Yield the store in default order, one page of at most `batch_size` records at a time.

        With `with_private_key=True`, only records carrying a private key are yielded.
        """
        ...


@runtime_checkable
class ProtectionLog(Protocol):
    """Port: sink for sign/encrypt outcomes, e.g. ("sign", "failed", "...")."""

    def log(self, operation: str, outcome: str, message: str) -> None: ...
