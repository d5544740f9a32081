"""
In-process certificate store adapter.

Implements the CertificateStore port with a dict keyed by fingerprint.
A lock makes check-and-insert atomic, so the fingerprint uniqueness
invariant holds under concurrent imports just as the database constraint
does for PsycopgCertificateStore.

Used by the unit tests and by embedders that load certificates from files
at start-up instead of a database.
"""

from __future__ import annotations

import dataclasses
import itertools
import threading
from collections.abc import Iterator
from datetime import UTC, datetime

from smime_store.domain.errors import DuplicateCertificate, StoreError
from smime_store.domain.models import CertificateRecord
from smime_store.result import ErrorCode, Result


def _sort_key(record: CertificateRecord) -> tuple[datetime, datetime, int]:
    return (record.not_after, record.not_before, record.id or 0)


class InMemoryCertificateStore:
    """Thread-safe, non-persistent CertificateStore."""

    def __init__(self) -> None:
        self._records: dict[str, CertificateRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def insert(self, record: CertificateRecord) -> Result[CertificateRecord]:
        return Result.from_computation(
            lambda: self._insert(record),
            ErrorCode.DATABASE_ERROR,
            "Failed to store certificate",
        )

    def _insert(self, record: CertificateRecord) -> CertificateRecord:
        with self._lock:
            if record.fingerprint in self._records:
                raise DuplicateCertificate(record.fingerprint)
            now = datetime.now(UTC)
            stored = dataclasses.replace(
                record, id=next(self._ids), created_at=now, updated_at=now
            )
            self._records[stored.fingerprint] = stored
            return stored

    def attach_private_key(
        self,
        record: CertificateRecord,
        private_key: str,
        secret: str | None,
    ) -> Result[CertificateRecord]:
        return Result.from_computation(
            lambda: self._attach(record.fingerprint, private_key, secret),
            ErrorCode.DATABASE_ERROR,
            "Failed to attach private key",
        )

    def _attach(self, fingerprint: str, private_key: str, secret: str | None) -> CertificateRecord:
        with self._lock:
            current = self._records.get(fingerprint)
            if current is None:
                raise StoreError(f"No stored certificate with fingerprint {fingerprint}")
            updated = dataclasses.replace(
                current,
                private_key=private_key,
                private_key_secret=secret,
                updated_at=datetime.now(UTC),
            )
            self._records[fingerprint] = updated
            return updated

    def find_by_modulus(self, modulus: str) -> CertificateRecord | None:
        return next((r for r in self._ordered() if r.modulus == modulus), None)

    def find_by_subject(self, subject: str) -> CertificateRecord | None:
        return next((r for r in self._ordered() if r.subject == subject), None)

    def scan(
        self,
        batch_size: int,
        with_private_key: bool = False,
    ) -> Iterator[list[CertificateRecord]]:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        records = self._ordered()
        if with_private_key:
            records = [r for r in records if r.has_private_key]
        for start in range(0, len(records), batch_size):
            yield records[start : start + batch_size]

    def _ordered(self) -> list[CertificateRecord]:
        """Snapshot in default order: newest validity window first."""
        with self._lock:
            snapshot = list(self._records.values())
        return sorted(snapshot, key=_sort_key, reverse=True)
