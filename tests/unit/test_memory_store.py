"""
Unit tests for InMemoryCertificateStore.

Verifies the CertificateStore port contract that every adapter must honor:
fingerprint uniqueness, newest-first ordering, batched scans, private-key
filtering, and atomic check-and-insert under concurrency.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from smime_store.adapters.memory_store import InMemoryCertificateStore
from smime_store.domain.errors import DuplicateCertificate, StoreError
from smime_store.domain.ports import CertificateStore
from smime_store.importer import record_from_pem
from smime_store.result import ErrorCode
from tests.conftest import make_certificate, now


def _flatten(store: InMemoryCertificateStore, batch_size: int = 100, **kwargs: bool) -> list[str]:
    return [r.fingerprint for batch in store.scan(batch_size, **kwargs) for r in batch]


class TestInsert:
    def test_satisfies_port(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN an InMemoryCertificateStore
        WHEN checked against the CertificateStore protocol
        THEN it is a structural match.
        """
        assert isinstance(store, CertificateStore)

    def test_insert_assigns_id(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN a parsed, unsaved record
        WHEN inserted into an empty store
        THEN the stored copy gets id 1 and a creation timestamp.
        """
        record = record_from_pem(make_certificate(["a@example.com"]).pem)
        stored = store.insert(record).value()
        assert stored.id == 1
        assert stored.created_at is not None
        assert stored.fingerprint == record.fingerprint

    def test_duplicate_fingerprint_fails_and_leaves_store_unchanged(
        self, store: InMemoryCertificateStore
    ) -> None:
        """
        GIVEN a stored certificate
        WHEN the identical DER is inserted again
        THEN the Result fails with BUSINESS_RULE_ERROR / DuplicateCertificate
        AND the store still holds exactly one record.
        """
        record = record_from_pem(make_certificate(["a@example.com"]).pem)
        store.insert(record).value()

        result = store.insert(record)

        assert result.is_failure()
        assert result.error().code is ErrorCode.BUSINESS_RULE_ERROR
        assert isinstance(result.error().exception, DuplicateCertificate)
        assert len(store) == 1

    def test_concurrent_duplicate_inserts_store_once(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN the same record inserted from eight threads at once
        WHEN all sixteen inserts race
        THEN exactly one succeeds and one record is stored.
        """
        record = record_from_pem(make_certificate(["a@example.com"]).pem)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: store.insert(record), range(16)))
        assert sum(r.is_success() for r in results) == 1
        assert len(store) == 1


class TestAttachPrivateKey:
    def test_attach_returns_updated_record(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN a stored certificate
        WHEN a private key and secret are attached
        THEN the returned record carries them and replaces the stored one.
        """
        stored = store.insert(record_from_pem(make_certificate(["a@example.com"]).pem)).value()
        updated = store.attach_private_key(stored, "KEY PEM", "secret").value()
        assert updated.private_key == "KEY PEM"
        assert updated.private_key_secret == "secret"
        assert store.find_by_modulus(stored.modulus) == updated

    def test_attach_to_unknown_record_fails(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN a record that was never inserted
        WHEN a private key is attached to it
        THEN the Result fails with DATABASE_ERROR / StoreError.
        """
        record = record_from_pem(make_certificate(["a@example.com"]).pem)
        result = store.attach_private_key(record, "KEY PEM", None)
        assert result.error().code is ErrorCode.DATABASE_ERROR
        assert isinstance(result.error().exception, StoreError)


class TestOrdering:
    def test_scan_is_newest_validity_first(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN three certificates with different validity windows
        WHEN scanned
        THEN they come back ordered by not_after DESC, then not_before DESC.
        """
        t = now()
        old = make_certificate(["a@example.com"], not_before=t - timedelta(days=400), not_after=t - timedelta(days=30))
        current = make_certificate(["a@example.com"], not_before=t - timedelta(days=10), not_after=t + timedelta(days=300))
        same_end_later_start = make_certificate(
            ["a@example.com"], not_before=t - timedelta(days=5), not_after=t + timedelta(days=300)
        )
        for issued in (old, current, same_end_later_start):
            store.insert(record_from_pem(issued.pem)).value()

        assert _flatten(store) == [
            same_end_later_start.fingerprint,
            current.fingerprint,
            old.fingerprint,
        ]

    def test_identical_windows_fall_back_to_id_desc(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN two certificates with identical validity windows
        WHEN scanned
        THEN the later insert (higher id) comes first.
        """
        t = now()
        first = make_certificate(["a@example.com"], not_before=t, not_after=t + timedelta(days=1))
        second = make_certificate(["a@example.com"], not_before=t, not_after=t + timedelta(days=1))
        store.insert(record_from_pem(first.pem)).value()
        store.insert(record_from_pem(second.pem)).value()
        assert _flatten(store) == [second.fingerprint, first.fingerprint]

    def test_find_by_subject_returns_newest(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN two certificates with the same subject
        WHEN looked up by subject
        THEN the one with the later not_after is returned.
        """
        t = now()
        old = make_certificate(common_name="Same", not_after=t + timedelta(days=1))
        new = make_certificate(common_name="Same", not_after=t + timedelta(days=100))
        store.insert(record_from_pem(old.pem)).value()
        store.insert(record_from_pem(new.pem)).value()
        found = store.find_by_subject(new.subject)
        assert found is not None
        assert found.fingerprint == new.fingerprint

    def test_find_misses_return_none(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN an empty store
        WHEN looked up by subject or modulus
        THEN None is returned.
        """
        assert store.find_by_subject("CN=nobody") is None
        assert store.find_by_modulus("ABCDEF") is None


class TestScan:
    def test_batches_bound_page_size(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN five stored certificates
        WHEN scanned with batch_size=2
        THEN pages of 2, 2 and 1 records are yielded.
        """
        for _ in range(5):
            store.insert(record_from_pem(make_certificate(["a@example.com"]).pem)).value()
        sizes = [len(batch) for batch in store.scan(2)]
        assert sizes == [2, 2, 1]

    def test_private_key_filter(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN one certificate with a private key and one without
        WHEN scanned with with_private_key=True
        THEN only the keyed certificate is yielded.
        """
        plain = store.insert(record_from_pem(make_certificate(["a@example.com"]).pem)).value()
        keyed = store.insert(record_from_pem(make_certificate(["b@example.com"]).pem)).value()
        store.attach_private_key(keyed, "KEY PEM", None).value()

        assert _flatten(store, with_private_key=True) == [keyed.fingerprint]
        assert set(_flatten(store)) == {plain.fingerprint, keyed.fingerprint}

    def test_empty_store_yields_nothing(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN an empty store
        WHEN scanned
        THEN no batches are yielded.
        """
        assert list(store.scan(10)) == []

    def test_rejects_non_positive_batch_size(self, store: InMemoryCertificateStore) -> None:
        """
        GIVEN batch_size=0
        WHEN a scan is consumed
        THEN ValueError is raised.
        """
        with pytest.raises(ValueError):
            list(store.scan(0))
