"""
PostgreSQL certificate store adapter.

Implements the CertificateStore port using psycopg (v3) with parameterized
queries. No ORM — raw SQL for maximum control and transparency.

Invariants enforced by the database, not by application code:
  - UNIQUE (fingerprint): a concurrent double import of the same DER can
    never produce two rows; the loser gets DuplicateCertificate.

Scans use a server-side (named) cursor and fetchmany(batch_size), so the
resolver never materializes the whole table.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import psycopg
import structlog
from psycopg.rows import dict_row

from smime_store.domain.errors import DuplicateCertificate, StoreError
from smime_store.domain.models import CertificateRecord
from smime_store.result import ErrorCode, Result

log = structlog.get_logger()

DDL = """
CREATE TABLE IF NOT EXISTS smime_certificates (
    id                  BIGSERIAL PRIMARY KEY,
    subject             TEXT NOT NULL,
    issuer              TEXT NOT NULL,
    fingerprint         VARCHAR(64) NOT NULL,
    modulus             TEXT NOT NULL,
    not_before_at       TIMESTAMP WITH TIME ZONE NOT NULL,
    not_after_at        TIMESTAMP WITH TIME ZONE NOT NULL,
    raw                 TEXT NOT NULL,
    private_key         TEXT,
    private_key_secret  TEXT,
    created_at          TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at          TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    CONSTRAINT smime_certificates_fingerprint_key UNIQUE (fingerprint)
);
CREATE INDEX IF NOT EXISTS smime_certificates_modulus_idx ON smime_certificates (modulus);
CREATE INDEX IF NOT EXISTS smime_certificates_subject_idx ON smime_certificates (subject);
"""

_COLUMNS = """
    id, subject, issuer, fingerprint, modulus, not_before_at, not_after_at,
    raw, private_key, private_key_secret, created_at, updated_at
"""

_ORDER = "ORDER BY not_after_at DESC, not_before_at DESC, id DESC"

_INSERT = f"""
INSERT INTO smime_certificates (
    subject, issuer, fingerprint, modulus, not_before_at, not_after_at, raw
) VALUES (%s, %s, %s, %s, %s, %s, %s)
RETURNING {_COLUMNS}
"""

_ATTACH_KEY = f"""
UPDATE smime_certificates
SET private_key = %s, private_key_secret = %s, updated_at = now()
WHERE fingerprint = %s
RETURNING {_COLUMNS}
"""

_FIND_BY = "SELECT {columns} FROM smime_certificates WHERE {field} = %s {order} LIMIT 1"

_SCAN = "SELECT {columns} FROM smime_certificates {where} {order}"


def _row_to_record(row: dict[str, Any]) -> CertificateRecord:
    return CertificateRecord(
        id=row["id"],
        subject=row["subject"],
        issuer=row["issuer"],
        fingerprint=row["fingerprint"],
        modulus=row["modulus"],
        not_before=row["not_before_at"],
        not_after=row["not_after_at"],
        public_key=row["raw"],
        private_key=row["private_key"],
        private_key_secret=row["private_key_secret"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PsycopgCertificateStore:
    """
    Persist certificate records to PostgreSQL.

    Implements the CertificateStore port. Writes are wrapped with
    Result.from_computation(); reads raise StoreError on database failures.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def ensure_schema(self) -> Result[None]:
        """Create the certificate table and its indexes if they do not exist."""
        return Result.from_computation(
            self._create_schema,
            ErrorCode.DATABASE_ERROR,
            "Failed to create the certificate table",
        )

    def _create_schema(self) -> None:
        with psycopg.connect(self._dsn) as conn:
            conn.execute(DDL)
        log.info("repository.schema_ready")

    def insert(self, record: CertificateRecord) -> Result[CertificateRecord]:
        return Result.from_computation(
            lambda: self._insert(record),
            ErrorCode.DATABASE_ERROR,
            "Failed to persist certificate to database",
        )

    def _insert(self, record: CertificateRecord) -> CertificateRecord:
        """
        INSERT in its own transaction.

        On a fingerprint collision psycopg rolls the transaction back and the
        table is left exactly as it was.
        """
        try:
            with psycopg.connect(self._dsn, row_factory=dict_row) as conn, conn.cursor() as cur:
                cur.execute(
                    _INSERT,
                    (
                        record.subject,
                        record.issuer,
                        record.fingerprint,
                        record.modulus,
                        record.not_before,
                        record.not_after,
                        record.public_key,
                    ),
                )
                row = cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateCertificate(record.fingerprint) from e
        assert row is not None  # RETURNING always yields the inserted row
        log.info("repository.certificate_inserted", id=row["id"], fingerprint=record.fingerprint)
        return _row_to_record(row)

    def attach_private_key(
        self,
        record: CertificateRecord,
        private_key: str,
        secret: str | None,
    ) -> Result[CertificateRecord]:
        return Result.from_computation(
            lambda: self._attach(record.fingerprint, private_key, secret),
            ErrorCode.DATABASE_ERROR,
            "Failed to attach private key in database",
        )

    def _attach(self, fingerprint: str, private_key: str, secret: str | None) -> CertificateRecord:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn, conn.cursor() as cur:
            cur.execute(_ATTACH_KEY, (private_key, secret, fingerprint))
            row = cur.fetchone()
        if row is None:
            raise StoreError(f"No stored certificate with fingerprint {fingerprint}")
        log.info("repository.private_key_attached", id=row["id"], fingerprint=fingerprint)
        return _row_to_record(row)

    def find_by_modulus(self, modulus: str) -> CertificateRecord | None:
        return self._find_first("modulus", modulus)

    def find_by_subject(self, subject: str) -> CertificateRecord | None:
        return self._find_first("subject", subject)

    def _find_first(self, field: str, value: str) -> CertificateRecord | None:
        query = _FIND_BY.format(columns=_COLUMNS, field=field, order=_ORDER)
        try:
            with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
                row = conn.execute(query, (value,)).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to look up certificate by {field}") from e
        return _row_to_record(row) if row is not None else None

    def scan(
        self,
        batch_size: int,
        with_private_key: bool = False,
    ) -> Iterator[list[CertificateRecord]]:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        where = "WHERE private_key IS NOT NULL" if with_private_key else ""
        query = _SCAN.format(columns=_COLUMNS, where=where, order=_ORDER)
        try:
            with (
                psycopg.connect(self._dsn, row_factory=dict_row) as conn,
                conn.cursor(name="smime_certificate_scan") as cur,
            ):
                cur.execute(query)
                while rows := cur.fetchmany(batch_size):
                    yield [_row_to_record(row) for row in rows]
        except psycopg.Error as e:
            raise StoreError("Failed to scan certificates") from e
