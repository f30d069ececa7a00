"""Extraction cache repository — manifest and payload persistence.

The repository mediates between cache models and the SQLite database,
using PayloadCodec to serialize (and optionally encrypt) payloads. A load
cycle reads the manifest once, accumulates changes in memory, and hands
everything back through :meth:`ExtractionCacheRepository.commit_cycle` so
the persisted state is written in a single transaction.
"""

from __future__ import annotations

import logging
import sqlite3

from vitals.core.storage.codec import PayloadCodec, PayloadCodecError
from vitals.core.storage.database import CacheDatabase
from vitals.core.storage.models import CachedPayload, ManifestEntry

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository writes fail."""


class ExtractionCacheRepository:
    """Reads and writes the extraction manifest and per-domain payloads.

    Usage::

        db = CacheDatabase(":memory:")
        db.initialize()
        repo = ExtractionCacheRepository(db, PayloadCodec())

        manifest = repo.read_manifest()
        payload = repo.read_payload("bloodwork")
    """

    def __init__(self, database: CacheDatabase, codec: PayloadCodec) -> None:
        self._db = database
        self._codec = codec

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def read_manifest(self) -> dict[str, ManifestEntry]:
        """Return every manifest entry keyed by path; empty when unreadable."""
        try:
            rows = self._db.connection.execute(
                "SELECT path, hash, domain, last_extracted_at FROM manifest_entries"
            ).fetchall()
        except sqlite3.Error:
            logger.warning("Manifest unreadable; treating every document as new", exc_info=True)
            return {}
        return {
            row["path"]: ManifestEntry(
                path=row["path"],
                hash=row["hash"],
                domain=row["domain"],
                last_extracted_at=row["last_extracted_at"],
            )
            for row in rows
        }

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def read_payload(self, domain: str) -> CachedPayload | None:
        """Return the cached payload for a domain, or None on any miss.

        Undecodable payloads (wrong key, tampered token, invalid JSON) are
        cache misses, not errors.
        """
        try:
            row = self._db.connection.execute(
                """SELECT domain, source_path, source_hash, extracted_at, payload
                   FROM extraction_cache WHERE domain = ?""",
                (domain,),
            ).fetchone()
        except sqlite3.Error:
            logger.warning("Extraction cache unreadable for %s", domain, exc_info=True)
            return None
        if row is None:
            return None

        try:
            data = self._codec.decode(row["payload"])
        except PayloadCodecError as exc:
            logger.warning("Discarding corrupt %s cache payload: %s", domain, exc)
            return None

        return CachedPayload(
            domain=row["domain"],
            source_path=row["source_path"],
            source_hash=row["source_hash"],
            extracted_at=row["extracted_at"],
            data=data,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def commit_cycle(
        self,
        manifest: dict[str, ManifestEntry],
        payloads: list[CachedPayload],
    ) -> None:
        """Persist the manifest and new payloads of one load cycle atomically."""
        conn = self._db.connection
        try:
            with conn:
                for payload in payloads:
                    conn.execute(
                        """INSERT OR REPLACE INTO extraction_cache
                           (domain, source_path, source_hash, extracted_at, payload)
                           VALUES (?, ?, ?, ?, ?)""",
                        (
                            payload.domain,
                            payload.source_path,
                            payload.source_hash,
                            payload.extracted_at,
                            self._codec.encode(payload.data),
                        ),
                    )
                for entry in manifest.values():
                    conn.execute(
                        """INSERT OR REPLACE INTO manifest_entries
                           (path, hash, domain, last_extracted_at)
                           VALUES (?, ?, ?, ?)""",
                        (entry.path, entry.hash, entry.domain, entry.last_extracted_at),
                    )
        except (sqlite3.Error, PayloadCodecError) as exc:
            raise RepositoryError(f"Failed to persist extraction cache: {exc}") from exc

        logger.info(
            "Persisted extraction manifest (%d entries, %d new payloads)",
            len(manifest),
            len(payloads),
        )

    def clear_all(self) -> int:
        """Delete every manifest entry and payload. Returns entries removed."""
        conn = self._db.connection
        with conn:
            removed = conn.execute("DELETE FROM manifest_entries").rowcount
            conn.execute("DELETE FROM extraction_cache")
        logger.info("Cleared extraction cache (%d manifest entries)", removed)
        return removed

    def count_entries(self) -> int:
        cursor = self._db.connection.execute("SELECT COUNT(*) FROM manifest_entries")
        return cursor.fetchone()[0]
