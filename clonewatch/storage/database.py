"""SQLite persistence for the baseline, watchlist and check history."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

from ..analyzer.models import (
    Baseline,
    CheckRecord,
    FeatureSet,
    Raster,
    SimilarityResult,
    Snapshot,
    ThreatLevel,
    WatchedDomain,
)
from ..errors import BaselineCorrupt, StorageFailure

logger = logging.getLogger(__name__)


def _normalize_domain(domain: str) -> str:
    return (domain or "").strip().lower()


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _parse_threat(value) -> Optional[ThreatLevel]:
    try:
        return ThreatLevel(value) if value else None
    except ValueError:
        return None


class Database:
    """Async SQLite store used by the baseline manager, checker and scheduler."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        """Establish database connection and create tables."""
        try:
            self._connection = await aiosqlite.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot open database {self.db_path}: {exc}") from exc
        self._connection.row_factory = aiosqlite.Row
        # Best-effort because some SQLite builds/settings may reject these pragmas.
        try:
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=5000")
            await self._connection.commit()
        except sqlite3.Error:
            pass
        await self._create_tables()

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize access and translate driver errors into StorageFailure."""
        if self._connection is None:
            raise StorageFailure(f"{operation}: database not connected")
        async with self._lock:
            try:
                yield self._connection
            except sqlite3.Error as exc:
                raise StorageFailure(f"{operation} failed: {exc}") from exc

    async def _create_tables(self):
        async with self._guard("create tables") as conn:
            await conn.executescript(
                """
                    CREATE TABLE IF NOT EXISTS baseline (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        source_url TEXT NOT NULL,
                        html TEXT NOT NULL,
                        visible_text TEXT NOT NULL,
                        screenshot BLOB NOT NULL,
                        features TEXT NOT NULL,
                        captured_at TIMESTAMP NOT NULL,
                        created_at TIMESTAMP NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS domains (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        domain TEXT UNIQUE NOT NULL,
                        similarity INTEGER DEFAULT 0,
                        threat_level TEXT,
                        last_checked TIMESTAMP,
                        screenshot TEXT,
                        added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS check_logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        domain TEXT NOT NULL,
                        similarity INTEGER NOT NULL,
                        text_similarity INTEGER NOT NULL,
                        visual_similarity INTEGER NOT NULL,
                        dom_similarity INTEGER NOT NULL,
                        keyword_similarity INTEGER NOT NULL,
                        threat_level TEXT NOT NULL,
                        screenshot TEXT,
                        checked_at TIMESTAMP NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_check_logs_domain
                        ON check_logs(domain, checked_at);
                """
            )
            await conn.commit()

    # Baseline

    async def get_baseline(self) -> Optional[Baseline]:
        """Load the persisted baseline, or None if it was never stored."""
        async with self._guard("get_baseline") as conn:
            cursor = await conn.execute("SELECT * FROM baseline WHERE id = 1")
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            snapshot = Snapshot(
                source_url=row["source_url"],
                html=row["html"],
                visible_text=row["visible_text"],
                screenshot=Raster.from_png(bytes(row["screenshot"])),
                captured_at=datetime.fromisoformat(row["captured_at"]),
            )
            features = FeatureSet.from_dict(json.loads(row["features"]))
            return Baseline(
                snapshot=snapshot,
                features=features,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        except Exception as exc:
            raise BaselineCorrupt(f"stored baseline is unreadable: {exc}") from exc

    async def put_baseline(self, baseline: Baseline) -> None:
        snapshot = baseline.snapshot
        async with self._guard("put_baseline") as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO baseline
                    (id, source_url, html, visible_text, screenshot, features, captured_at, created_at)
                VALUES (1, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.source_url,
                    snapshot.html,
                    snapshot.visible_text,
                    snapshot.screenshot.png,
                    json.dumps(baseline.features.as_dict(), sort_keys=True),
                    snapshot.captured_at.isoformat(),
                    baseline.created_at.isoformat(),
                ),
            )
            await conn.commit()

    # Watchlist

    async def add_domain(self, domain: str) -> bool:
        """Add a domain to the watchlist. Returns False if it already exists."""
        value = _normalize_domain(domain)
        if not value:
            raise ValueError("domain is required")
        async with self._guard("add_domain") as conn:
            try:
                await conn.execute("INSERT INTO domains (domain) VALUES (?)", (value,))
                await conn.commit()
                return True
            except sqlite3.IntegrityError:
                return False

    async def remove_domain(self, domain: str) -> bool:
        async with self._guard("remove_domain") as conn:
            cursor = await conn.execute(
                "DELETE FROM domains WHERE domain = ?", (_normalize_domain(domain),)
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def list_watched_domains(self) -> list[str]:
        async with self._guard("list_watched_domains") as conn:
            cursor = await conn.execute("SELECT domain FROM domains ORDER BY id")
            rows = await cursor.fetchall()
        return [row["domain"] for row in rows]

    @staticmethod
    def _row_to_watched(row) -> WatchedDomain:
        return WatchedDomain(
            domain=row["domain"],
            current_similarity=int(row["similarity"] or 0),
            last_checked_at=_parse_ts(row["last_checked"]),
            current_screenshot_ref=row["screenshot"],
            current_threat_level=_parse_threat(row["threat_level"]),
            added_at=_parse_ts(row["added_at"]),
        )

    async def get_watched_domains(self) -> list[WatchedDomain]:
        async with self._guard("get_watched_domains") as conn:
            cursor = await conn.execute("SELECT * FROM domains ORDER BY added_at DESC, id DESC")
            rows = await cursor.fetchall()
        return [self._row_to_watched(row) for row in rows]

    async def get_watched_domain(self, domain: str) -> Optional[WatchedDomain]:
        async with self._guard("get_watched_domain") as conn:
            cursor = await conn.execute(
                "SELECT * FROM domains WHERE domain = ?", (_normalize_domain(domain),)
            )
            row = await cursor.fetchone()
        return self._row_to_watched(row) if row else None

    # Check results

    async def record_check(self, record: CheckRecord) -> bool:
        """Append the check log and apply it to the watchlist entry in one transaction.

        Returns False when the domain is not watched (the log row is still
        written). On failure neither write is kept.
        """
        result = record.result
        async with self._guard("record_check") as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO check_logs (
                        domain, similarity, text_similarity, visual_similarity,
                        dom_similarity, keyword_similarity, threat_level, screenshot, checked_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _normalize_domain(record.domain),
                        result.composite,
                        result.text_similarity,
                        result.visual_similarity,
                        result.dom_similarity,
                        result.keyword_similarity,
                        result.threat_level.value,
                        record.screenshot_ref,
                        record.checked_at.isoformat(),
                    ),
                )
                cursor = await conn.execute(
                    """
                    UPDATE domains
                    SET similarity = ?, threat_level = ?, last_checked = ?, screenshot = ?
                    WHERE domain = ?
                    """,
                    (
                        result.composite,
                        result.threat_level.value,
                        record.checked_at.isoformat(),
                        record.screenshot_ref,
                        _normalize_domain(record.domain),
                    ),
                )
                await conn.commit()
            except sqlite3.Error:
                await conn.rollback()
                raise
            updated = cursor.rowcount > 0
        if not updated:
            logger.debug("Check for %s is not on the watchlist; state not updated", record.domain)
        return updated

    async def get_check_logs(self, domain: Optional[str] = None, limit: int = 50) -> list[CheckRecord]:
        """Most recent check records first."""
        query = "SELECT * FROM check_logs"
        params: list = []
        if domain:
            query += " WHERE domain = ?"
            params.append(_normalize_domain(domain))
        query += " ORDER BY checked_at DESC, id DESC LIMIT ?"
        params.append(max(1, int(limit)))

        async with self._guard("get_check_logs") as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        records = []
        for row in rows:
            records.append(
                CheckRecord(
                    domain=row["domain"],
                    result=SimilarityResult(
                        text_similarity=row["text_similarity"],
                        visual_similarity=row["visual_similarity"],
                        dom_similarity=row["dom_similarity"],
                        keyword_similarity=row["keyword_similarity"],
                        composite=row["similarity"],
                        threat_level=_parse_threat(row["threat_level"]) or ThreatLevel.LOW,
                    ),
                    screenshot_ref=row["screenshot"] or "",
                    checked_at=_parse_ts(row["checked_at"]),
                )
            )
        return records
