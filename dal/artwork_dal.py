"""Async Data Access Layer for the ARTWORK table.

Provides ArtworkDAL with the async operations the record API needs,
compatible with `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence

import aiosqlite

from models.artwork_record import ArtworkRecord
from utils.database_init import AsyncDatabaseInitializer


class DuplicateSlugError(ValueError):
    """Raised when a slug is already used by another artwork."""


class ArtworkDAL:
    """Data access layer for ARTWORK records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "slug",
        "title",
        "description",
        "facts",
        "image_url",
        "created_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_artwork(self, record: ArtworkRecord) -> ArtworkRecord:
        """Insert a new ARTWORK row and return it with `created_at` filled in.

        Raises:
            DuplicateSlugError: If `record.slug` is already taken.
        """
        record.created_at = record.created_at or int(time.time())

        async with self._db.connection() as conn:
            try:
                await conn.execute(
                    f"INSERT INTO ARTWORK ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.slug,
                        record.title,
                        record.description,
                        record.facts,
                        record.image_url,
                        record.created_at,
                    ),
                )
            except aiosqlite.IntegrityError as exc:
                if "ARTWORK.slug" not in str(exc):
                    raise
                raise DuplicateSlugError(f"Slug already exists: {record.slug}") from exc
            await conn.commit()
        return record

    async def get_artwork_by_id(self, artwork_id: str) -> Optional[ArtworkRecord]:
        """Return the ArtworkRecord for `artwork_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM ARTWORK WHERE id = ?",
                (artwork_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def get_artwork_by_slug(self, slug: str) -> Optional[ArtworkRecord]:
        """Return the ArtworkRecord whose slug is `slug`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM ARTWORK WHERE slug = ?",
                (slug,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_artworks(self, limit: int = 100, offset: int = 0) -> List[ArtworkRecord]:
        """List ARTWORK rows, newest first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM ARTWORK ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ArtworkRecord:
        """Convert a DB row tuple into an ArtworkRecord."""
        return ArtworkRecord(
            id=row[0],
            slug=row[1],
            title=row[2],
            description=row[3],
            facts=row[4],
            image_url=row[5],
            created_at=row[6],
        )
