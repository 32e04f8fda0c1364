"""SQLite storage for collections and photo records."""

import json
import logging
import re
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from photo_gallery.errors import PersistenceError
from photo_gallery.processing.models import Collection, Photo, ProcessingStatus

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "collection"


class GalleryStore:
    """SQLite-based storage for collections and their photos.

    Writes that touch both a photo and its collection happen in a single
    transaction, so a photo is never persisted without its count update.
    """

    def __init__(self, db_path: str = "gallery.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that commits on success and rolls back on error."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Record store unavailable: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"Record store operation failed: {e}")
            raise PersistenceError(f"Record store operation failed: {e}") from e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database tables."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS collections (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    photo_count INTEGER NOT NULL DEFAULT 0,
                    cover_photo TEXT,  -- JSON object
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS photos (
                    id TEXT PRIMARY KEY,
                    collection_id TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    original_filename TEXT NOT NULL,
                    is_raw INTEGER NOT NULL,
                    raw_format TEXT,
                    width INTEGER NOT NULL DEFAULT 0,
                    height INTEGER NOT NULL DEFAULT 0,
                    variants TEXT NOT NULL,  -- JSON object
                    processing_status TEXT NOT NULL,
                    metadata TEXT,  -- JSON object
                    order_index INTEGER NOT NULL,
                    parent_id TEXT,
                    uploaded_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (collection_id) REFERENCES collections (id)
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_photos_collection ON photos(collection_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_collections_owner ON collections(owner_id)")

    def create_collection(self, owner_id: str, title: str) -> Collection:
        """Create an empty collection owned by ``owner_id``."""
        now = datetime.now()
        collection = Collection(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=title,
            slug=slugify(title),
            created_at=now,
            updated_at=now,
        )
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO collections (
                    id, owner_id, title, slug, photo_count, cover_photo, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                collection.id,
                collection.owner_id,
                collection.title,
                collection.slug,
                0,
                None,
                now.isoformat(),
                now.isoformat(),
            ))
        logger.info(f"Created collection {collection.id} for {owner_id}")
        return collection

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM collections WHERE id = ?", (collection_id,)).fetchone()
        return self._row_to_collection(row) if row else None

    def list_collections(self, owner_id: Optional[str] = None) -> List[Collection]:
        with self._connect() as conn:
            if owner_id is None:
                rows = conn.execute("SELECT * FROM collections ORDER BY created_at").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM collections WHERE owner_id = ? ORDER BY created_at", (owner_id,)
                ).fetchall()
        return [self._row_to_collection(row) for row in rows]

    def count_photos(self, collection_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM photos WHERE collection_id = ?", (collection_id,)
            ).fetchone()
        return row[0]

    def add_photo(self, photo: Photo) -> Photo:
        """Insert a photo and update its collection's count and cover.

        The cover is only set when the collection has none yet.
        """
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO photos (
                    id, collection_id, filename, original_filename, is_raw, raw_format,
                    width, height, variants, processing_status, metadata, order_index,
                    parent_id, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                photo.id,
                photo.collection_id,
                photo.filename,
                photo.original_filename,
                int(photo.is_raw),
                photo.raw_format,
                photo.width,
                photo.height,
                json.dumps(photo.variants),
                photo.processing_status.value,
                json.dumps(photo.metadata),
                photo.order_index,
                photo.parent_id,
                photo.uploaded_at.isoformat(),
            ))
            updated = conn.execute("""
                UPDATE collections SET
                    photo_count = photo_count + 1,
                    cover_photo = COALESCE(cover_photo, ?),
                    updated_at = ?
                WHERE id = ?
            """, (json.dumps(photo.cover_summary()), now, photo.collection_id))
            if updated.rowcount == 0:
                raise sqlite3.IntegrityError(f"collection {photo.collection_id} does not exist")
        logger.debug(f"Stored photo {photo.id} in collection {photo.collection_id}")
        return photo

    def get_photo(self, photo_id: str) -> Optional[Photo]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,)).fetchone()
        return self._row_to_photo(row) if row else None

    def list_photos(self, collection_id: str) -> List[Photo]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM photos WHERE collection_id = ? ORDER BY order_index, uploaded_at",
                (collection_id,),
            ).fetchall()
        return [self._row_to_photo(row) for row in rows]

    def update_photo(self, photo: Photo) -> Photo:
        """Persist the mutable fields of an existing photo."""
        with self._connect() as conn:
            updated = conn.execute("""
                UPDATE photos SET
                    variants = ?,
                    processing_status = ?,
                    metadata = ?,
                    width = ?,
                    height = ?
                WHERE id = ?
            """, (
                json.dumps(photo.variants),
                photo.processing_status.value,
                json.dumps(photo.metadata),
                photo.width,
                photo.height,
                photo.id,
            ))
            if updated.rowcount == 0:
                raise sqlite3.IntegrityError(f"photo {photo.id} does not exist")
        return photo

    def remove_photo(self, photo_id: str) -> Optional[Photo]:
        """Delete a photo record and fix up its collection's derived fields.

        Returns the removed photo, or None if it did not exist.
        """
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,)).fetchone()
            if row is None:
                return None
            photo = self._row_to_photo(row)
            conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))

            collection_row = conn.execute(
                "SELECT cover_photo FROM collections WHERE id = ?", (photo.collection_id,)
            ).fetchone()
            cover = json.loads(collection_row["cover_photo"]) if collection_row and collection_row["cover_photo"] else None
            if cover and cover.get("id") == photo_id:
                survivor = conn.execute("""
                    SELECT * FROM photos WHERE collection_id = ?
                    ORDER BY order_index, uploaded_at LIMIT 1
                """, (photo.collection_id,)).fetchone()
                cover = self._row_to_photo(survivor).cover_summary() if survivor else None

            conn.execute("""
                UPDATE collections SET
                    photo_count = MAX(photo_count - 1, 0),
                    cover_photo = ?,
                    updated_at = ?
                WHERE id = ?
            """, (
                json.dumps(cover) if cover else None,
                datetime.now().isoformat(),
                photo.collection_id,
            ))
        logger.info(f"Removed photo record {photo_id}")
        return photo

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        with self._connect() as conn:
            cursor = conn.cursor()

            stats = {}
            cursor.execute("SELECT COUNT(*) FROM collections")
            stats["total_collections"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM photos")
            stats["total_photos"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM photos WHERE is_raw = 1")
            stats["raw_photos"] = cursor.fetchone()[0]

            cursor.execute("SELECT processing_status, COUNT(*) FROM photos GROUP BY processing_status")
            stats["by_status"] = {status: count for status, count in cursor.fetchall()}

            return stats

    def _row_to_collection(self, row) -> Collection:
        """Convert database row to Collection."""
        return Collection(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            slug=row["slug"],
            photo_count=row["photo_count"],
            cover_photo=json.loads(row["cover_photo"]) if row["cover_photo"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_photo(self, row) -> Photo:
        """Convert database row to Photo."""
        return Photo(
            id=row["id"],
            collection_id=row["collection_id"],
            filename=row["filename"],
            original_filename=row["original_filename"],
            is_raw=bool(row["is_raw"]),
            raw_format=row["raw_format"],
            width=row["width"],
            height=row["height"],
            variants=json.loads(row["variants"]),
            processing_status=ProcessingStatus(row["processing_status"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            order_index=row["order_index"],
            parent_id=row["parent_id"],
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
        )
