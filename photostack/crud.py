# crud.py
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import psycopg
from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row

from photostack.errors import Conflict
from photostack.schemas import PhotoQuery

logger = logging.getLogger(__name__)

USER_FIELDS = {
    "oid", "email", "display_name", "role", "avatar", "bio", "photo_count",
    "total_views", "comment_count", "rating_count", "is_active", "last_login_at",
}
USER_COUNTERS = {"photo_count", "total_views", "comment_count", "rating_count"}
PHOTO_FIELDS = {
    "title", "caption", "location", "people", "thumbnail_url", "ai_tags",
    "ai_description", "dominant_colors", "is_adult_content",
}
PHOTO_COUNTERS = {"view_count", "comment_count"}
COMMENT_FIELDS = {"content", "sentiment", "sentiment_score", "is_edited", "is_deleted"}


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _order_by(sort: Tuple[str, bool], prefix: str = "") -> sql.Composed:
    field, descending = sort
    return sql.SQL("ORDER BY {} {}, {} DESC").format(
        sql.Identifier(*([prefix, field] if prefix else [field])),
        sql.SQL("DESC" if descending else "ASC"),
        sql.Identifier(*([prefix, "id"] if prefix else ["id"])),
    )


def _set_clause(fields: Dict[str, Any]) -> sql.Composed:
    return sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name))
        for name in fields
    )


class PostgresStore:
    """Record operations bound to a single pooled PostgreSQL connection."""

    def __init__(self, conn: AsyncConnection):
        self.conn = conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresStore"]:
        async with self.conn.transaction():
            yield self

    async def _fetchone(self, query, params=None) -> Optional[Dict[str, Any]]:
        async with self.conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(query, params)
            return await cursor.fetchone()

    async def _fetchall(self, query, params=None) -> List[Dict[str, Any]]:
        async with self.conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(query, params)
            return await cursor.fetchall()

    async def _execute(self, query, params=None) -> int:
        async with self.conn.cursor() as cursor:
            await cursor.execute(query, params)
            return cursor.rowcount

    # --- User CRUD ---
    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM users WHERE id = %s", (user_id,))

    async def get_user_by_oid(self, oid: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM users WHERE oid = %s", (oid,))

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM users WHERE email = %s", (email,))

    async def create_user(self, oid: str, email: str, display_name: str,
                          role: str = "consumer", bio: str = "") -> Dict[str, Any]:
        query = """
            INSERT INTO users (id, oid, email, display_name, role, bio)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        try:
            row = await self._fetchone(query, (_new_id(), oid, email, display_name, role, bio))
        except psycopg.errors.UniqueViolation as e:
            if "email" in str(e):
                raise Conflict("email already exists")
            raise Conflict("User already registered")
        logger.info("Created user %s (%s)", email, role)
        return row

    async def update_user(self, user_id: str, **fields) -> Optional[Dict[str, Any]]:
        fields = {k: v for k, v in fields.items() if k in USER_FIELDS}
        if not fields:
            return await self.get_user(user_id)
        fields["updated_at"] = _now()
        query = sql.SQL("UPDATE users SET {} WHERE id = {} RETURNING *").format(
            _set_clause(fields), sql.Placeholder("user_id"),
        )
        try:
            return await self._fetchone(query, {**fields, "user_id": user_id})
        except psycopg.errors.UniqueViolation:
            raise Conflict("User identity already in use")

    async def increment_user_counter(self, oid: str, field: str, delta: int) -> None:
        if field not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {field}")
        query = sql.SQL("UPDATE users SET {field} = GREATEST({field} + %s, 0) WHERE oid = %s").format(
            field=sql.Identifier(field),
        )
        await self._execute(query, (delta, oid))

    async def list_creators(self, skip: int, limit: int,
                            sort: Tuple[str, bool]) -> Tuple[List[Dict[str, Any]], int]:
        where = "WHERE role = 'creator' AND is_active"
        rows = await self._fetchall(
            sql.SQL("SELECT * FROM users " + where + " {} LIMIT %s OFFSET %s").format(_order_by(sort)),
            (limit, skip),
        )
        total = await self._fetchone("SELECT COUNT(*) AS total FROM users " + where)
        return rows, total["total"]

    # --- Photo CRUD ---
    async def create_photo(self, creator_id: str, title: str, blob_url: str, blob_name: str,
                           mime_type: str, file_size: int, caption: str = "",
                           location: str = "", people: Optional[List[str]] = None,
                           ai_tags: Optional[List[str]] = None, ai_description: str = "",
                           dominant_colors: Optional[List[str]] = None,
                           is_adult_content: bool = False,
                           thumbnail_url: str = "") -> Dict[str, Any]:
        query = """
            INSERT INTO photos (id, creator_id, title, caption, location, people, blob_url,
                                blob_name, thumbnail_url, mime_type, file_size, ai_tags,
                                ai_description, dominant_colors, is_adult_content)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        row = await self._fetchone(query, (
            _new_id(), creator_id, title, caption, location, people or [], blob_url,
            blob_name, thumbnail_url, mime_type, file_size, ai_tags or [],
            ai_description, dominant_colors or [], is_adult_content,
        ))
        logger.info("Created photo %s for creator %s", row["id"], creator_id)
        return row

    async def get_photo(self, photo_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM photos WHERE id = %s", (photo_id,))

    async def lock_photo(self, photo_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a photo and hold its row lock until the surrounding transaction ends."""
        return await self._fetchone("SELECT * FROM photos WHERE id = %s FOR UPDATE", (photo_id,))

    async def update_photo(self, photo_id: str, **fields) -> Optional[Dict[str, Any]]:
        fields = {k: v for k, v in fields.items() if k in PHOTO_FIELDS}
        if not fields:
            return await self.get_photo(photo_id)
        fields["updated_at"] = _now()
        query = sql.SQL("UPDATE photos SET {} WHERE id = {} RETURNING *").format(
            _set_clause(fields), sql.Placeholder("photo_id"),
        )
        return await self._fetchone(query, {**fields, "photo_id": photo_id})

    async def delete_photo(self, photo_id: str) -> bool:
        # comments and ratings go with it (ON DELETE CASCADE)
        deleted = await self._execute("DELETE FROM photos WHERE id = %s", (photo_id,))
        if deleted:
            logger.info("Deleted photo %s", photo_id)
        return deleted > 0

    async def increment_photo_counter(self, photo_id: str, field: str, delta: int) -> Optional[Dict[str, Any]]:
        if field not in PHOTO_COUNTERS:
            raise ValueError(f"Unknown photo counter: {field}")
        query = sql.SQL(
            "UPDATE photos SET {field} = GREATEST({field} + %s, 0) WHERE id = %s RETURNING *"
        ).format(field=sql.Identifier(field))
        return await self._fetchone(query, (delta, photo_id))

    async def set_photo_rating_stats(self, photo_id: str, average_rating: float, rating_count: int) -> None:
        await self._execute(
            "UPDATE photos SET average_rating = %s, rating_count = %s WHERE id = %s",
            (average_rating, rating_count, photo_id),
        )

    def _photo_where(self, filters: PhotoQuery) -> Tuple[sql.Composable, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if filters.creator_id:
            clauses.append("creator_id = %s")
            params.append(filters.creator_id)
        if filters.location:
            clauses.append("location ILIKE %s")
            params.append(f"%{filters.location}%")
        if filters.search:
            clauses.append("(title ILIKE %s OR caption ILIKE %s OR location ILIKE %s)")
            params.extend([f"%{filters.search}%"] * 3)
        if filters.text:
            clauses.append("(title ILIKE %s OR caption ILIKE %s OR ai_description ILIKE %s)")
            params.extend([f"%{filters.text}%"] * 3)
        if filters.tags:
            clauses.append("ai_tags && %s::text[]")
            params.append(filters.tags)
        if filters.people:
            clauses.append("people && %s::text[]")
            params.append(filters.people)
        if filters.since:
            clauses.append("created_at >= %s")
            params.append(filters.since)
        if not clauses:
            return sql.SQL(""), params
        return sql.SQL("WHERE " + " AND ".join(clauses)), params

    async def list_photos(self, filters: PhotoQuery, skip: int, limit: int,
                          sort: Tuple[str, bool]) -> Tuple[List[Dict[str, Any]], int]:
        where, params = self._photo_where(filters)
        rows = await self._fetchall(
            sql.SQL("SELECT * FROM photos {} {} LIMIT %s OFFSET %s").format(where, _order_by(sort)),
            [*params, limit, skip],
        )
        total = await self._fetchone(
            sql.SQL("SELECT COUNT(*) AS total FROM photos {}").format(where), params,
        )
        return rows, total["total"]

    async def list_trending(self, since: datetime, limit: int) -> List[Dict[str, Any]]:
        query = """
            SELECT * FROM photos
            WHERE created_at >= %s
            ORDER BY view_count DESC, average_rating DESC, created_at DESC
            LIMIT %s
        """
        return await self._fetchall(query, (since, limit))

    async def creator_photo_stats(self, creator_id: str) -> Dict[str, int]:
        query = """
            SELECT COUNT(*) AS photo_count,
                   COALESCE(SUM(view_count), 0) AS total_views,
                   COALESCE(SUM(rating_count), 0) AS total_ratings
            FROM photos WHERE creator_id = %s
        """
        row = await self._fetchone(query, (creator_id,))
        return {key: int(value) for key, value in row.items()}

    # --- Comment CRUD ---
    async def create_comment(self, photo_id: str, user_id: str, user_display_name: str,
                             content: str, sentiment: str = "unknown",
                             sentiment_score: float = 0) -> Dict[str, Any]:
        query = """
            INSERT INTO comments (id, photo_id, user_id, user_display_name, content,
                                  sentiment, sentiment_score)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
        """
        return await self._fetchone(query, (
            _new_id(), photo_id, user_id, user_display_name, content, sentiment, sentiment_score,
        ))

    async def get_comment(self, comment_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a comment by id, soft-deleted ones included."""
        return await self._fetchone("SELECT * FROM comments WHERE id = %s", (comment_id,))

    async def update_comment(self, comment_id: str, **fields) -> Optional[Dict[str, Any]]:
        fields = {k: v for k, v in fields.items() if k in COMMENT_FIELDS}
        fields["updated_at"] = _now()
        query = sql.SQL("UPDATE comments SET {} WHERE id = {} RETURNING *").format(
            _set_clause(fields), sql.Placeholder("comment_id"),
        )
        return await self._fetchone(query, {**fields, "comment_id": comment_id})

    async def list_comments(self, skip: int, limit: int, sort: Tuple[str, bool],
                            photo_id: Optional[str] = None, user_id: Optional[str] = None,
                            with_photo: bool = False) -> Tuple[List[Dict[str, Any]], int]:
        clauses = ["NOT c.is_deleted"]
        params: List[Any] = []
        if photo_id is not None:
            clauses.append("c.photo_id = %s")
            params.append(photo_id)
        if user_id is not None:
            clauses.append("c.user_id = %s")
            params.append(user_id)
        where = sql.SQL("WHERE " + " AND ".join(clauses))
        query = sql.SQL("""
            SELECT c.*, p.title AS photo_title, p.blob_url AS photo_blob_url
            FROM comments c
            LEFT JOIN photos p ON p.id = c.photo_id
            {} {} LIMIT %s OFFSET %s
        """).format(where, _order_by(sort, prefix="c"))
        rows = await self._fetchall(query, [*params, limit, skip])
        for row in rows:
            title = row.pop("photo_title", None)
            blob_url = row.pop("photo_blob_url", None)
            if with_photo and title is not None:
                row["photo"] = {"id": row["photo_id"], "title": title, "blob_url": blob_url}
        total = await self._fetchone(
            sql.SQL("SELECT COUNT(*) AS total FROM comments c {}").format(where), params,
        )
        return rows, total["total"]

    async def count_user_comments(self, user_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS total FROM comments WHERE user_id = %s AND NOT is_deleted",
            (user_id,),
        )
        return row["total"]

    # --- Rating CRUD ---
    async def get_rating(self, photo_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone(
            "SELECT * FROM ratings WHERE photo_id = %s AND user_id = %s", (photo_id, user_id),
        )

    async def upsert_rating(self, photo_id: str, user_id: str, value: int) -> Tuple[Dict[str, Any], bool]:
        """Insert or replace a user's rating; also reports whether the row is new."""
        query = """
            INSERT INTO ratings (id, photo_id, user_id, value)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (photo_id, user_id)
            DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP
            RETURNING *, (xmax = 0) AS created
        """
        row = await self._fetchone(query, (_new_id(), photo_id, user_id, value))
        created = row.pop("created")
        return row, created

    async def delete_rating(self, rating_id: str) -> bool:
        return await self._execute("DELETE FROM ratings WHERE id = %s", (rating_id,)) > 0

    async def list_rating_values(self, photo_id: str) -> List[int]:
        rows = await self._fetchall("SELECT value FROM ratings WHERE photo_id = %s", (photo_id,))
        return [row["value"] for row in rows]

    async def count_user_ratings(self, user_id: str) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS total FROM ratings WHERE user_id = %s", (user_id,))
        return row["total"]
