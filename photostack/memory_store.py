# memory_store.py
"""In-process record store used in mock mode and by the test-suite.

Mirrors :class:`photostack.crud.PostgresStore` method for method so the
request handlers run unchanged against either backend.
"""
import copy
import itertools
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from photostack.crud import (
    COMMENT_FIELDS, PHOTO_COUNTERS, PHOTO_FIELDS, USER_COUNTERS, USER_FIELDS, _new_id,
)
from photostack.errors import Conflict
from photostack.schemas import PhotoQuery

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _contains(value: Optional[str], needle: str) -> bool:
    return needle.lower() in (value or "").lower()


def _sort_key(field: str) -> Callable[[Row], Tuple[bool, Any]]:
    def key(row: Row) -> Tuple[bool, Any]:
        value = row.get(field)
        return value is not None, value if value is not None else 0
    return key


class MemoryDatabase:
    """Holds the tables; hands out :class:`MemoryStore` views onto them."""

    def __init__(self):
        self.users: Dict[str, Row] = {}
        self.photos: Dict[str, Row] = {}
        self.comments: Dict[str, Row] = {}
        self.ratings: Dict[str, Row] = {}
        self._sequence = itertools.count()
        self.order: Dict[str, int] = {}

    async def startup(self):
        logger.info("Running in MOCK DATABASE mode - no real database connection")

    async def shutdown(self):
        pass

    @asynccontextmanager
    async def store(self) -> AsyncIterator["MemoryStore"]:
        yield MemoryStore(self)

    def insert(self, table: Dict[str, Row], row: Row) -> Row:
        table[row["id"]] = row
        self.order[row["id"]] = next(self._sequence)
        return row

    def remove(self, table: Dict[str, Row], row_id: str) -> Optional[Row]:
        self.order.pop(row_id, None)
        return table.pop(row_id, None)

    def snapshot(self) -> Tuple[Dict[str, Any], ...]:
        return copy.deepcopy((self.users, self.photos, self.comments, self.ratings, self.order))

    def restore(self, state: Tuple[Dict[str, Any], ...]) -> None:
        self.users, self.photos, self.comments, self.ratings, self.order = state


class MemoryStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryStore"]:
        state = self.db.snapshot()
        try:
            yield self
        except BaseException:
            self.db.restore(state)
            raise

    def _sorted(self, rows: List[Row], sort: Tuple[str, bool]) -> List[Row]:
        field, descending = sort
        # newest insert wins ties, as ORDER BY ..., id DESC would
        rows = sorted(rows, key=lambda row: self.db.order[row["id"]], reverse=True)
        return sorted(rows, key=_sort_key(field), reverse=descending)

    @staticmethod
    def _page(rows: List[Row], skip: int, limit: int) -> Tuple[List[Row], int]:
        return [copy.deepcopy(row) for row in rows[skip:skip + limit]], len(rows)

    @staticmethod
    def _find(table: Dict[str, Row], predicate: Callable[[Row], bool]) -> Optional[Row]:
        for row in table.values():
            if predicate(row):
                return row
        return None

    # --- User CRUD ---
    async def get_user(self, user_id: str) -> Optional[Row]:
        return copy.deepcopy(self.db.users.get(user_id))

    async def get_user_by_oid(self, oid: str) -> Optional[Row]:
        return copy.deepcopy(self._find(self.db.users, lambda u: u["oid"] == oid))

    async def get_user_by_email(self, email: str) -> Optional[Row]:
        return copy.deepcopy(self._find(self.db.users, lambda u: u["email"] == email))

    async def create_user(self, oid: str, email: str, display_name: str,
                          role: str = "consumer", bio: str = "") -> Row:
        if self._find(self.db.users, lambda u: u["oid"] == oid):
            raise Conflict("User already registered")
        if self._find(self.db.users, lambda u: u["email"] == email):
            raise Conflict("email already exists")
        now = _now()
        row = self.db.insert(self.db.users, {
            "id": _new_id(), "oid": oid, "email": email, "display_name": display_name,
            "role": role, "avatar": "", "bio": bio, "photo_count": 0, "total_views": 0,
            "comment_count": 0, "rating_count": 0, "is_active": True,
            "last_login_at": now, "created_at": now, "updated_at": now,
        })
        logger.info("Created user %s (%s)", email, role)
        return copy.deepcopy(row)

    async def update_user(self, user_id: str, **fields) -> Optional[Row]:
        user = self.db.users.get(user_id)
        if user is None:
            return None
        fields = {k: v for k, v in fields.items() if k in USER_FIELDS}
        for key in ("oid", "email"):
            if key in fields and self._find(
                self.db.users, lambda u: u[key] == fields[key] and u["id"] != user_id
            ):
                raise Conflict("User identity already in use")
        if fields:
            user.update(fields, updated_at=_now())
        return copy.deepcopy(user)

    async def increment_user_counter(self, oid: str, field: str, delta: int) -> None:
        if field not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {field}")
        user = self._find(self.db.users, lambda u: u["oid"] == oid)
        if user is not None:
            user[field] = max(user[field] + delta, 0)

    async def list_creators(self, skip: int, limit: int,
                            sort: Tuple[str, bool]) -> Tuple[List[Row], int]:
        rows = [u for u in self.db.users.values() if u["role"] == "creator" and u["is_active"]]
        return self._page(self._sorted(rows, sort), skip, limit)

    # --- Photo CRUD ---
    async def create_photo(self, creator_id: str, title: str, blob_url: str, blob_name: str,
                           mime_type: str, file_size: int, caption: str = "",
                           location: str = "", people: Optional[List[str]] = None,
                           ai_tags: Optional[List[str]] = None, ai_description: str = "",
                           dominant_colors: Optional[List[str]] = None,
                           is_adult_content: bool = False,
                           thumbnail_url: str = "") -> Row:
        now = _now()
        row = self.db.insert(self.db.photos, {
            "id": _new_id(), "creator_id": creator_id, "title": title, "caption": caption,
            "location": location, "people": list(people or []), "blob_url": blob_url,
            "blob_name": blob_name, "thumbnail_url": thumbnail_url, "mime_type": mime_type,
            "file_size": file_size, "ai_tags": list(ai_tags or []),
            "ai_description": ai_description, "dominant_colors": list(dominant_colors or []),
            "is_adult_content": is_adult_content, "view_count": 0, "average_rating": 0.0,
            "rating_count": 0, "comment_count": 0, "created_at": now, "updated_at": now,
        })
        logger.info("Created photo %s for creator %s", row["id"], creator_id)
        return copy.deepcopy(row)

    async def get_photo(self, photo_id: str) -> Optional[Row]:
        return copy.deepcopy(self.db.photos.get(photo_id))

    async def lock_photo(self, photo_id: str) -> Optional[Row]:
        # store calls never yield mid-write, so there is nothing to lock
        return await self.get_photo(photo_id)

    async def update_photo(self, photo_id: str, **fields) -> Optional[Row]:
        photo = self.db.photos.get(photo_id)
        if photo is None:
            return None
        fields = {k: v for k, v in fields.items() if k in PHOTO_FIELDS}
        if fields:
            photo.update(fields, updated_at=_now())
        return copy.deepcopy(photo)

    async def delete_photo(self, photo_id: str) -> bool:
        if self.db.remove(self.db.photos, photo_id) is None:
            return False
        for table in (self.db.comments, self.db.ratings):
            for row_id in [k for k, row in table.items() if row["photo_id"] == photo_id]:
                self.db.remove(table, row_id)
        logger.info("Deleted photo %s", photo_id)
        return True

    async def increment_photo_counter(self, photo_id: str, field: str, delta: int) -> Optional[Row]:
        if field not in PHOTO_COUNTERS:
            raise ValueError(f"Unknown photo counter: {field}")
        photo = self.db.photos.get(photo_id)
        if photo is None:
            return None
        photo[field] = max(photo[field] + delta, 0)
        return copy.deepcopy(photo)

    async def set_photo_rating_stats(self, photo_id: str, average_rating: float, rating_count: int) -> None:
        photo = self.db.photos.get(photo_id)
        if photo is not None:
            photo["average_rating"] = average_rating
            photo["rating_count"] = rating_count

    @staticmethod
    def _photo_matches(photo: Row, filters: PhotoQuery) -> bool:
        if filters.creator_id and photo["creator_id"] != filters.creator_id:
            return False
        if filters.location and not _contains(photo["location"], filters.location):
            return False
        if filters.search and not any(
            _contains(photo[key], filters.search) for key in ("title", "caption", "location")
        ):
            return False
        if filters.text and not any(
            _contains(photo[key], filters.text) for key in ("title", "caption", "ai_description")
        ):
            return False
        if filters.tags and not set(filters.tags) & set(photo["ai_tags"]):
            return False
        if filters.people and not set(filters.people) & set(photo["people"]):
            return False
        if filters.since and photo["created_at"] < filters.since:
            return False
        return True

    async def list_photos(self, filters: PhotoQuery, skip: int, limit: int,
                          sort: Tuple[str, bool]) -> Tuple[List[Row], int]:
        rows = [p for p in self.db.photos.values() if self._photo_matches(p, filters)]
        return self._page(self._sorted(rows, sort), skip, limit)

    async def list_trending(self, since: datetime, limit: int) -> List[Row]:
        rows = self._sorted(
            [p for p in self.db.photos.values() if p["created_at"] >= since],
            ("created_at", True),
        )
        rows.sort(key=lambda p: (p["view_count"], p["average_rating"]), reverse=True)
        return copy.deepcopy(rows[:limit])

    async def creator_photo_stats(self, creator_id: str) -> Dict[str, int]:
        photos = [p for p in self.db.photos.values() if p["creator_id"] == creator_id]
        return {
            "photo_count": len(photos),
            "total_views": sum(p["view_count"] for p in photos),
            "total_ratings": sum(p["rating_count"] for p in photos),
        }

    # --- Comment CRUD ---
    async def create_comment(self, photo_id: str, user_id: str, user_display_name: str,
                             content: str, sentiment: str = "unknown",
                             sentiment_score: float = 0) -> Row:
        now = _now()
        row = self.db.insert(self.db.comments, {
            "id": _new_id(), "photo_id": photo_id, "user_id": user_id,
            "user_display_name": user_display_name, "content": content,
            "sentiment": sentiment, "sentiment_score": sentiment_score,
            "is_edited": False, "is_deleted": False, "created_at": now, "updated_at": now,
        })
        return copy.deepcopy(row)

    async def get_comment(self, comment_id: str) -> Optional[Row]:
        """Fetch a comment by id, soft-deleted ones included."""
        return copy.deepcopy(self.db.comments.get(comment_id))

    async def update_comment(self, comment_id: str, **fields) -> Optional[Row]:
        comment = self.db.comments.get(comment_id)
        if comment is None:
            return None
        comment.update({k: v for k, v in fields.items() if k in COMMENT_FIELDS}, updated_at=_now())
        return copy.deepcopy(comment)

    async def list_comments(self, skip: int, limit: int, sort: Tuple[str, bool],
                            photo_id: Optional[str] = None, user_id: Optional[str] = None,
                            with_photo: bool = False) -> Tuple[List[Row], int]:
        rows = [
            c for c in self.db.comments.values()
            if not c["is_deleted"]
            and (photo_id is None or c["photo_id"] == photo_id)
            and (user_id is None or c["user_id"] == user_id)
        ]
        page, total = self._page(self._sorted(rows, sort), skip, limit)
        if with_photo:
            for row in page:
                photo = self.db.photos.get(row["photo_id"])
                if photo is not None:
                    row["photo"] = {"id": photo["id"], "title": photo["title"],
                                    "blob_url": photo["blob_url"]}
        return page, total

    async def count_user_comments(self, user_id: str) -> int:
        return sum(1 for c in self.db.comments.values()
                   if c["user_id"] == user_id and not c["is_deleted"])

    # --- Rating CRUD ---
    async def get_rating(self, photo_id: str, user_id: str) -> Optional[Row]:
        return copy.deepcopy(self._find(
            self.db.ratings, lambda r: r["photo_id"] == photo_id and r["user_id"] == user_id,
        ))

    async def upsert_rating(self, photo_id: str, user_id: str, value: int) -> Tuple[Row, bool]:
        rating = self._find(
            self.db.ratings, lambda r: r["photo_id"] == photo_id and r["user_id"] == user_id,
        )
        if rating is not None:
            rating.update(value=value, updated_at=_now())
            return copy.deepcopy(rating), False
        now = _now()
        row = self.db.insert(self.db.ratings, {
            "id": _new_id(), "photo_id": photo_id, "user_id": user_id, "value": value,
            "created_at": now, "updated_at": now,
        })
        return copy.deepcopy(row), True

    async def delete_rating(self, rating_id: str) -> bool:
        return self.db.remove(self.db.ratings, rating_id) is not None

    async def list_rating_values(self, photo_id: str) -> List[int]:
        return [r["value"] for r in self.db.ratings.values() if r["photo_id"] == photo_id]

    async def count_user_ratings(self, user_id: str) -> int:
        return sum(1 for r in self.db.ratings.values() if r["user_id"] == user_id)
