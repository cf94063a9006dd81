# ratings.py
"""Rating writes and the photo aggregate they keep in step.

A photo's ``average_rating`` and ``rating_count`` are always recomputed
from the full set of its ratings, inside the same transaction as the
rating write and the rater's ``rating_count`` change.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from photostack.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


@dataclass
class RatingResult:
    rating: Dict[str, Any]
    created: bool
    average_rating: float
    rating_count: int

    @property
    def photo_stats(self) -> Dict[str, Any]:
        return {"average_rating": round(self.average_rating, 2), "rating_count": self.rating_count}


def parse_rating_value(value: Any) -> int:
    """Accept ints and integral numeric strings in [1, 5]."""
    if isinstance(value, bool):
        raise ValidationError("Rating must be between 1 and 5")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError("Rating must be between 1 and 5")
    if not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError("Rating must be between 1 and 5")
    return value


def mean(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0.0


async def recompute_photo_rating(store, photo_id: str) -> tuple:
    values = await store.list_rating_values(photo_id)
    average = mean(values)
    await store.set_photo_rating_stats(photo_id, average, len(values))
    return average, len(values)


async def upsert_rating(store, photo_id: str, user_id: str, value: Any) -> RatingResult:
    value = parse_rating_value(value)

    async with store.transaction():
        # serializes concurrent votes on one photo until commit
        if await store.lock_photo(photo_id) is None:
            raise NotFound("Photo not found")

        rating, created = await store.upsert_rating(photo_id, user_id, value)
        if created:
            await store.increment_user_counter(user_id, "rating_count", 1)

        average, count = await recompute_photo_rating(store, photo_id)

    logger.info("Rating %s on photo %s by %s: %s",
                "added" if created else "updated", photo_id, user_id, value)
    return RatingResult(rating=rating, created=created, average_rating=average, rating_count=count)


async def remove_rating(store, photo_id: str, user_id: str) -> RatingResult:
    async with store.transaction():
        await store.lock_photo(photo_id)
        rating = await store.get_rating(photo_id, user_id)
        if rating is None:
            raise NotFound("Rating not found")

        await store.delete_rating(rating["id"])
        average, count = await recompute_photo_rating(store, photo_id)
        await store.increment_user_counter(user_id, "rating_count", -1)

    logger.info("Rating removed from photo %s by %s", photo_id, user_id)
    return RatingResult(rating=rating, created=False, average_rating=average, rating_count=count)


async def rating_summary(store, photo_id: str) -> Dict[str, Any]:
    values = await store.list_rating_values(photo_id)
    distribution = {score: 0 for score in range(MIN_RATING, MAX_RATING + 1)}
    for value in values:
        distribution[value] += 1
    return {
        "average": round(mean(values), 2),
        "total": len(values),
        "distribution": distribution,
    }
