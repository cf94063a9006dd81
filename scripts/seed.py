"""Seed the configured PostgreSQL database with sample creators, consumers and photos.

Usage: python scripts/seed.py
"""
import asyncio
import logging
from typing import Tuple

from photostack.config import settings
from photostack.database import DatabaseManager
from photostack.schemas import PhotoQuery

logger = logging.getLogger("seed")

SEED_USERS = [
    {"oid": "creator-001", "email": "creator1@example.com", "display_name": "John Creator",
     "role": "creator", "bio": "Professional photographer sharing my work"},
    {"oid": "creator-002", "email": "creator2@example.com", "display_name": "Jane Artist",
     "role": "creator", "bio": "Nature and landscape photography"},
    {"oid": "consumer-001", "email": "consumer1@example.com", "display_name": "Bob Viewer",
     "role": "consumer", "bio": "Photography enthusiast"},
    {"oid": "consumer-002", "email": "consumer2@example.com", "display_name": "Alice Fan",
     "role": "consumer", "bio": "Love discovering new photographers"},
]

SEED_PHOTOS = [
    {"creator_id": "creator-001", "title": "Sunset at the Beach",
     "caption": "Beautiful sunset captured at Malibu beach", "location": "Malibu, CA",
     "blob_url": "https://images.unsplash.com/photo-1507525428034-b723cf961d3e?w=800",
     "blob_name": "creator-001/sample1.jpg", "ai_tags": ["sunset", "beach", "ocean", "sky"],
     "ai_description": "A beautiful sunset over the ocean",
     "dominant_colors": ["orange", "blue", "purple"]},
    {"creator_id": "creator-001", "title": "Mountain Peak",
     "caption": "Reached the summit after a 6-hour hike", "location": "Rocky Mountains, CO",
     "blob_url": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=800",
     "blob_name": "creator-001/sample2.jpg", "ai_tags": ["mountain", "snow", "sky", "nature"],
     "ai_description": "A snowy mountain peak under a clear sky",
     "dominant_colors": ["white", "blue"]},
    {"creator_id": "creator-002", "title": "City Lights",
     "caption": "Downtown after the rain", "location": "New York, NY", "people": ["Sam"],
     "blob_url": "https://images.unsplash.com/photo-1477959858617-67f85cf4f1df?w=800",
     "blob_name": "creator-002/sample3.jpg", "ai_tags": ["city", "night", "building"],
     "ai_description": "A city skyline lit up at night",
     "dominant_colors": ["black", "yellow"]},
]


async def seed_store(store) -> Tuple[int, int]:
    """Add the sample users and photos that are not there yet; returns (users, photos) added."""
    users_added = photos_added = 0
    for user in SEED_USERS:
        if await store.get_user_by_oid(user["oid"]) is None:
            await store.create_user(**user)
            users_added += 1

    seeded_creators = set()
    for creator_id in {photo["creator_id"] for photo in SEED_PHOTOS}:
        _, total = await store.list_photos(
            PhotoQuery(creator_id=creator_id), skip=0, limit=1, sort=("created_at", True),
        )
        if total:
            seeded_creators.add(creator_id)

    for photo in SEED_PHOTOS:
        if photo["creator_id"] in seeded_creators:
            continue
        async with store.transaction():
            await store.create_photo(mime_type="image/jpeg", file_size=1024000, **photo)
            await store.increment_user_counter(photo["creator_id"], "photo_count", 1)
        photos_added += 1
    return users_added, photos_added


async def seed():
    database = DatabaseManager(settings.database_url)
    await database.startup()
    try:
        async with database.store() as store:
            users_added, photos_added = await seed_store(store)
        logger.info("Seeded %d users and %d photos", users_added, photos_added)
    finally:
        await database.shutdown()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())
