# database.py
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union

from fastapi import Request
from psycopg_pool import AsyncConnectionPool

from photostack.config import Settings
from photostack.crud import PostgresStore
from photostack.memory_store import MemoryDatabase, MemoryStore

logger = logging.getLogger(__name__)

Store = Union[PostgresStore, MemoryStore]

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        oid TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        display_name TEXT NOT NULL,
        role VARCHAR(20) DEFAULT 'consumer' NOT NULL CHECK (role IN ('creator', 'consumer')),
        avatar TEXT DEFAULT '' NOT NULL,
        bio VARCHAR(500) DEFAULT '' NOT NULL,
        photo_count INTEGER DEFAULT 0 NOT NULL,
        total_views INTEGER DEFAULT 0 NOT NULL,
        comment_count INTEGER DEFAULT 0 NOT NULL,
        rating_count INTEGER DEFAULT 0 NOT NULL,
        is_active BOOLEAN DEFAULT TRUE NOT NULL,
        last_login_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL
    );
    ''',
    '''
    CREATE TABLE IF NOT EXISTS photos (
        id TEXT PRIMARY KEY,
        creator_id TEXT NOT NULL,
        title VARCHAR(200) NOT NULL,
        caption TEXT DEFAULT '' NOT NULL,
        location TEXT DEFAULT '' NOT NULL,
        people TEXT[] DEFAULT '{}' NOT NULL,
        blob_url VARCHAR(500) NOT NULL,
        blob_name VARCHAR(500) NOT NULL,
        thumbnail_url VARCHAR(500) DEFAULT '' NOT NULL,
        mime_type VARCHAR(50) NOT NULL,
        file_size INTEGER NOT NULL,
        ai_tags TEXT[] DEFAULT '{}' NOT NULL,
        ai_description TEXT DEFAULT '' NOT NULL,
        dominant_colors TEXT[] DEFAULT '{}' NOT NULL,
        is_adult_content BOOLEAN DEFAULT FALSE NOT NULL,
        view_count INTEGER DEFAULT 0 NOT NULL,
        average_rating DOUBLE PRECISION DEFAULT 0 NOT NULL,
        rating_count INTEGER DEFAULT 0 NOT NULL,
        comment_count INTEGER DEFAULT 0 NOT NULL,
        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL
    );
    ''',
    '''
    CREATE TABLE IF NOT EXISTS comments (
        id TEXT PRIMARY KEY,
        photo_id TEXT NOT NULL REFERENCES photos(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL,
        user_display_name TEXT NOT NULL,
        content VARCHAR(1000) NOT NULL,
        sentiment VARCHAR(20) DEFAULT 'unknown' NOT NULL
            CHECK (sentiment IN ('positive', 'neutral', 'negative', 'unknown')),
        sentiment_score DOUBLE PRECISION DEFAULT 0 NOT NULL,
        is_edited BOOLEAN DEFAULT FALSE NOT NULL,
        is_deleted BOOLEAN DEFAULT FALSE NOT NULL,
        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL
    );
    ''',
    '''
    CREATE TABLE IF NOT EXISTS ratings (
        id TEXT PRIMARY KEY,
        photo_id TEXT NOT NULL REFERENCES photos(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL,
        value SMALLINT NOT NULL CHECK (value >= 1 AND value <= 5),
        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP NOT NULL,
        UNIQUE(photo_id, user_id)
    );
    ''',
    'CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);',
    'CREATE INDEX IF NOT EXISTS idx_photos_creator_id ON photos(creator_id);',
    'CREATE INDEX IF NOT EXISTS idx_photos_created_at ON photos(created_at DESC);',
    'CREATE INDEX IF NOT EXISTS idx_photos_rating ON photos(average_rating DESC, created_at DESC);',
    'CREATE INDEX IF NOT EXISTS idx_photos_location ON photos(location);',
    'CREATE INDEX IF NOT EXISTS idx_photos_people ON photos USING GIN (people);',
    'CREATE INDEX IF NOT EXISTS idx_photos_ai_tags ON photos USING GIN (ai_tags);',
    'CREATE INDEX IF NOT EXISTS idx_comments_photo ON comments(photo_id, created_at DESC);',
    'CREATE INDEX IF NOT EXISTS idx_comments_user ON comments(user_id, created_at DESC);',
    'CREATE INDEX IF NOT EXISTS idx_ratings_user_id ON ratings(user_id);',
)


class DatabaseManager:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self.pool: AsyncConnectionPool | None = None

    async def create_pool(self):
        """Create a connection pool to PostgreSQL using psycopg (async)"""
        if self.pool is not None:
            return self.pool

        # autocommit: each statement commits unless wrapped in store.transaction()
        self.pool = AsyncConnectionPool(
            conninfo=self.database_url,
            min_size=1,
            max_size=10,
            kwargs={"autocommit": True},
            open=False,
        )
        try:
            await self.pool.open(wait=True, timeout=5)
        except Exception:
            logger.exception("Failed to create database pool")
            await self.pool.close()
            self.pool = None
            raise
        logger.info("Database connection pool created")
        return self.pool

    async def close_pool(self):
        """Close the connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("Database connection pool closed")
            self.pool = None

    async def create_tables(self):
        """Create all tables and indexes if they do not exist yet"""
        async with self.pool.connection() as conn:
            async with conn.transaction():
                for statement in SCHEMA:
                    await conn.execute(statement)
        logger.info("Database tables created/verified successfully")

    async def startup(self):
        await self.create_pool()
        await self.create_tables()

    async def shutdown(self):
        await self.close_pool()

    @asynccontextmanager
    async def store(self) -> AsyncGenerator[PostgresStore, None]:
        """Borrow a pooled connection wrapped in a PostgresStore"""
        if not self.pool:
            await self.create_pool()

        async with self.pool.connection() as conn:
            yield PostgresStore(conn)


async def open_database(settings: Settings) -> Union[DatabaseManager, MemoryDatabase]:
    """Start the configured backend, falling back to mock mode outside production."""
    if settings.use_mock_db:
        database = MemoryDatabase()
        await database.startup()
        return database

    database = DatabaseManager(settings.database_url)
    try:
        await database.startup()
    except Exception:
        if settings.is_production:
            raise
        logger.warning("Falling back to MOCK DATABASE mode for development")
        database = MemoryDatabase()
        await database.startup()
    return database


# Dependency function for FastAPI
async def get_store(request: Request) -> AsyncGenerator[Store, None]:
    async with request.app.state.database.store() as store:
        yield store
