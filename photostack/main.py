# main.py
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import psycopg
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from photostack.auth_utils import TokenVerifier
from photostack.blob_storage import BlobStorage
from photostack.cognitive import ImageAnalyzer, SentimentAnalyzer
from photostack.config import Settings, settings as default_settings
from photostack.database import open_database
from photostack.errors import AppError
from photostack.routers import comments, photos, ratings, users

logger = logging.getLogger(__name__)

API_INDEX = {
    "photos": {
        "GET /api/photos": "Get all photos (paginated)",
        "GET /api/photos/search": "Search photos",
        "GET /api/photos/trending": "Get trending photos",
        "GET /api/photos/{id}": "Get photo by ID",
        "GET /api/photos/creator/{creator_id}": "Get photos by creator",
        "POST /api/photos": "Upload photo (Creator only)",
        "PUT /api/photos/{id}": "Update photo (Creator only)",
        "DELETE /api/photos/{id}": "Delete photo (Creator only)",
    },
    "users": {
        "GET /api/users/me": "Get current user profile",
        "PUT /api/users/me": "Update current user profile",
        "GET /api/users/me/stats": "Get user statistics",
        "POST /api/users/register": "Register new user",
        "GET /api/users/creators": "Get all creators",
        "GET /api/users/oid/{oid}": "Get user by identity provider id",
        "GET /api/users/{id}": "Get user by ID",
        "PUT /api/users/{id}/role": "Change user role",
    },
    "comments": {
        "GET /api/photos/{photo_id}/comments": "Get comments for photo",
        "POST /api/photos/{photo_id}/comments": "Add comment to photo",
        "PUT /api/comments/{id}": "Update comment",
        "DELETE /api/comments/{id}": "Delete comment",
        "GET /api/users/{user_id}/comments": "Get comments by user",
    },
    "ratings": {
        "GET /api/photos/{photo_id}/ratings": "Get ratings for photo",
        "GET /api/photos/{photo_id}/ratings/me": "Get my rating for photo",
        "POST /api/photos/{photo_id}/ratings": "Add/update rating",
        "DELETE /api/photos/{photo_id}/ratings": "Remove my rating",
    },
}


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error(exc.status_code, exc.error, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
        return _error(status.HTTP_400_BAD_REQUEST, "Validation Error", ", ".join(messages))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            return _error(404, "Not Found", f"Route {request.method} {request.url.path} not found")
        return _error(exc.status_code, str(exc.detail), str(exc.detail))

    @app.exception_handler(psycopg.errors.UniqueViolation)
    async def duplicate_key_handler(request: Request, exc: psycopg.errors.UniqueViolation):
        field = exc.diag.constraint_name or "record"
        return _error(status.HTTP_409_CONFLICT, "Conflict", f"{field} already exists")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = "An unexpected error occurred" if settings.is_production else str(exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", message)


def create_app(
    settings: Optional[Settings] = None,
    database=None,
    blob_storage: Optional[BlobStorage] = None,
    image_analyzer: Optional[ImageAnalyzer] = None,
    sentiment_analyzer: Optional[SentimentAnalyzer] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if database is not None:
            await database.startup()
            app.state.database = database
        else:
            app.state.database = await open_database(settings)
        logger.info("PhotoStack API started (%s)", settings.environment)
        yield

        await app.state.database.shutdown()

    app = FastAPI(
        title="PhotoStack API",
        description="Cloud-native photo sharing platform API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.token_verifier = token_verifier or TokenVerifier.from_settings(settings)
    app.state.blob_storage = blob_storage or BlobStorage(
        settings.azure_storage_connection_string, settings.azure_storage_container_name,
    )
    app.state.image_analyzer = image_analyzer or ImageAnalyzer(
        settings.azure_cognitive_endpoint, settings.azure_cognitive_key,
    )
    app.state.sentiment_analyzer = sentiment_analyzer or SentimentAnalyzer(
        settings.azure_text_analytics_endpoint, settings.azure_text_analytics_key,
    )

    origins = [origin.strip() for origin in settings.cors_origin.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        logger.info("%s %s | %s | %.0fms", request.method, request.url.path, response.status_code, duration)
        return response

    register_exception_handlers(app, settings)

    # Include routers
    app.include_router(photos.router, prefix="/api/photos", tags=["Photos"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(comments.router, prefix="/api", tags=["Comments"])
    app.include_router(ratings.router, prefix="/api", tags=["Ratings"])

    @app.get("/health")
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    @app.get("/api")
    async def api_index():
        return {
            "name": "PhotoStack API",
            "version": app.version,
            "description": app.description,
            "endpoints": API_INDEX,
        }

    return app
