# routers/photos.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from photostack import auth_utils, schemas
from photostack.auth_utils import CurrentUser
from photostack.blob_storage import BlobStorage
from photostack.cognitive import ImageAnalyzer
from photostack.config import ALLOWED_MIME_TYPES, Settings
from photostack.database import Store, get_store
from photostack.errors import NotFound, ValidationError
from photostack.pagination import PHOTO_SORT_FIELDS, Pagination, get_pagination, parse_sort
from photostack.services import get_blob_storage, get_image_analyzer, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

TRENDING_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


async def _get_photo_or_404(store: Store, photo_id: str) -> dict:
    photo = await store.get_photo(photo_id)
    if photo is None:
        raise NotFound("Photo not found")
    return photo


@router.get("")
async def list_photos(
    creator: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    """List photos, newest first unless ``sort`` says otherwise."""
    filters = schemas.PhotoQuery(creator_id=creator, location=location, search=search)
    photos, total = await store.list_photos(
        filters, skip=pagination.skip, limit=pagination.limit,
        sort=parse_sort(sort, PHOTO_SORT_FIELDS),
    )
    return pagination.envelope([schemas.Photo(**photo) for photo in photos], total)


@router.get("/search")
async def search_photos(
    q: Optional[str] = None,
    tags: Optional[str] = None,
    location: Optional[str] = None,
    people: Optional[str] = None,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    """Search by free text, AI tags, location and people."""
    filters = schemas.PhotoQuery(
        text=q,
        tags=schemas.split_csv(tags, lower=True),
        location=location,
        people=schemas.split_csv(people),
    )
    photos, total = await store.list_photos(
        filters, skip=pagination.skip, limit=pagination.limit, sort=("created_at", True),
    )
    return pagination.envelope([schemas.Photo(**photo) for photo in photos], total)


@router.get("/trending")
async def trending_photos(
    period: str = "week",
    limit: int = Query(10, ge=1, le=100),
    store: Store = Depends(get_store),
):
    """Most viewed, then best rated, photos uploaded within the period."""
    since = datetime.now(timezone.utc) - TRENDING_PERIODS.get(period, TRENDING_PERIODS["week"])
    photos = await store.list_trending(since=since, limit=limit)
    return {"success": True, "data": [schemas.Photo(**photo) for photo in photos]}


@router.get("/creator/{creator_id}")
async def list_creator_photos(
    creator_id: str,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    photos, total = await store.list_photos(
        schemas.PhotoQuery(creator_id=creator_id),
        skip=pagination.skip, limit=pagination.limit, sort=("created_at", True),
    )
    return pagination.envelope([schemas.Photo(**photo) for photo in photos], total)


@router.get("/{photo_id}")
async def get_photo(
    photo_id: str,
    viewer: Optional[CurrentUser] = Depends(auth_utils.get_optional_user),
    store: Store = Depends(get_store),
):
    """Fetch a photo and count the view."""
    photo = await store.increment_photo_counter(photo_id, "view_count", 1)
    if photo is None:
        raise NotFound("Photo not found")
    logger.debug("Photo %s viewed by %s", photo_id, viewer.oid if viewer else "anonymous")
    return {"success": True, "data": schemas.Photo(**photo)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_photo(
    title: str = Form(..., min_length=1, max_length=200),
    caption: str = Form(""),
    location: str = Form(""),
    people: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(auth_utils.require_creator),
    store: Store = Depends(get_store),
    storage: BlobStorage = Depends(get_blob_storage),
    analyzer: ImageAnalyzer = Depends(get_image_analyzer),
    settings: Settings = Depends(get_settings),
):
    """Upload an image and its metadata. Requires 'creator' role."""
    if image is None:
        raise ValidationError("No image file provided")
    if image.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"Invalid file type. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}")

    data = await image.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise ValidationError(
            f"File too large. Maximum size is {settings.max_file_size // (1024 * 1024)}MB"
        )
    if not data:
        raise ValidationError("No image file provided")

    blob = await storage.upload_image(data, image.filename, image.content_type, current_user.oid)
    analysis = await analyzer.analyze(blob.url)

    async with store.transaction():
        photo = await store.create_photo(
            creator_id=current_user.oid,
            title=title.strip(),
            caption=caption,
            location=location,
            people=schemas.parse_people(people),
            blob_url=blob.url,
            blob_name=blob.name,
            mime_type=image.content_type,
            file_size=len(data),
            ai_tags=analysis.tags,
            ai_description=analysis.description,
            dominant_colors=analysis.dominant_colors,
            is_adult_content=analysis.is_adult_content,
        )
        await store.increment_user_counter(current_user.oid, "photo_count", 1)

    return {"success": True, "message": "Photo uploaded successfully", "data": schemas.Photo(**photo)}


@router.put("/{photo_id}")
async def update_photo(
    photo_id: str,
    update: schemas.PhotoUpdate,
    current_user: CurrentUser = Depends(auth_utils.require_creator),
    store: Store = Depends(get_store),
):
    """Edit title, caption, location or people of your own photo."""
    photo = await _get_photo_or_404(store, photo_id)
    auth_utils.require_owner(photo["creator_id"], current_user, "You can only update your own photos")

    fields = update.model_dump(exclude_unset=True)
    if "people" in fields:
        fields["people"] = schemas.parse_people(fields["people"])
    if fields.get("title") is None:
        fields.pop("title", None)
    for key in ("caption", "location"):
        if key in fields and fields[key] is None:
            fields[key] = ""

    photo = await store.update_photo(photo_id, **fields)
    return {"success": True, "message": "Photo updated successfully", "data": schemas.Photo(**photo)}


@router.delete("/{photo_id}")
async def delete_photo(
    photo_id: str,
    current_user: CurrentUser = Depends(auth_utils.require_creator),
    store: Store = Depends(get_store),
    storage: BlobStorage = Depends(get_blob_storage),
):
    """Delete your own photo together with its comments and ratings."""
    photo = await _get_photo_or_404(store, photo_id)
    auth_utils.require_owner(photo["creator_id"], current_user, "You can only delete your own photos")

    try:
        await storage.delete_image(photo["blob_name"])
    except Exception as e:
        logger.error("Failed to delete blob %s: %s", photo["blob_name"], e)

    async with store.transaction():
        await store.delete_photo(photo_id)
        await store.increment_user_counter(photo["creator_id"], "photo_count", -1)

    return {"success": True, "message": "Photo deleted successfully"}
