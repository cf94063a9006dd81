# routers/comments.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from photostack import auth_utils, schemas
from photostack.auth_utils import CurrentUser
from photostack.cognitive import SentimentAnalyzer
from photostack.database import Store, get_store
from photostack.errors import NotFound, ValidationError
from photostack.pagination import COMMENT_SORT_FIELDS, Pagination, get_pagination, parse_sort
from photostack.services import get_sentiment_analyzer

router = APIRouter()


def _clean_content(comment: schemas.CommentCreate) -> str:
    content = comment.content.strip()
    if not content:
        raise ValidationError("Comment content is required")
    return content


async def _get_live_comment(store: Store, comment_id: str) -> Dict[str, Any]:
    comment = await store.get_comment(comment_id)
    if comment is None or comment["is_deleted"]:
        raise NotFound("Comment not found")
    return comment


@router.get("/photos/{photo_id}/comments")
async def list_comments_for_photo(
    photo_id: str,
    sort: Optional[str] = None,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    """List visible comments on a photo."""
    comments, total = await store.list_comments(
        skip=pagination.skip, limit=pagination.limit,
        sort=parse_sort(sort, COMMENT_SORT_FIELDS), photo_id=photo_id,
    )
    return pagination.envelope([schemas.Comment(**c) for c in comments], total)


@router.post("/photos/{photo_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment_to_photo(
    photo_id: str,
    comment: schemas.CommentCreate,
    current_user: CurrentUser = Depends(auth_utils.require_consumer),
    db_user: Optional[Dict[str, Any]] = Depends(auth_utils.load_user),
    store: Store = Depends(get_store),
    sentiment: SentimentAnalyzer = Depends(get_sentiment_analyzer),
):
    """Add a comment to a photo. Accessible by any registered user."""
    content = _clean_content(comment)
    if await store.get_photo(photo_id) is None:
        raise NotFound("Photo not found")

    display_name = (db_user or {}).get("display_name") or current_user.display_name or "Anonymous"
    result = await sentiment.analyze(content)

    async with store.transaction():
        db_comment = await store.create_comment(
            photo_id=photo_id,
            user_id=current_user.oid,
            user_display_name=display_name,
            content=content,
            sentiment=result.sentiment,
            sentiment_score=result.score,
        )
        await store.increment_photo_counter(photo_id, "comment_count", 1)
        await store.increment_user_counter(current_user.oid, "comment_count", 1)

    return {"success": True, "message": "Comment added successfully", "data": schemas.Comment(**db_comment)}


@router.put("/comments/{comment_id}")
async def update_comment(
    comment_id: str,
    comment: schemas.CommentCreate,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
    sentiment: SentimentAnalyzer = Depends(get_sentiment_analyzer),
):
    """Edit your own comment; its sentiment is scored again."""
    content = _clean_content(comment)
    db_comment = await _get_live_comment(store, comment_id)
    auth_utils.require_owner(db_comment["user_id"], current_user, "You can only edit your own comments")

    result = await sentiment.analyze(content)
    db_comment = await store.update_comment(
        comment_id,
        content=content,
        sentiment=result.sentiment,
        sentiment_score=result.score,
        is_edited=True,
    )
    return {"success": True, "message": "Comment updated successfully", "data": schemas.Comment(**db_comment)}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
):
    """Soft-delete your own comment."""
    db_comment = await _get_live_comment(store, comment_id)
    auth_utils.require_owner(db_comment["user_id"], current_user, "You can only delete your own comments")

    async with store.transaction():
        await store.update_comment(comment_id, is_deleted=True)
        await store.increment_photo_counter(db_comment["photo_id"], "comment_count", -1)
        await store.increment_user_counter(current_user.oid, "comment_count", -1)

    return {"success": True, "message": "Comment deleted successfully"}


@router.get("/users/{user_id}/comments")
async def list_comments_by_user(
    user_id: str,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    """List a user's visible comments with the photo each belongs to."""
    comments, total = await store.list_comments(
        skip=pagination.skip, limit=pagination.limit, sort=("created_at", True),
        user_id=user_id, with_photo=True,
    )
    return pagination.envelope([schemas.Comment(**c) for c in comments], total)
