# routers/users.py
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from photostack import auth_utils, schemas
from photostack.auth_utils import CurrentUser
from photostack.config import USER_ROLES
from photostack.database import Store, get_store
from photostack.errors import Conflict, NotFound, ValidationError
from photostack.pagination import CREATOR_SORT_FIELDS, Pagination, get_pagination, parse_sort

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_user(db_user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if db_user is None:
        raise NotFound("User not found")
    return db_user


@router.get("/me")
async def read_users_me(db_user: Optional[Dict[str, Any]] = Depends(auth_utils.load_user)):
    """Your own profile, created on first visit."""
    return {"success": True, "data": schemas.User(**_require_user(db_user))}


@router.put("/me")
async def update_users_me(
    update: schemas.UserUpdate,
    db_user: Optional[Dict[str, Any]] = Depends(auth_utils.load_user),
    store: Store = Depends(get_store),
):
    user = _require_user(db_user)
    fields = {k: v for k, v in update.model_dump(exclude_unset=True).items() if v is not None}
    user = await store.update_user(user["id"], **fields)
    return {"success": True, "message": "Profile updated successfully", "data": schemas.User(**user)}


@router.get("/me/stats")
async def read_users_me_stats(
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    db_user: Optional[Dict[str, Any]] = Depends(auth_utils.load_user),
    store: Store = Depends(get_store),
):
    """Recount your activity and refresh the cached counters on your profile."""
    user = _require_user(db_user)
    photo_stats = await store.creator_photo_stats(current_user.oid)
    comment_count = await store.count_user_comments(current_user.oid)
    rating_count = await store.count_user_ratings(current_user.oid)

    user = await store.update_user(
        user["id"],
        photo_count=photo_stats["photo_count"],
        total_views=photo_stats["total_views"],
        comment_count=comment_count,
        rating_count=rating_count,
    )
    stats = schemas.UserStats(
        role=user["role"],
        photo_count=photo_stats["photo_count"],
        total_views=photo_stats["total_views"],
        total_ratings=photo_stats["total_ratings"],
        comment_count=comment_count,
        rating_count=rating_count,
        member_since=user["created_at"],
        last_login=user["last_login_at"],
    )
    return {"success": True, "data": stats}


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    registration: schemas.UserRegister,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
):
    if await store.get_user_by_oid(current_user.oid) is not None:
        raise Conflict("User already registered")
    if not current_user.email:
        raise ValidationError("Token carries no email address")

    user = await store.create_user(
        oid=current_user.oid,
        email=current_user.email,
        display_name=registration.display_name or current_user.display_name or "User",
        role=current_user.role or "consumer",
        bio=registration.bio or "",
    )
    return {"success": True, "message": "User registered successfully", "data": schemas.User(**user)}


@router.get("/creators")
async def list_creators(
    sort: Optional[str] = None,
    pagination: Pagination = Depends(get_pagination),
    store: Store = Depends(get_store),
):
    """Active creators, most prolific first by default."""
    creators, total = await store.list_creators(
        skip=pagination.skip, limit=pagination.limit,
        sort=parse_sort(sort, CREATOR_SORT_FIELDS, default="-photo_count"),
    )
    return pagination.envelope([schemas.PublicUser(**c) for c in creators], total)


@router.get("/oid/{oid}")
async def get_user_by_oid(oid: str, store: Store = Depends(get_store)):
    user = _require_user(await store.get_user_by_oid(oid))
    return {"success": True, "data": schemas.UserProfile(**user)}


@router.get("/{user_id}")
async def get_user(user_id: str, store: Store = Depends(get_store)):
    user = _require_user(await store.get_user(user_id))
    return {"success": True, "data": schemas.PublicUser(**user)}


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: str,
    role_update: schemas.RoleUpdate,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
):
    """Switch a user between creator and consumer."""
    if role_update.role not in USER_ROLES:
        raise ValidationError('Invalid role. Must be "creator" or "consumer"')

    user = await store.update_user(user_id, role=role_update.role)
    if user is None:
        raise NotFound("User not found")
    logger.info("User %s set role of %s to %s", current_user.oid, user_id, role_update.role)
    return {"success": True, "message": f"User role updated to {role_update.role}", "data": schemas.User(**user)}
