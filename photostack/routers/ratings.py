# routers/ratings.py
from fastapi import APIRouter, Depends, Response, status

from photostack import auth_utils, ratings, schemas
from photostack.auth_utils import CurrentUser
from photostack.database import Store, get_store

router = APIRouter()


@router.get("/photos/{photo_id}/ratings")
async def get_photo_ratings(photo_id: str, store: Store = Depends(get_store)):
    """Average, count and 1-5 distribution of a photo's ratings."""
    summary = await ratings.rating_summary(store, photo_id)
    return {"success": True, "data": schemas.RatingSummary(**summary)}


@router.get("/photos/{photo_id}/ratings/me")
async def get_my_rating(
    photo_id: str,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
):
    rating = await store.get_rating(photo_id, current_user.oid)
    return {"success": True, "data": {"value": rating["value"]} if rating else None}


@router.post("/photos/{photo_id}/ratings")
async def add_or_update_rating(
    photo_id: str,
    rating: schemas.RatingCreate,
    response: Response,
    current_user: CurrentUser = Depends(auth_utils.require_consumer),
    store: Store = Depends(get_store),
):
    """Rate a photo 1-5; rating it again replaces your earlier vote."""
    result = await ratings.upsert_rating(store, photo_id, current_user.oid, rating.value)
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return {
        "success": True,
        "message": "Rating added successfully" if result.created else "Rating updated successfully",
        "data": {
            "rating": schemas.Rating(**result.rating),
            "photo_stats": schemas.PhotoRatingStats(**result.photo_stats),
        },
    }


@router.delete("/photos/{photo_id}/ratings")
async def delete_rating(
    photo_id: str,
    current_user: CurrentUser = Depends(auth_utils.get_current_user),
    store: Store = Depends(get_store),
):
    """Withdraw your rating of a photo."""
    result = await ratings.remove_rating(store, photo_id, current_user.oid)
    return {
        "success": True,
        "message": "Rating removed successfully",
        "data": {"photo_stats": schemas.PhotoRatingStats(**result.photo_stats)},
    }
