# pagination.py
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Query

from photostack.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from photostack.errors import ValidationError

PHOTO_SORT_FIELDS = (
    "created_at", "updated_at", "title", "location",
    "view_count", "average_rating", "rating_count", "comment_count",
)
COMMENT_SORT_FIELDS = ("created_at", "updated_at", "sentiment_score")
CREATOR_SORT_FIELDS = (
    "created_at", "display_name", "photo_count", "total_views",
    "comment_count", "rating_count",
)

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class Pagination:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def envelope(self, data: List[Any], total: int) -> Dict[str, Any]:
        return {
            "success": True,
            "data": data,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": total,
                "pages": math.ceil(total / self.limit),
            },
        }


def get_pagination(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    return Pagination(page=page, limit=limit)


def parse_sort(sort: Optional[str], allowed: Sequence[str], default: str = "-created_at") -> Tuple[str, bool]:
    """Turn ``-createdAt`` / ``view_count`` style sort keys into (column, descending)."""
    sort = (sort or default).strip()
    descending = sort.startswith("-")
    field = _CAMEL.sub("_", sort.lstrip("-+")).lower()
    if field not in allowed:
        raise ValidationError(f"Invalid sort field '{field}'. Allowed: {', '.join(allowed)}")
    return field, descending
