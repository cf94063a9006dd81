import pytest

from photostack.errors import ValidationError
from photostack.pagination import PHOTO_SORT_FIELDS, Pagination, parse_sort
from photostack.schemas import parse_people, split_csv


@pytest.mark.parametrize("value, expected", [
    ("Ana, Rui ,, Eva", ["Ana", "Rui", "Eva"]),
    ('["Ana", " Rui ", null]', ["Ana", "Rui"]),
    (["Ana", None, "", 7], ["Ana", "7"]),
    ("[not json", []),
    ("  ", []),
    ("", []),
    (None, []),
    (42, []),
])
def test_parse_people(value, expected):
    assert parse_people(value) == expected


def test_split_csv():
    assert split_csv(" Beach,SUNSET ,,", lower=True) == ["beach", "sunset"]
    assert split_csv("Ana,Rui") == ["Ana", "Rui"]
    assert split_csv(None) == []


@pytest.mark.parametrize("sort, expected", [
    (None, ("created_at", True)),
    ("createdAt", ("created_at", False)),
    ("-viewCount", ("view_count", True)),
    ("average_rating", ("average_rating", False)),
    ("+title", ("title", False)),
])
def test_parse_sort(sort, expected):
    assert parse_sort(sort, PHOTO_SORT_FIELDS) == expected


def test_parse_sort_rejects_unknown_fields():
    with pytest.raises(ValidationError) as exc_info:
        parse_sort("-password", PHOTO_SORT_FIELDS)
    assert "password" in exc_info.value.message


@pytest.mark.parametrize("page, limit, total, skip, pages", [
    (1, 20, 0, 0, 0),
    (1, 20, 20, 0, 1),
    (2, 20, 21, 20, 2),
    (3, 7, 50, 14, 8),
])
def test_pagination(page, limit, total, skip, pages):
    pagination = Pagination(page=page, limit=limit)
    assert pagination.skip == skip
    envelope = pagination.envelope([], total)
    assert envelope["success"] is True
    assert envelope["pagination"] == {"page": page, "limit": limit, "total": total, "pages": pages}
