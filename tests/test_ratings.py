import asyncio
import random

import pytest

from conftest import auth_headers, run
from photostack import ratings
from photostack.errors import NotFound, ValidationError
from photostack.memory_store import MemoryDatabase, MemoryStore


@pytest.fixture
def store():
    return MemoryStore(MemoryDatabase())


@pytest.fixture
def photo(store):
    return run(store.create_photo(
        creator_id="creator-1", title="Harbour", blob_url="https://blobs.test/h.jpg",
        blob_name="creator-1/h.jpg", mime_type="image/jpeg", file_size=10,
    ))


def test_three_votes_then_removal(store, photo):
    for user, value in (("u1", 3), ("u2", 5), ("u3", 4)):
        run(ratings.upsert_rating(store, photo["id"], user, value))

    stored = run(store.get_photo(photo["id"]))
    assert stored["average_rating"] == pytest.approx(4.0)
    assert stored["rating_count"] == 3

    result = run(ratings.remove_rating(store, photo["id"], "u2"))
    assert result.photo_stats == {"average_rating": 3.5, "rating_count": 2}
    stored = run(store.get_photo(photo["id"]))
    assert stored["average_rating"] == pytest.approx(3.5)
    assert stored["rating_count"] == 2


def test_aggregate_tracks_random_vote_sequences(store, photo):
    rng = random.Random(7)
    current = {}
    for _ in range(60):
        user = f"user-{rng.randint(1, 8)}"
        if current.get(user) and rng.random() < 0.25:
            run(ratings.remove_rating(store, photo["id"], user))
            del current[user]
        else:
            value = rng.randint(1, 5)
            run(ratings.upsert_rating(store, photo["id"], user, value))
            current[user] = value

        stored = run(store.get_photo(photo["id"]))
        expected = sum(current.values()) / len(current) if current else 0
        assert stored["average_rating"] == pytest.approx(expected)
        assert stored["rating_count"] == len(current)


def test_revote_updates_in_place(store, photo):
    first = run(ratings.upsert_rating(store, photo["id"], "u1", 2))
    second = run(ratings.upsert_rating(store, photo["id"], "u1", 5))

    assert first.created is True
    assert second.created is False
    assert second.rating["id"] == first.rating["id"]
    assert run(store.list_rating_values(photo["id"])) == [5]
    assert run(store.get_photo(photo["id"]))["rating_count"] == 1


def test_removing_only_rating_resets_aggregate(store, photo):
    run(ratings.upsert_rating(store, photo["id"], "u1", 4))
    run(ratings.remove_rating(store, photo["id"], "u1"))

    stored = run(store.get_photo(photo["id"]))
    assert stored["average_rating"] == 0
    assert stored["rating_count"] == 0


def test_user_rating_count_follows_new_votes_only(store, photo):
    user = run(store.create_user("u1", "u1@example.com", "U One"))
    run(ratings.upsert_rating(store, photo["id"], "u1", 4))
    run(ratings.upsert_rating(store, photo["id"], "u1", 3))
    assert run(store.get_user(user["id"]))["rating_count"] == 1

    run(ratings.remove_rating(store, photo["id"], "u1"))
    assert run(store.get_user(user["id"]))["rating_count"] == 0


@pytest.mark.parametrize("value", [0, 6, 3.5, "abc", None, True, "", [4]])
def test_invalid_values_are_rejected(store, photo, value):
    with pytest.raises(ValidationError):
        run(ratings.upsert_rating(store, photo["id"], "u1", value))
    assert run(store.list_rating_values(photo["id"])) == []


@pytest.mark.parametrize("value, expected", [(1, 1), ("5", 5), (" 3 ", 3), (4.0, 4)])
def test_numeric_values_are_accepted(value, expected):
    assert ratings.parse_rating_value(value) == expected


def test_missing_photo_and_missing_rating(store, photo):
    with pytest.raises(NotFound):
        run(ratings.upsert_rating(store, "nope", "u1", 3))
    with pytest.raises(NotFound):
        run(ratings.remove_rating(store, photo["id"], "u1"))


def test_failed_write_rolls_back(store, photo, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("write failed")

    monkeypatch.setattr(store, "set_photo_rating_stats", broken)
    with pytest.raises(RuntimeError):
        run(ratings.upsert_rating(store, photo["id"], "u1", 5))

    assert run(store.get_rating(photo["id"], "u1")) is None


def test_summary_distribution(store, photo):
    for user, value in (("a", 5), ("b", 5), ("c", 1)):
        run(ratings.upsert_rating(store, photo["id"], user, value))

    summary = run(ratings.rating_summary(store, photo["id"]))
    assert summary == {
        "average": 3.67,
        "total": 3,
        "distribution": {1: 1, 2: 0, 3: 0, 4: 0, 5: 2},
    }


def test_rating_endpoints(client, upload):
    photo = upload()
    url = f"/api/photos/{photo['id']}/ratings"
    votes = [("fan-1", 3), ("fan-2", 5), ("fan-3", 4)]
    for oid, value in votes:
        response = client.post(url, json={"value": value}, headers=auth_headers(oid, role="consumer"))
        assert response.status_code == 201

    response = client.post(url, json={"value": 2}, headers=auth_headers("fan-1", role="consumer"))
    assert response.status_code == 200
    assert response.json()["message"] == "Rating updated successfully"
    assert response.json()["data"]["photo_stats"] == {"average_rating": 3.67, "rating_count": 3}

    mine = client.get(f"{url}/me", headers=auth_headers("fan-1"))
    assert mine.json()["data"] == {"value": 2}

    summary = client.get(url).json()["data"]
    assert summary["total"] == 3
    assert summary["distribution"]["5"] == 1

    response = client.delete(url, headers=auth_headers("fan-2"))
    assert response.status_code == 200
    assert response.json()["data"]["photo_stats"] == {"average_rating": 3.0, "rating_count": 2}

    photo = client.get(f"/api/photos/{photo['id']}").json()["data"]
    assert photo["average_rating"] == pytest.approx(3.0)
    assert photo["rating_count"] == 2


def test_rating_endpoint_errors(client, upload):
    photo = upload()
    url = f"/api/photos/{photo['id']}/ratings"
    headers = auth_headers("fan-1", role="consumer")

    response = client.post(url, json={"value": 9}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Bad Request", "message": "Rating must be between 1 and 5"}

    assert client.post(url, json={"value": 3}).status_code == 401
    assert client.delete(url, headers=headers).status_code == 404
    assert client.post("/api/photos/missing/ratings", json={"value": 3}, headers=headers).status_code == 404
    assert client.get(f"{url}/me", headers=headers).json()["data"] is None


def test_failed_write_leaves_no_sort_entry(store, photo, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("write failed")

    before = dict(store.db.order)
    monkeypatch.setattr(store, "set_photo_rating_stats", broken)
    with pytest.raises(RuntimeError):
        run(ratings.upsert_rating(store, photo["id"], "u1", 5))

    assert store.db.order == before


def test_deleting_photo_drops_its_rows_from_sort_order(store, photo):
    comment = run(store.create_comment(photo["id"], "u1", "U One", "nice"))
    rating = run(ratings.upsert_rating(store, photo["id"], "u1", 4)).rating

    assert run(store.delete_photo(photo["id"])) is True
    for row_id in (photo["id"], comment["id"], rating["id"]):
        assert row_id not in store.db.order
    assert store.db.ratings == {}
    assert store.db.comments == {}


def test_simultaneous_votes_by_one_user_keep_one_rating(store, photo):
    async def double_submit():
        return await asyncio.gather(
            ratings.upsert_rating(store, photo["id"], "u1", 2),
            ratings.upsert_rating(store, photo["id"], "u1", 4),
        )

    first, second = run(double_submit())
    assert (first.created, second.created) == (True, False)
    assert run(store.list_rating_values(photo["id"])) == [4]
    stored = run(store.get_photo(photo["id"]))
    assert (stored["average_rating"], stored["rating_count"]) == (4, 1)


def test_simultaneous_votes_by_many_users_are_all_counted(store, photo):
    votes = [("u1", 1), ("u2", 2), ("u3", 4), ("u4", 5), ("u5", 3)]

    async def vote_all():
        await asyncio.gather(*(
            ratings.upsert_rating(store, photo["id"], user, value) for user, value in votes
        ))

    run(vote_all())
    stored = run(store.get_photo(photo["id"]))
    assert stored["rating_count"] == 5
    assert stored["average_rating"] == pytest.approx(3.0)
