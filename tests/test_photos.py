from io import BytesIO

from conftest import PNG_BYTES, auth_headers, run
from photostack.memory_store import MemoryStore


def test_upload_photo(client, upload, storage, database):
    photo = upload(caption="Golden hour", location="Lisbon", people="Ana, Rui")

    assert photo["title"] == "Sunset"
    assert photo["creator_id"] == "creator-1"
    assert photo["people"] == ["Ana", "Rui"]
    assert photo["ai_tags"] == ["beach", "sunset"]
    assert photo["ai_description"] == "a beach at sunset"
    assert photo["mime_type"] == "image/png"
    assert photo["file_size"] == len(PNG_BYTES)
    assert photo["view_count"] == 0
    assert photo["blob_url"].startswith("https://blobs.test/photos/creator-1/")
    assert storage.uploaded[0][1] == "image/png"

    creator = run(MemoryStore(database).get_user_by_oid("creator-1"))
    assert creator["photo_count"] == 1


def test_upload_accepts_json_people(upload):
    photo = upload(people='["Carol", "", "Dan"]')
    assert photo["people"] == ["Carol", "Dan"]


def test_upload_requires_creator(client, consumer):
    response = client.post(
        "/api/photos",
        headers=consumer,
        data={"title": "Nope"},
        files={"image": ("a.png", BytesIO(PNG_BYTES), "image/png")},
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden", "message": "Creator access required"}

    response = client.post("/api/photos", data={"title": "Nope"})
    assert response.status_code == 401


def test_upload_creator_role_from_profile(client, database, storage):
    run(MemoryStore(database).create_user("promoted", "promoted@example.com", "Pro", role="creator"))
    response = client.post(
        "/api/photos",
        headers=auth_headers("promoted"),
        data={"title": "Stored role"},
        files={"image": ("a.png", BytesIO(PNG_BYTES), "image/png")},
    )
    assert response.status_code == 201


def test_upload_rejects_bad_files(client, creator, settings, storage):
    response = client.post("/api/photos", headers=creator, data={"title": "Empty"})
    assert response.status_code == 400
    assert response.json()["message"] == "No image file provided"

    response = client.post(
        "/api/photos",
        headers=creator,
        data={"title": "Text"},
        files={"image": ("notes.txt", BytesIO(b"hello"), "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid file type")

    settings.max_file_size = 16
    response = client.post(
        "/api/photos",
        headers=creator,
        data={"title": "Huge"},
        files={"image": ("big.png", BytesIO(PNG_BYTES), "image/png")},
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("File too large")

    response = client.post(
        "/api/photos",
        headers=creator,
        files={"image": ("a.png", BytesIO(b"x"), "image/png")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Validation Error"

    assert storage.uploaded == []


def test_get_photo_counts_views(client, upload):
    photo = upload()

    client.get(f"/api/photos/{photo['id']}")
    response = client.get(f"/api/photos/{photo['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["view_count"] == 2

    response = client.get("/api/photos/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found", "message": "Photo not found"}


def test_list_photos_paginates(client, upload):
    for title in ("One", "Two", "Three"):
        upload(title=title)

    body = client.get("/api/photos?limit=2").json()
    assert [p["title"] for p in body["data"]] == ["Three", "Two"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    body = client.get("/api/photos?limit=2&page=2").json()
    assert [p["title"] for p in body["data"]] == ["One"]

    body = client.get("/api/photos?page=5").json()
    assert body["data"] == []
    assert body["pagination"]["total"] == 3

    assert client.get("/api/photos?limit=500").status_code == 400
    assert client.get("/api/photos?page=0").status_code == 400


def test_list_photos_filters_and_sorts(client, upload):
    upload(title="Harbour", location="Porto")
    upload(title="Bridge", location="Lisbon", caption="harbour lights")
    upload(title="Market", location="Lisbon")

    body = client.get("/api/photos?location=lisbon").json()
    assert {p["title"] for p in body["data"]} == {"Bridge", "Market"}

    body = client.get("/api/photos?search=harbour").json()
    assert {p["title"] for p in body["data"]} == {"Harbour", "Bridge"}

    body = client.get("/api/photos?sort=title").json()
    assert [p["title"] for p in body["data"]] == ["Bridge", "Harbour", "Market"]

    response = client.get("/api/photos?sort=-blobName")
    assert response.status_code == 400


def test_search_photos(client, upload, analyzer):
    upload(title="Beach day", people="Ana,Rui")
    analyzer.result.tags = ["mountain"]
    analyzer.result.description = "a snowy peak"
    upload(title="Alps", people="Rui")

    def titles(body):
        return {p["title"] for p in body["data"]}

    assert titles(client.get("/api/photos/search?tags=BEACH").json()) == {"Beach day"}
    assert titles(client.get("/api/photos/search?tags=beach,mountain").json()) == {"Beach day", "Alps"}
    assert titles(client.get("/api/photos/search?people=Rui").json()) == {"Beach day", "Alps"}
    assert titles(client.get("/api/photos/search?people=Ana").json()) == {"Beach day"}
    assert titles(client.get("/api/photos/search?q=snowy").json()) == {"Alps"}
    assert titles(client.get("/api/photos/search?q=desert").json()) == set()


def test_trending_orders_by_views(client, upload):
    quiet = upload(title="Quiet")
    popular = upload(title="Popular")
    for _ in range(3):
        client.get(f"/api/photos/{popular['id']}")
    client.get(f"/api/photos/{quiet['id']}")

    body = client.get("/api/photos/trending?period=day&limit=5").json()
    assert [p["title"] for p in body["data"]] == ["Popular", "Quiet"]

    body = client.get("/api/photos/trending?period=fortnight&limit=1").json()
    assert [p["title"] for p in body["data"]] == ["Popular"]


def test_creator_photos(client, upload):
    upload(title="Mine")
    upload(title="Theirs", headers=auth_headers("creator-2", role="creator"))

    body = client.get("/api/photos/creator/creator-2").json()
    assert [p["title"] for p in body["data"]] == ["Theirs"]
    assert body["pagination"]["total"] == 1


def test_update_photo(client, upload, creator):
    photo = upload()

    response = client.put(
        f"/api/photos/{photo['id']}",
        headers=creator,
        json={"title": "Dusk", "people": "Ana, Rui", "caption": None},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Dusk"
    assert data["people"] == ["Ana", "Rui"]
    assert data["caption"] == ""
    assert data["location"] == photo["location"]


def test_only_owner_can_change_photo(client, upload, consumer):
    photo = upload()
    other = auth_headers("creator-2", role="creator")

    response = client.put(f"/api/photos/{photo['id']}", headers=other, json={"title": "Mine now"})
    assert response.status_code == 403
    assert response.json()["message"] == "You can only update your own photos"

    response = client.delete(f"/api/photos/{photo['id']}", headers=other)
    assert response.status_code == 403

    response = client.put(f"/api/photos/{photo['id']}", headers=consumer, json={"title": "x"})
    assert response.status_code == 403

    assert client.get(f"/api/photos/{photo['id']}").status_code == 200


def test_delete_photo_cascades(client, upload, creator, consumer, storage, database):
    photo = upload()
    client.post(f"/api/photos/{photo['id']}/comments", headers=consumer, json={"content": "Lovely"})
    client.post(f"/api/photos/{photo['id']}/ratings", headers=consumer, json={"value": 5})

    response = client.delete(f"/api/photos/{photo['id']}", headers=creator)
    assert response.status_code == 200
    assert storage.deleted == [photo["blob_name"]]
    assert database.photos == {}
    assert database.comments == {}
    assert database.ratings == {}

    owner = run(MemoryStore(database).get_user_by_oid("creator-1"))
    assert owner["photo_count"] == 0
    assert client.get(f"/api/photos/{photo['id']}").status_code == 404
    assert client.delete(f"/api/photos/{photo['id']}", headers=creator).status_code == 404


def test_delete_photo_survives_storage_failure(client, upload, creator, storage, database):
    photo = upload()
    storage.fail_delete = True

    response = client.delete(f"/api/photos/{photo['id']}", headers=creator)
    assert response.status_code == 200
    assert database.photos == {}
