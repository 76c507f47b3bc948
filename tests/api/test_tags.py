"""Tests for tag endpoints."""
from httpx import AsyncClient

FAKE_UUID = "00000000-0000-7000-8000-000000000000"


async def _create_bookmark(client: AsyncClient, url: str) -> dict:
    response = await client.post("/bookmarks", json={"url": url})
    assert response.status_code == 201
    return response.json()["data"]


async def _tag_id(client: AsyncClient, name: str) -> str:
    tags = (await client.get("/tags")).json()["data"]
    return next(tag["id"] for tag in tags if tag["name"] == name)


async def test_list_tags_defaults(client: AsyncClient) -> None:
    """A new account lists the default tags, sorted, with zero counts."""
    response = await client.get("/tags")
    assert response.status_code == 200

    tags = response.json()["data"]
    names = [tag["name"] for tag in tags]
    assert names == sorted(["work", "personal", "reading", "travel", "food", "tech", "finance"])
    assert all(tag["bookmarkCount"] == 0 for tag in tags)


async def test_create_tag_normalized(client: AsyncClient) -> None:
    """Names are stored trimmed and lower-cased."""
    response = await client.post("/tags", json={"name": "  Machine Learning "})
    assert response.status_code == 201
    assert response.json()["data"]["name"] == "machine learning"


async def test_create_tag_duplicate(client: AsyncClient) -> None:
    """An existing name (after normalization) is a 409."""
    response = await client.post("/tags", json={"name": "WORK"})
    assert response.status_code == 409
    assert response.json()["errors"][0]["field"] == "name"


async def test_create_tag_blank(client: AsyncClient) -> None:
    """A whitespace-only name is a 400."""
    response = await client.post("/tags", json={"name": "   "})
    assert response.status_code == 400


async def test_get_tag_with_bookmarks(client: AsyncClient) -> None:
    """A tag lists the bookmarks using it."""
    bookmark = await _create_bookmark(client, "https://example.com/")
    await client.put(f"/bookmarks/{bookmark['id']}", json={"tags": [{"name": "python"}]})
    tag_id = await _tag_id(client, "python")

    response = await client.get(f"/tags/{tag_id}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "python"
    assert [b["id"] for b in data["bookmarks"]] == [bookmark["id"]]


async def test_rename_tag_reflected_on_bookmarks(client: AsyncClient) -> None:
    """Renaming a tag shows the new name on every bookmark using it."""
    bookmark = await _create_bookmark(client, "https://example.com/")
    await client.put(f"/bookmarks/{bookmark['id']}", json={"tags": [{"name": "pyhton"}]})
    tag_id = await _tag_id(client, "pyhton")

    response = await client.put(f"/tags/{tag_id}", json={"name": "Python"})
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "python"

    refreshed = (await client.get(f"/bookmarks/{bookmark['id']}")).json()["data"]
    assert [t["name"] for t in refreshed["tags"]] == ["python"]


async def test_rename_tag_conflict(client: AsyncClient) -> None:
    """Renaming onto an existing tag is a 409."""
    tag_id = await _tag_id(client, "food")
    response = await client.put(f"/tags/{tag_id}", json={"name": "travel"})
    assert response.status_code == 409


async def test_delete_tag_detaches(client: AsyncClient) -> None:
    """Deleting a tag keeps the bookmarks and reports how many were detached."""
    bookmark = await _create_bookmark(client, "https://example.com/")
    await client.put(
        f"/bookmarks/{bookmark['id']}",
        json={"tags": [{"name": "python"}, {"name": "work"}]},
    )
    tag_id = await _tag_id(client, "python")

    response = await client.delete(f"/tags/{tag_id}")
    assert response.status_code == 200
    assert response.json()["data"] == {"detachedBookmarks": 1}

    refreshed = (await client.get(f"/bookmarks/{bookmark['id']}")).json()["data"]
    assert [t["name"] for t in refreshed["tags"]] == ["work"]
    assert (await client.get(f"/tags/{tag_id}")).status_code == 404


async def test_tags_are_per_user(client: AsyncClient, other_client: AsyncClient) -> None:
    """Another user's tag cannot be read, renamed, or deleted."""
    created = (await other_client.post("/tags", json={"name": "private"})).json()["data"]

    assert (await client.get(f"/tags/{created['id']}")).status_code == 404
    assert (await client.put(f"/tags/{created['id']}", json={"name": "mine"})).status_code == 404
    assert (await client.delete(f"/tags/{created['id']}")).status_code == 404
    assert (await other_client.get(f"/tags/{created['id']}")).status_code == 200


async def test_get_tag_not_found(client: AsyncClient) -> None:
    """Unknown ids are 404 in the envelope."""
    response = await client.get(f"/tags/{FAKE_UUID}")
    assert response.status_code == 404
    assert response.json()["message"] == "Tag not found."
