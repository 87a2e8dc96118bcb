from helpers import auth_headers, login, owner_token, seed_user


def _editor_headers(client, session_local, username="writer", role="editor"):
    seed_user(session_local, username=username, role=role)
    return auth_headers(login(client, username))


def _post(client, headers, **overrides):
    payload = {
        "title": "Five ways to brew a better flat white",
        "content": " ".join(["word"] * 450),
        "categories": ["coffee"],
        "tags": ["brewing"],
        "status": "published",
        "seo": {"meta_title": "Flat white guide"},
    }
    payload.update(overrides)
    return client.post("/blog", json=payload, headers=headers)


def test_editor_creates_post_with_slug_and_read_time(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)

    res = _post(client, editor)
    assert res.status_code == 201, res.text
    post = res.json()["post"]
    assert post["slug"] == "five-ways-to-brew-a-better-flat-white"
    assert post["read_time"] == 3
    assert post["published_at"] is not None

    duplicate = _post(client, editor).json()["post"]
    assert duplicate["slug"] == "five-ways-to-brew-a-better-flat-white-2"


def test_non_editors_cannot_write_posts(test_context):
    client, _ = test_context
    owner = auth_headers(owner_token(client))
    assert _post(client, owner).status_code == 403
    assert _post(client, {}).status_code == 401


def test_public_listing_hides_drafts_and_seo(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)
    _post(client, editor)
    _post(client, editor, title="Upcoming menu", status="draft", categories=["news"])

    public = client.get("/blog/public")
    assert public.status_code == 200, public.text
    items = public.json()["items"]
    assert [p["title"] for p in items] == ["Five ways to brew a better flat white"]
    assert items[0]["seo"] is None

    everything = client.get("/blog", headers=editor).json()
    assert everything["pagination"]["total"] == 2
    news = client.get("/blog", params={"category": "news"}, headers=editor).json()
    assert [p["slug"] for p in news["items"]] == ["upcoming-menu"]


def test_unpublished_post_is_visible_only_to_editors(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)
    _post(client, editor, title="Secret recipe", status="draft")

    assert client.get("/blog/secret-recipe").status_code == 403
    owner = auth_headers(owner_token(client))
    assert client.get("/blog/secret-recipe", headers=owner).status_code == 403
    assert client.get("/blog/secret-recipe", headers=editor).status_code == 200
    assert client.get("/blog/no-such-post").status_code == 404


def test_update_publishes_and_keeps_slug(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)
    _post(client, editor, title="Draft title", status="draft")

    res = client.put(
        "/blog/draft-title",
        json={"title": "Final title", "status": "published"},
        headers=editor,
    )
    assert res.status_code == 200, res.text
    post = res.json()["post"]
    assert post["slug"] == "draft-title"
    assert post["title"] == "Final title"
    assert post["published_at"] is not None
    assert client.get("/blog/draft-title").status_code == 200


def test_view_counter_and_delete_permissions(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)
    slug = _post(client, editor).json()["post"]["slug"]

    client.post(f"/blog/{slug}/view")
    res = client.post(f"/blog/{slug}/view")
    assert res.status_code == 200, res.text
    assert res.json() == {"slug": slug, "view_count": 2}

    assert client.delete(f"/blog/{slug}", headers=editor).status_code == 403
    admin = _editor_headers(client, session_local, username="boss", role="admin")
    assert client.delete(f"/blog/{slug}", headers=admin).status_code == 200
    assert client.get(f"/blog/{slug}").status_code == 404


def test_blog_stats(test_context):
    client, session_local = test_context
    editor = _editor_headers(client, session_local)
    slug = _post(client, editor, tags=["brewing", "milk"]).json()["post"]["slug"]
    _post(client, editor, title="Pastry news", categories=["bakery"], status="draft", read_time=1)
    client.post(f"/blog/{slug}/view")

    res = client.get("/blog/stats", headers=editor)
    assert res.status_code == 200, res.text
    stats = res.json()
    assert {row["key"]: row["count"] for row in stats["by_status"]} == {"draft": 1, "published": 1}
    assert stats["total_views"] == 1
    assert stats["average_read_time"] == 2.0
    coffee = next(row for row in stats["by_category"] if row["category"] == "coffee")
    assert coffee == {"category": "coffee", "count": 1, "views": 1}
    assert len(stats["monthly_posts"]) == 1
