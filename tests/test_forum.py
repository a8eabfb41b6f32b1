import pytest


@pytest.fixture
def post_id(client, make_user):
    author = make_user()
    res = client.post(
        "/api/forum/posts",
        json={
            "title": "Which bursaries cover residence fees?",
            "content": "Looking for bursaries that include <i>accommodation</i>.",
            "category": "bursaries",
            "tags": ["nsfas", ""],
        },
        headers=author.headers,
    )
    assert res.status_code == 201
    return res.get_json()["post"]["id"]


def comment(client, user, post_id, content, parent=None):
    res = client.post(
        "/api/forum/comments",
        json={"post_id": post_id, "content": content, "parent_comment_id": parent},
        headers=user.headers,
    )
    return res


def test_create_post_cleans_input(client, post_id):
    detail = client.get(f"/api/forum/posts/{post_id}").get_json()
    assert detail["post"]["content"] == "Looking for bursaries that include accommodation."
    assert detail["post"]["tags"] == ["nsfas"]
    assert detail["post"]["views"] == 1
    assert detail["comments"] == []


def test_create_post_validation(client, make_user):
    user = make_user()
    res = client.post("/api/forum/posts", json={"title": "Hi", "content": "There"}, headers=user.headers)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Title, content, and category are required"

    res = client.post(
        "/api/forum/posts", json={"title": "Hi", "content": "There", "category": "gossip"}, headers=user.headers
    )
    assert res.status_code == 400


def test_listing_counts_live_comments(client, make_user, post_id):
    user = make_user()
    comment(client, user, post_id, "NSFAS covers it")
    removed = comment(client, user, post_id, "Check Funza Lushaka").get_json()["comment"]["id"]
    client.delete(f"/api/forum/comments/{removed}", headers=user.headers)

    body = client.get("/api/forum/posts", query_string={"category": "bursaries"}).get_json()
    assert body["total"] == 1
    assert body["posts"][0]["comment_count"] == 1

    assert client.get("/api/forum/posts", query_string={"search": "residence"}).get_json()["total"] == 1
    assert client.get("/api/forum/posts", query_string={"search": "tractor"}).get_json()["total"] == 0


def test_deleted_comment_kept_only_while_replies_live(client, make_user, post_id):
    alice = make_user()
    bongani = make_user()
    parent = comment(client, alice, post_id, "Try the Eskom bursary").get_json()["comment"]["id"]
    reply = comment(client, bongani, post_id, "Eskom closed in August", parent=parent).get_json()["comment"]["id"]

    assert client.delete(f"/api/forum/comments/{parent}", headers=alice.headers).status_code == 200

    thread = client.get(f"/api/forum/posts/{post_id}").get_json()["comments"]
    assert len(thread) == 1
    assert thread[0]["id"] == parent
    assert thread[0]["is_deleted"] is True
    assert thread[0]["content"] is None
    assert thread[0]["reply_count"] == 1

    replies = client.get(f"/api/forum/comments/{parent}/replies").get_json()
    assert [item["content"] for item in replies] == ["Eskom closed in August"]

    client.delete(f"/api/forum/comments/{reply}", headers=bongani.headers)
    assert client.get(f"/api/forum/posts/{post_id}").get_json()["comments"] == []


def test_deleted_comment_cannot_be_replied_to_or_liked(client, make_user, post_id):
    user = make_user()
    parent = comment(client, user, post_id, "First!").get_json()["comment"]["id"]
    client.delete(f"/api/forum/comments/{parent}", headers=user.headers)

    res = comment(client, user, post_id, "Reply to nothing", parent=parent)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Cannot reply to a deleted comment"

    res = client.post(f"/api/forum/comments/{parent}/like", headers=user.headers)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Cannot like a deleted comment"


def test_reply_parent_must_belong_to_post(client, make_user, post_id):
    user = make_user()
    other_post = client.post(
        "/api/forum/posts",
        json={"title": "Interview tips", "content": "Share yours", "category": "advice"},
        headers=user.headers,
    ).get_json()["post"]["id"]
    foreign_parent = comment(client, user, other_post, "Be on time").get_json()["comment"]["id"]

    res = comment(client, user, post_id, "Wrong thread", parent=foreign_parent)
    assert res.status_code == 400


def test_only_author_or_admin_deletes_comment(client, make_user, post_id):
    author = make_user()
    stranger = make_user()
    admin = make_user("admin")
    comment_id = comment(client, author, post_id, "Mine").get_json()["comment"]["id"]

    assert client.delete(f"/api/forum/comments/{comment_id}", headers=stranger.headers).status_code == 403
    assert client.delete(f"/api/forum/comments/{comment_id}", headers=admin.headers).status_code == 200


def test_locked_post_refuses_comments(client, make_user, post_id):
    admin = make_user("admin")
    user = make_user()

    res = client.patch(f"/api/forum/posts/{post_id}/moderate", json={"is_locked": True}, headers=admin.headers)
    assert res.get_json()["post"]["is_locked"] is True
    assert res.get_json()["post"]["is_pinned"] is False

    res = comment(client, user, post_id, "Too late")
    assert res.status_code == 403
    assert res.get_json()["message"] == "Post is locked for comments"

    assert client.patch(f"/api/forum/posts/{post_id}/moderate", json={"is_pinned": True}, headers=user.headers).status_code == 403


def test_like_toggle(client, make_user, post_id):
    user = make_user()
    other = make_user()

    first = client.post(f"/api/forum/posts/{post_id}/like", headers=user.headers).get_json()
    assert first == {"message": "Post liked", "liked": True, "likes": 1}
    client.post(f"/api/forum/posts/{post_id}/like", headers=other.headers)

    again = client.post(f"/api/forum/posts/{post_id}/like", headers=user.headers).get_json()
    assert again == {"message": "Post unliked", "liked": False, "likes": 1}

    detail = client.get(f"/api/forum/posts/{post_id}", headers=other.headers).get_json()
    assert detail["post"]["liked"] is True
    assert detail["post"]["likes"] == 1


def test_update_is_author_only_and_delete_allows_admin(client, make_user, post_id):
    stranger = make_user()
    admin = make_user("admin")

    res = client.put(f"/api/forum/posts/{post_id}", json={"title": "Hijacked"}, headers=stranger.headers)
    assert res.status_code == 403
    res = client.put(f"/api/forum/posts/{post_id}", json={"title": "Hijacked"}, headers=admin.headers)
    assert res.status_code == 403

    comment(client, stranger, post_id, "Following")
    assert client.delete(f"/api/forum/posts/{post_id}", headers=stranger.headers).status_code == 403
    assert client.delete(f"/api/forum/posts/{post_id}", headers=admin.headers).status_code == 200
    assert client.get(f"/api/forum/posts/{post_id}").status_code == 404
