"""
Route-level tests for the generated per-model API.

The app is built from the bundled rules file with `get_db` bound to the
rolled-back test session.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from autoapi.models.blog import Post
from autoapi.settings import Settings


def _titles(rows):
    return [r["title"] for r in rows]


def _post_id(db, title: str) -> int:
    return db.scalars(select(Post.id).where(Post.title == title)).one()


def _chain(*relations: str) -> dict:
    """{"a": {"include": {"b": {"include": {"c": True}}}}}"""
    tree: object = True
    for name in reversed(relations):
        tree = {name: tree} if tree is True else {name: {"include": tree}}
    return tree


# ---- Queries ---------------------------------------------------------------------------


def test_anonymous_query_returns_only_published(client, seeded):
    response = client.post("/api/posts/find-many", json={})
    assert response.status_code == 200
    assert _titles(response.json()) == ["Hello from Alice", "Bob's guide"]


def test_authenticated_query_includes_own_drafts(client, seeded, sign_in_as):
    sign_in_as(seeded["alice"])
    response = client.post("/api/posts/find-many", json={})
    assert _titles(response.json()) == ["Hello from Alice", "Alice's draft", "Bob's guide"]


def test_caller_where_cannot_widen_scope(client, seeded):
    response = client.post("/api/posts/find-many", json={"where": {"published": False}})
    assert response.status_code == 200
    assert response.json() == []

    response = client.post("/api/posts/find-many", json={"where": {"OR": [{"published": False}, {"published": True}]}})
    assert _titles(response.json()) == ["Hello from Alice", "Bob's guide"]


def test_hidden_row_and_missing_row_look_the_same(client, seeded, db_session):
    draft_id = _post_id(db_session, "Alice's draft")
    hidden = client.post("/api/posts/find-first", json={"where": {"id": draft_id}})
    missing = client.post("/api/posts/find-first", json={"where": {"id": 99999}})
    assert hidden.status_code == missing.status_code == 200
    assert hidden.json() is None
    assert missing.json() is None


def test_count_is_scoped(client, seeded, sign_in_as):
    assert client.post("/api/posts/count", json={}).json() == {"count": 2}
    sign_in_as(seeded["bob"])
    assert client.post("/api/posts/count", json={}).json() == {"count": 3}


def test_included_relations_are_scoped_by_target_rules(client, seeded):
    response = client.post(
        "/api/users/find-many",
        json={"include": {"posts": {"include": {"categories": True}}}, "order_by": {"email": "asc"}},
    )
    assert response.status_code == 200
    rows = response.json()
    assert [u["email"] for u in rows] == ["alice@example.com", "bob@example.com"]
    assert _titles(rows[0]["posts"]) == ["Hello from Alice"]
    assert _titles(rows[1]["posts"]) == ["Bob's guide"]
    assert sorted(c["name"] for c in rows[1]["posts"][0]["categories"]) == ["How-to", "News"]


def test_nested_where_narrows_relation(client, seeded, sign_in_as):
    sign_in_as(seeded["alice"])
    response = client.post(
        "/api/users/find-first",
        json={"where": {"email": "alice@example.com"}, "include": {"posts": {"where": {"published": False}}}},
    )
    assert _titles(response.json()["posts"]) == ["Alice's draft"]


def test_unknown_relation_or_field_is_a_bad_request(client, seeded):
    assert client.post("/api/posts/find-many", json={"include": {"comments": True}}).status_code == 400
    assert client.post("/api/posts/find-many", json={"where": {"secret": 1}}).status_code == 400
    assert client.post("/api/posts/find-many", json={"where": {"title": {"regex": ".*"}}}).status_code == 400
    assert client.post("/api/posts/find-many", json={"order_by": {"secret": "asc"}}).status_code == 400


@pytest.mark.parametrize(
    "where",
    [
        {"id": [1, 2]},
        {"id": {"in": [[1]]}},
        {"title": {"eq": {"nested": 1}}},
        {"published": "yes"},
        {"id": {"gt": "10"}},
        {"created_at": {"lt": "not-a-date"}},
    ],
)
def test_wrong_typed_where_is_a_bad_request(client, seeded, where):
    response = client.post("/api/posts/find-many", json={"where": where})
    assert response.status_code == 400


def test_where_accepts_iso_timestamps(client, seeded):
    response = client.post("/api/posts/count", json={"where": {"created_at": {"gt": "2000-01-01T00:00:00"}}})
    assert response.json() == {"count": 2}


@patch("autoapi.routers.generated.ModelRepository")
def test_depth_over_limit_never_reaches_storage(mock_repo, client, seeded):
    too_deep = _chain("author", "posts", "author", "posts", "author", "posts")
    response = client.post("/api/posts/find-many", json={"include": too_deep})
    assert response.status_code == 400
    assert response.json() == {"detail": "Query depth exceeds limit"}

    # categories are limited to 3 levels
    response = client.post("/api/categories/find-many", json={"include": _chain("posts", "author", "posts", "author")})
    assert response.status_code == 400
    assert mock_repo.call_count == 0


def test_depth_at_limit_is_allowed(client, seeded):
    at_limit = _chain("author", "posts", "author", "posts", "author")
    response = client.post("/api/posts/find-many", json={"include": at_limit})
    assert response.status_code == 200


# ---- Mutations -------------------------------------------------------------------------


@patch("autoapi.routers.generated.ModelRepository")
def test_anonymous_mutation_is_forbidden_before_storage(mock_repo, client, seeded, db_session):
    post_id = _post_id(db_session, "Hello from Alice")
    calls = [
        ("/api/posts/create-one", {"input": {"title": "x"}}),
        ("/api/posts/create-many", {"inputs": [{"title": "x"}]}),
        ("/api/posts/update", {"where": {"id": post_id}, "input": {"title": "x"}}),
        ("/api/posts/delete", {"where": {"id": post_id}}),
        ("/api/categories/create-one", {"input": {"name": "x"}}),
    ]
    for path, body in calls:
        response = client.post(path, json=body)
        assert response.status_code == 403, path
        assert response.json() == {"detail": "Forbidden"}
    assert mock_repo.call_count == 0


def test_create_stamps_owner_over_caller_value(client, seeded, sign_in_as):
    alice, bob = seeded["alice"], seeded["bob"]
    sign_in_as(alice)
    response = client.post("/api/posts/create-one", json={"input": {"title": "Mine", "author_id": bob.id}})
    assert response.status_code == 200
    assert response.json()["author_id"] == alice.id
    assert response.json()["title"] == "Mine"


def test_create_many_stamps_every_row(client, seeded, sign_in_as):
    bob = seeded["bob"]
    sign_in_as(bob)
    response = client.post("/api/posts/create-many", json={"inputs": [{"title": "One"}, {"title": "Two"}]})
    assert response.status_code == 200
    assert [r["author_id"] for r in response.json()] == [bob.id, bob.id]


def test_masked_field_is_forbidden_with_same_body(client, seeded, sign_in_as):
    sign_in_as(seeded["alice"])
    response = client.post(
        "/api/posts/create-one",
        json={"input": {"title": "x", "created_at": "2020-01-01T00:00:00"}},
    )
    assert response.status_code == 403
    assert response.json() == {"detail": "Forbidden"}


def test_unknown_input_field_is_rejected(client, seeded, sign_in_as):
    sign_in_as(seeded["alice"])
    response = client.post("/api/posts/create-one", json={"input": {"title": "x", "is_admin": True}})
    assert response.status_code == 422


def test_update_by_non_owner_changes_nothing(client, seeded, sign_in_as, db_session):
    post_id = _post_id(db_session, "Hello from Alice")
    sign_in_as(seeded["bob"])
    response = client.post("/api/posts/update", json={"where": {"id": post_id}, "input": {"title": "Pwned"}})
    assert response.status_code == 200
    assert response.json() == []
    assert db_session.get(Post, post_id).title == "Hello from Alice"


def test_owner_can_update_and_delete(client, seeded, sign_in_as, db_session):
    alice = seeded["alice"]
    draft_id = _post_id(db_session, "Alice's draft")
    sign_in_as(alice)

    response = client.post("/api/posts/update", json={"where": {"id": draft_id}, "input": {"published": True}})
    assert response.status_code == 200
    assert [(r["id"], r["published"], r["author_id"]) for r in response.json()] == [(draft_id, True, alice.id)]

    response = client.post("/api/posts/delete", json={"where": {"id": draft_id}})
    assert _titles(response.json()) == ["Alice's draft"]
    assert db_session.get(Post, draft_id) is None


def test_users_update_only_themselves(client, seeded, sign_in_as):
    alice = seeded["alice"]
    sign_in_as(alice)
    response = client.post("/api/users/update", json={"input": {"name": "Al"}})
    assert [(r["id"], r["name"]) for r in response.json()] == [(alice.id, "Al")]


def test_excluded_operations_are_not_generated(client, seeded, sign_in_as):
    sign_in_as(seeded["alice"])
    assert client.post("/api/users/delete", json={}).status_code == 404
    assert client.post("/api/users/create-one", json={"input": {"email": "x@example.com"}}).status_code == 404
    assert client.post("/api/posts_to_categories/find-many", json={}).status_code == 404


# ---- Custom rules ----------------------------------------------------------------------


@pytest.fixture
def custom_client(tmp_path, db_session):
    from autoapi.db.session import get_db
    from autoapi.main import create_app

    def _build(rules_yaml: str) -> TestClient:
        path = tmp_path / "rules.yaml"
        path.write_text(rules_yaml, encoding="utf-8")
        app = create_app(Settings(secret="x" * 32, rules_config_path=str(path), seed_demo_data=False))
        app.dependency_overrides[get_db] = lambda: db_session
        return TestClient(app)

    return _build


@patch("autoapi.routers.generated.ModelRepository")
def test_denied_relation_denies_whole_query(mock_repo, custom_client, seeded):
    client = custom_client(
        "rules:\n"
        "  use: {exclude: [posts_to_categories]}\n"
        "  models:\n"
        "    posts:\n"
        "      query: {gate: deny}\n"
    )
    response = client.post("/api/users/find-many", json={"include": {"posts": True}})
    assert response.status_code == 403
    assert mock_repo.call_count == 0


def test_rule_misconfiguration_fails_the_operation(custom_client, seeded, caplog):
    client = custom_client(
        "rules:\n"
        "  use: {exclude: [posts_to_categories]}\n"
        "  models:\n"
        "    posts:\n"
        "      query:\n"
        "        row_filter: {policy: owner, field: author_id}\n"
    )
    response = client.post("/api/posts/find-many", json={})
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal authorization error"}
    failures = [r for r in caplog.records if r.name == "autoapi.main" and r.levelname == "ERROR"]
    assert failures and failures[0].exc_info is not None
    # Other models keep working.
    assert client.post("/api/users/count", json={}).json() == {"count": 2}


def test_missing_secret_fails_at_startup(tmp_path):
    from autoapi.authz.errors import ConfigError
    from autoapi.main import create_app

    with pytest.raises(ConfigError):
        create_app(Settings(secret=None, seed_demo_data=False))
