from __future__ import annotations

from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import mcp_directory.core.security as security
from conftest import ADMIN_USER, AUTH_HEADERS, PLAIN_USER, FakeDirectoryRepository, make_post, mock_supabase_user

DRAFT_ID = "00000000-0000-0000-0000-0000000000d1"
PUBLISHED_ID = "00000000-0000-0000-0000-0000000000a1"


@pytest.fixture
def fake_repo() -> FakeDirectoryRepository:
    return FakeDirectoryRepository(
        posts=[
            make_post(PUBLISHED_ID, "Hello MCP World"),
            make_post("00000000-0000-0000-0000-0000000000a2", "Release Notes", tags=["release"]),
            make_post(DRAFT_ID, "Upcoming Draft", status="draft"),
        ]
    )


def _post_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "title": "Building an MCP Server",
        "content": "A walkthrough of exposing tools over the Model Context Protocol. " * 2,
        "excerpt": "How to ship your first MCP server.",
        "tags": "guides, servers",
        "status": "published",
    }
    payload.update(overrides)
    return payload


def test_blog_lists_published_posts_only(api_client: TestClient) -> None:
    body = api_client.get("/blog").json()

    assert {item["slug"] for item in body["items"]} == {"hello-mcp-world", "release-notes"}
    assert body["pagination"]["page_size"] == 9


def test_blog_filters_by_tag(api_client: TestClient) -> None:
    body = api_client.get("/blog", params={"tag": "release"}).json()

    assert [item["title"] for item in body["items"]] == ["Release Notes"]


def test_draft_is_hidden_from_public(api_client: TestClient) -> None:
    assert api_client.get("/blog/upcoming-draft").status_code == 404
    assert api_client.get("/blog/hello-mcp-world").status_code == 200


def test_admin_can_preview_draft(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    response = api_client.get("/blog/upcoming-draft", headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == "draft"


def test_user_cannot_preview_draft(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, PLAIN_USER)

    assert api_client.get("/blog/upcoming-draft", headers=AUTH_HEADERS).status_code == 404


def test_expired_token_reads_published_post_anonymously(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _reject(**_: Any) -> dict[str, Any]:
        raise HTTPException(status_code=401, detail="invalid bearer token")

    monkeypatch.setattr(security, "_fetch_supabase_user", _reject)
    headers = {"Authorization": "Bearer expired"}

    assert api_client.get("/blog/hello-mcp-world", headers=headers).status_code == 200
    assert api_client.get("/blog/upcoming-draft", headers=headers).status_code == 404


def test_auth_outage_still_fails_post_read(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _outage(**_: Any) -> dict[str, Any]:
        raise HTTPException(status_code=503, detail="Supabase auth verification unavailable")

    monkeypatch.setattr(security, "_fetch_supabase_user", _outage)

    response = api_client.get("/blog/hello-mcp-world", headers=AUTH_HEADERS)

    assert response.status_code == 503


def test_admin_creates_post_with_slug(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    response = api_client.post("/blog", json=_post_payload(), headers=AUTH_HEADERS)

    assert response.status_code == 201
    body = response.json()
    assert body["slug"] == "building-an-mcp-server"
    assert body["tags"] == ["guides", "servers"]
    assert body["author_id"] == "admin-1"
    assert api_client.get("/blog/building-an-mcp-server").status_code == 200


def test_duplicate_title_conflicts(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    response = api_client.post("/blog", json=_post_payload(title="Hello MCP World!"), headers=AUTH_HEADERS)

    assert response.status_code == 409


def test_title_without_slug_characters_is_rejected(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    for title in ("?????", " ?? ?? "):
        response = api_client.post("/blog", json=_post_payload(title=title), headers=AUTH_HEADERS)
        assert response.status_code == 422


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": "Hey"},
        {"content": "too short"},
        {"excerpt": "short"},
        {"excerpt": "x" * 201},
        {"status": "archived"},
    ],
)
def test_invalid_posts_are_rejected(
    api_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    overrides: dict[str, Any],
) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    assert api_client.post("/blog", json=_post_payload(**overrides), headers=AUTH_HEADERS).status_code == 422


def test_user_cannot_write_posts(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, PLAIN_USER)

    assert api_client.post("/blog", json=_post_payload(), headers=AUTH_HEADERS).status_code == 403
    assert api_client.delete(f"/blog/{PUBLISHED_ID}", headers=AUTH_HEADERS).status_code == 403


def test_admin_publishes_draft(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    response = api_client.patch(f"/blog/{DRAFT_ID}", json={"status": "published"}, headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.json()["updated_at"] is not None
    assert api_client.get("/blog/upcoming-draft").status_code == 200


def test_admin_deletes_post(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    assert api_client.delete(f"/blog/{PUBLISHED_ID}", headers=AUTH_HEADERS).status_code == 204
    assert api_client.delete(f"/blog/{PUBLISHED_ID}", headers=AUTH_HEADERS).status_code == 404
    assert api_client.get("/blog/hello-mcp-world").status_code == 404


def test_post_ids_must_be_uuids(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    mock_supabase_user(monkeypatch, ADMIN_USER)

    assert api_client.delete("/blog/not-a-uuid", headers=AUTH_HEADERS).status_code == 422
