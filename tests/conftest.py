from __future__ import annotations

import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

import mcp_directory.core.security as security
from mcp_directory.core.config import get_settings
from mcp_directory.core.slugs import generate_slug
from mcp_directory.main import app
from mcp_directory.services.moderation import ModerationTransitionError, ensure_deletable, source_statuses_for
from mcp_directory.services.normalize import normalize_listing_record
from mcp_directory.services.repository import (
    LISTING_SORTS,
    RepositoryConflictError,
    RepositoryNotFoundError,
    get_repository,
)

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)
ADMIN_USER = {"id": "admin-1", "email": "admin@example.com", "app_metadata": {"role": "admin"}}
PLAIN_USER = {"id": "user-1", "email": "user@example.com", "app_metadata": {}, "user_metadata": {"role": "admin"}}
AUTH_HEADERS = {"Authorization": "Bearer token"}


def make_server(listing_id: int, name: str, *, status: str = "approved", **extra: Any) -> dict[str, Any]:
    row = {
        "id": listing_id,
        "created_at": BASE_TIME + timedelta(days=listing_id),
        "name": name,
        "description": f"{name} exposes tools over the Model Context Protocol.",
        "tags": ["tools"],
        "endpoint_url": f"https://example.com/{listing_id}",
        "features": [],
        "status": status,
        "user_id": None,
    }
    row.update(extra)
    return row


def make_client(listing_id: int, name: str, *, status: str = "approved", **extra: Any) -> dict[str, Any]:
    row = {
        "id": listing_id,
        "created_at": BASE_TIME + timedelta(days=listing_id),
        "name": name,
        "description": f"{name} talks to MCP servers from the desktop.",
        "tags": ["desktop"],
        "client_url": f"https://client.example.com/{listing_id}",
        "capabilities": [],
        "compatibility": [],
        "status": status,
        "user_id": None,
    }
    row.update(extra)
    return row


def make_post(post_id: str, title: str, *, status: str = "published", **extra: Any) -> dict[str, Any]:
    row = {
        "id": post_id,
        "created_at": BASE_TIME,
        "updated_at": None,
        "title": title,
        "content": "x" * 60,
        "excerpt": "An excerpt that is long enough.",
        "slug": generate_slug(title),
        "featured_image": None,
        "author_id": "admin-1",
        "status": status,
        "tags": ["news"],
    }
    row.update(extra)
    return row


def _like_to_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "\\" and index + 1 < len(pattern):
            parts.append(re.escape(pattern[index + 1]))
            index += 2
            continue
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeDirectoryRepository:
    """In-memory stand-in for PostgresRepository with the same call surface."""

    def __init__(
        self,
        *,
        servers: list[dict[str, Any]] | None = None,
        clients: list[dict[str, Any]] | None = None,
        posts: list[dict[str, Any]] | None = None,
    ) -> None:
        self.listings: dict[str, list[dict[str, Any]]] = {
            "server": [dict(row) for row in servers or []],
            "client": [dict(row) for row in clients or []],
        }
        self.posts: list[dict[str, Any]] = [dict(row) for row in posts or []]
        self.name_queries: list[tuple[str, int | None]] = []
        self._next_id = 1000

    async def close(self) -> None:
        return None

    def _out(self, kind: str, row: dict[str, Any]) -> dict[str, Any]:
        return {**normalize_listing_record(kind, row), "slug": generate_slug(row["name"])}

    def _approved(self, kind: str) -> list[dict[str, Any]]:
        return sorted(
            (row for row in self.listings[kind] if row["status"] == "approved"),
            key=lambda row: row["id"],
        )

    def _find(self, kind: str, listing_id: int) -> dict[str, Any]:
        for row in self.listings[kind]:
            if row["id"] == listing_id:
                return row
        raise RepositoryNotFoundError(f"{kind} not found")

    async def list_approved_listings(
        self,
        *,
        kind: str,
        limit: int,
        offset: int,
        search: str | None = None,
        sort: str = "latest",
    ) -> tuple[list[dict[str, Any]], int]:
        rows = self._approved(kind)
        if search:
            needle = search.lower()
            rows = [
                row
                for row in rows
                if needle in row["name"].lower()
                or needle in row["description"].lower()
                or any(needle in tag.lower() for tag in normalize_listing_record(kind, row)["tags"])
            ]
        column, direction = LISTING_SORTS.get(sort, LISTING_SORTS["latest"])
        rows = sorted(rows, key=lambda row: row[column], reverse=direction == "desc")
        return [self._out(kind, row) for row in rows[offset : offset + limit]], len(rows)

    async def get_approved_listing(self, *, kind: str, listing_id: int) -> dict[str, Any] | None:
        for row in self._approved(kind):
            if row["id"] == listing_id:
                return self._out(kind, row)
        return None

    async def list_all_approved_listings(self, *, kind: str) -> list[dict[str, Any]]:
        return [self._out(kind, row) for row in self._approved(kind)]

    async def search_approved_listings_by_name(
        self,
        *,
        kind: str,
        pattern: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.name_queries.append((pattern, limit))
        matcher = _like_to_regex(pattern)
        rows = [self._out(kind, row) for row in self._approved(kind) if matcher.match(row["name"])]
        return rows if limit is None else rows[:limit]

    async def list_recommended_listings(self, *, kind: str, exclude_id: int, limit: int) -> list[dict[str, Any]]:
        rows = [row for row in self._approved(kind) if row["id"] != exclude_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._out(kind, row) for row in rows[:limit]]

    async def create_listing(self, *, kind: str, fields: dict[str, Any], owner_id: str) -> dict[str, Any]:
        self._next_id += 1
        row = {
            **fields,
            "id": self._next_id,
            "created_at": datetime.now(timezone.utc),
            "status": "pending",
            "user_id": owner_id,
        }
        self.listings[kind].append(row)
        return self._out(kind, row)

    async def list_listings_by_owner(self, *, owner_id: str) -> list[dict[str, Any]]:
        rows = [
            {**self._out(kind, row), "type": kind}
            for kind, kind_rows in self.listings.items()
            for row in kind_rows
            if row.get("user_id") == owner_id
        ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return rows

    async def list_listings_by_status(
        self,
        *,
        kind: str,
        status: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = sorted(
            (row for row in self.listings[kind] if row["status"] == status),
            key=lambda row: row["created_at"],
            reverse=True,
        )
        return [self._out(kind, row) for row in rows[offset : offset + limit]]

    async def count_listings(self, *, kind: str, status: str) -> int:
        return sum(1 for row in self.listings[kind] if row["status"] == status)

    async def update_listing_status(self, *, kind: str, listing_id: int, status: str) -> dict[str, Any]:
        row = self._find(kind, listing_id)
        try:
            allowed_from = source_statuses_for(status)
        except ModerationTransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc
        if row["status"] not in allowed_from:
            raise RepositoryConflictError(f"invalid status transition: {row['status']} -> {status}")
        row["status"] = status
        return self._out(kind, row)

    async def update_listing_fields(self, *, kind: str, listing_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        row = self._find(kind, listing_id)
        row.update(fields)
        return self._out(kind, row)

    async def delete_listing(self, *, kind: str, listing_id: int) -> None:
        row = self._find(kind, listing_id)
        try:
            ensure_deletable(row["status"])
        except ModerationTransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc
        self.listings[kind].remove(row)

    async def list_published_posts(
        self,
        *,
        limit: int,
        offset: int,
        tag: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        rows = [row for row in self.posts if row["status"] == "published"]
        if tag:
            rows = [row for row in rows if tag in row["tags"]]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]], len(rows)

    async def list_all_published_posts(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.posts if row["status"] == "published"]

    async def get_post_by_slug(self, *, slug: str, include_drafts: bool = False) -> dict[str, Any] | None:
        for row in self.posts:
            if row["slug"] == slug and (include_drafts or row["status"] == "published"):
                return dict(row)
        return None

    async def create_post(self, *, fields: dict[str, Any], slug: str, author_id: str) -> dict[str, Any]:
        if any(row["slug"] == slug for row in self.posts):
            raise RepositoryConflictError("a record with the same unique value already exists")
        row = {
            **fields,
            "id": f"00000000-0000-0000-0000-{len(self.posts) + 1:012d}",
            "created_at": datetime.now(timezone.utc),
            "updated_at": None,
            "slug": slug,
            "author_id": author_id,
        }
        self.posts.append(row)
        return dict(row)

    async def update_post(self, *, post_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        for row in self.posts:
            if row["id"] == post_id:
                row.update(fields)
                row["updated_at"] = datetime.now(timezone.utc)
                return dict(row)
        raise RepositoryNotFoundError("blog post not found")

    async def delete_post(self, *, post_id: str) -> None:
        for row in self.posts:
            if row["id"] == post_id:
                self.posts.remove(row)
                return
        raise RepositoryNotFoundError("blog post not found")


@pytest.fixture
def fake_repo() -> FakeDirectoryRepository:
    return FakeDirectoryRepository()


@pytest.fixture
def api_client(fake_repo: FakeDirectoryRepository) -> Iterator[TestClient]:
    os.environ["MCPD_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["MCPD_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("MCPD_SUPABASE_URL", None)
    os.environ.pop("MCPD_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def mock_supabase_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
