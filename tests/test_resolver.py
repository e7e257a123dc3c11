import asyncio
from typing import Any

from conftest import FakeDirectoryRepository, make_server
from mcp_directory.services.repository import RepositoryUnavailableError
from mcp_directory.services.resolver import (
    best_token_match,
    canonical_redirect_target,
    resolve_listing,
    slug_tokens,
)


def _repo() -> FakeDirectoryRepository:
    return FakeDirectoryRepository(
        servers=[
            make_server(1, "GitHub MCP Server"),
            make_server(2, "Filesystem Tools"),
            make_server(3, "Postgres Query Runner"),
            make_server(4, "Hidden Server", status="pending"),
            make_server(5, "Brave Search"),
        ]
    )


def test_numeric_segment_resolves_by_id() -> None:
    resolved = asyncio.run(resolve_listing(_repo(), "server", "2"))

    assert resolved is not None
    assert resolved.matched_by == "id"
    assert resolved.listing["name"] == "Filesystem Tools"
    assert resolved.canonical_slug == "filesystem-tools"


def test_numeric_segment_without_approved_row_is_not_found() -> None:
    assert asyncio.run(resolve_listing(_repo(), "server", "4")) is None
    assert asyncio.run(resolve_listing(_repo(), "server", "999")) is None


def test_exact_slug_match_is_case_insensitive() -> None:
    resolved = asyncio.run(resolve_listing(_repo(), "server", "GitHub-MCP-Server"))

    assert resolved is not None
    assert resolved.matched_by == "exact"
    assert resolved.listing["id"] == 1


def test_partial_slug_match() -> None:
    resolved = asyncio.run(resolve_listing(_repo(), "server", "github-mcp"))

    assert resolved is not None
    assert resolved.matched_by == "partial"
    assert resolved.listing["id"] == 1


def test_fuzzy_match_scores_name_tokens() -> None:
    repo = _repo()

    resolved = asyncio.run(resolve_listing(repo, "server", "postgres-sql-runner"))

    assert resolved is not None
    assert resolved.matched_by == "fuzzy"
    assert resolved.listing["id"] == 3
    assert resolved.score == 2
    assert repo.name_queries[0] == ("%postgres%", None)


def test_global_match_when_fuzzy_query_fails() -> None:
    class FlakyRepository(FakeDirectoryRepository):
        async def search_approved_listings_by_name(self, *, kind: str, pattern: str, limit: int | None = None):
            if limit is None:
                raise RepositoryUnavailableError("database query failed")
            return await super().search_approved_listings_by_name(kind=kind, pattern=pattern, limit=limit)

    repo = FlakyRepository(servers=[make_server(7, "A B Weather Service")])

    resolved = asyncio.run(resolve_listing(repo, "server", "b-weather-svc"))

    assert resolved is None
    assert repo.name_queries[-1] == ("%b%weather%svc%", 5)

    resolved = asyncio.run(resolve_listing(repo, "server", "weather-vice"))

    assert resolved is not None
    assert resolved.matched_by == "global"
    assert resolved.listing["id"] == 7


def test_segment_without_usable_tokens_is_not_found() -> None:
    repo = _repo()

    assert asyncio.run(resolve_listing(repo, "server", "ab-cd")) is None
    assert repo.name_queries == []


def test_backend_failure_reads_as_not_found() -> None:
    class BrokenRepository(FakeDirectoryRepository):
        async def list_all_approved_listings(self, *, kind: str) -> list[dict[str, Any]]:
            raise RepositoryUnavailableError("database unavailable")

    assert asyncio.run(resolve_listing(BrokenRepository(), "server", "github")) is None


def test_slug_tokens_drop_short_parts() -> None:
    assert slug_tokens("My-MCP-Server-v2") == ["mcp", "server"]


def test_best_token_match_keeps_first_on_ties() -> None:
    rows = [{"id": 1, "name": "Alpha Tools"}, {"id": 2, "name": "Tools Alpha"}]

    best = best_token_match(rows, ["alpha", "tools"])

    assert best is not None
    assert best[0]["id"] == 1
    assert best[1] == 2


def test_best_token_match_needs_positive_score() -> None:
    assert best_token_match([{"id": 1, "name": "Unrelated"}], ["github"]) is None


def test_redirect_rules() -> None:
    listing = {"id": 1, "name": "GitHub MCP Server"}

    assert canonical_redirect_target("1", listing) == "github-mcp-server"
    assert canonical_redirect_target("github-mcp-server", listing) is None
    assert canonical_redirect_target("github-mcp", listing) is None
    assert canonical_redirect_target("gh-server-tools", listing) == "github-mcp-server"


def test_numeric_name_does_not_redirect_to_itself() -> None:
    assert canonical_redirect_target("2048", {"id": 9, "name": "2048"}) is None
