from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from mcp_directory.core.config import get_settings
from mcp_directory.core.slugs import generate_slug
from mcp_directory.services.moderation import (
    ModerationTransitionError,
    ensure_deletable,
    source_statuses_for,
)
from mcp_directory.services.normalize import normalize_blog_record, normalize_listing_record

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable, not configured or a query fails."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition or uniqueness rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before or during persistence."""


LISTING_TABLES: dict[str, str] = {"server": "servers", "client": "clients"}
LISTING_COMMON_COLUMNS: tuple[str, ...] = (
    "name",
    "description",
    "tags",
    "logo_url",
    "github_url",
    "contact_email",
    "twitter_url",
    "reddit_url",
    "linkedin_url",
    "instagram_url",
)
LISTING_KIND_COLUMNS: dict[str, tuple[str, ...]] = {
    "server": ("endpoint_url", "features"),
    "client": ("client_url", "capabilities", "compatibility"),
}
LISTING_ARRAY_COLUMNS = {"tags", "features", "capabilities", "compatibility"}
LISTING_SORTS: dict[str, tuple[str, str]] = {
    "latest": ("created_at", "desc"),
    "oldest": ("created_at", "asc"),
    "a-z": ("name", "asc"),
    "z-a": ("name", "desc"),
}
BLOG_EDITABLE_COLUMNS: tuple[str, ...] = ("title", "content", "excerpt", "featured_image", "status", "tags")
BLOG_SELECT_SQL = """
    id::text as id,
    created_at,
    updated_at,
    title,
    content,
    excerpt,
    slug,
    featured_image,
    author_id::text as author_id,
    status::text as status,
    tags
"""


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # listings: public reads

    async def list_approved_listings(
        self,
        *,
        kind: str,
        limit: int,
        offset: int,
        search: str | None = None,
        sort: str = "latest",
    ) -> tuple[list[dict[str, Any]], int]:
        table = self._listing_table(kind)
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions = ["status::text = 'approved'"]
        normalized_search = self._coerce_text(search)
        if normalized_search:
            token = bind(f"%{escape_like(normalized_search)}%")
            conditions.append(
                f"(name ilike {token} or description ilike {token} or coalesce(tags::text, '') ilike {token})"
            )
        where_sql = " and ".join(conditions)

        sort_column, direction = LISTING_SORTS.get(sort, LISTING_SORTS["latest"])
        filter_params = list(params)
        limit_token = bind(limit)
        offset_token = bind(offset)

        count_query = f"select count(*) from {table} where {where_sql}"
        page_query = f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where {where_sql}
            order by {sort_column} {direction}, id asc
            limit {limit_token}
            offset {offset_token}
        """
        total, rows = await asyncio.gather(
            self._fetchval(count_query, *filter_params),
            self._fetch(page_query, *params),
        )
        return [self._listing_row_to_dict(kind, row) for row in rows], int(total or 0)

    async def get_approved_listing(self, *, kind: str, listing_id: int) -> dict[str, Any] | None:
        table = self._listing_table(kind)
        row = await self._fetchrow(
            f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where id = $1 and status::text = 'approved'
            """,
            listing_id,
        )
        return self._listing_row_to_dict(kind, row) if row else None

    async def list_all_approved_listings(self, *, kind: str) -> list[dict[str, Any]]:
        table = self._listing_table(kind)
        rows = await self._fetch(
            f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where status::text = 'approved'
            order by id asc
            """
        )
        return [self._listing_row_to_dict(kind, row) for row in rows]

    async def search_approved_listings_by_name(
        self,
        *,
        kind: str,
        pattern: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Approved rows whose name matches an ILIKE ``pattern``.

        The caller owns wildcard placement and escaping.
        """
        table = self._listing_table(kind)
        limit_sql = f"limit {int(limit)}" if limit is not None else ""
        rows = await self._fetch(
            f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where status::text = 'approved'
              and name ilike $1
            order by id asc
            {limit_sql}
            """,
            pattern,
        )
        return [self._listing_row_to_dict(kind, row) for row in rows]

    async def list_recommended_listings(self, *, kind: str, exclude_id: int, limit: int) -> list[dict[str, Any]]:
        table = self._listing_table(kind)
        rows = await self._fetch(
            f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where status::text = 'approved'
              and id <> $1
            order by created_at desc, id asc
            limit $2
            """,
            exclude_id,
            limit,
        )
        return [self._listing_row_to_dict(kind, row) for row in rows]

    # listings: submissions and moderation

    async def create_listing(self, *, kind: str, fields: dict[str, Any], owner_id: str) -> dict[str, Any]:
        table = self._listing_table(kind)
        columns = [column for column in self._editable_columns(kind) if column in fields]
        values = [fields[column] for column in columns]
        placeholders = [f"${index}" for index in range(1, len(values) + 1)]
        owner_token = f"${len(values) + 1}"

        row = await self._fetchrow(
            f"""
            insert into {table} ({", ".join(columns)}, status, user_id)
            values ({", ".join(placeholders)}, 'pending', {owner_token}::uuid)
            returning {self._listing_select_sql(kind)}
            """,
            *values,
            owner_id,
        )
        if not row:
            raise RepositoryConflictError(f"failed to create {kind} listing")
        return self._listing_row_to_dict(kind, row)

    async def list_listings_by_owner(self, *, owner_id: str) -> list[dict[str, Any]]:
        async def _for_kind(kind: str) -> list[dict[str, Any]]:
            rows = await self._fetch(
                f"""
                select {self._listing_select_sql(kind)}
                from {self._listing_table(kind)}
                where user_id = $1::uuid
                order by created_at desc, id asc
                """,
                owner_id,
            )
            return [{**self._listing_row_to_dict(kind, row), "type": kind} for row in rows]

        server_rows, client_rows = await asyncio.gather(_for_kind("server"), _for_kind("client"))
        combined = [*server_rows, *client_rows]
        combined.sort(key=lambda item: item.get("created_at") or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return combined

    async def list_listings_by_status(
        self,
        *,
        kind: str,
        status: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        table = self._listing_table(kind)
        rows = await self._fetch(
            f"""
            select {self._listing_select_sql(kind)}
            from {table}
            where status::text = $1
            order by created_at desc, id asc
            limit $2
            offset $3
            """,
            status,
            limit,
            offset,
        )
        return [self._listing_row_to_dict(kind, row) for row in rows]

    async def count_listings(self, *, kind: str, status: str) -> int:
        table = self._listing_table(kind)
        total = await self._fetchval(f"select count(*) from {table} where status::text = $1", status)
        return int(total or 0)

    async def update_listing_status(self, *, kind: str, listing_id: int, status: str) -> dict[str, Any]:
        table = self._listing_table(kind)
        try:
            allowed_from = source_statuses_for(status)
        except ModerationTransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc

        row = await self._fetchrow(
            f"""
            update {table}
            set status = $2
            where id = $1
              and status::text = any($3::text[])
            returning {self._listing_select_sql(kind)}
            """,
            listing_id,
            status,
            allowed_from,
        )
        if row:
            return self._listing_row_to_dict(kind, row)

        current = await self._fetchval(f"select status::text from {table} where id = $1", listing_id)
        if current is None:
            raise RepositoryNotFoundError(f"{kind} not found")
        raise RepositoryConflictError(f"invalid status transition: {current} -> {status}")

    async def update_listing_fields(self, *, kind: str, listing_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        table = self._listing_table(kind)
        columns = [column for column in self._editable_columns(kind) if column in fields]
        if not columns:
            raise RepositoryValidationError("no editable fields supplied")

        assignments = [f"{column} = ${index}" for index, column in enumerate(columns, start=2)]
        row = await self._fetchrow(
            f"""
            update {table}
            set {", ".join(assignments)}
            where id = $1
            returning {self._listing_select_sql(kind)}
            """,
            listing_id,
            *[fields[column] for column in columns],
        )
        if not row:
            raise RepositoryNotFoundError(f"{kind} not found")
        return self._listing_row_to_dict(kind, row)

    async def delete_listing(self, *, kind: str, listing_id: int) -> None:
        table = self._listing_table(kind)
        deleted = await self._fetchval(
            f"""
            delete from {table}
            where id = $1
              and status::text in ('approved', 'rejected')
            returning id
            """,
            listing_id,
        )
        if deleted is not None:
            return

        current = await self._fetchval(f"select status::text from {table} where id = $1", listing_id)
        if current is None:
            raise RepositoryNotFoundError(f"{kind} not found")
        try:
            ensure_deletable(current)
        except ModerationTransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc
        # Status changed between the delete and the lookup; last write wins.
        raise RepositoryConflictError(f"{kind} changed while deleting")

    # blog

    async def list_published_posts(
        self,
        *,
        limit: int,
        offset: int,
        tag: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        params: list[Any] = []
        conditions = ["status::text = 'published'"]
        normalized_tag = self._coerce_text(tag)
        if normalized_tag:
            params.append(normalized_tag)
            conditions.append("$1 = any(tags)")
        where_sql = " and ".join(conditions)
        filter_params = list(params)
        params.extend([limit, offset])

        total, rows = await asyncio.gather(
            self._fetchval(f"select count(*) from blog_posts where {where_sql}", *filter_params),
            self._fetch(
                f"""
                select {BLOG_SELECT_SQL}
                from blog_posts
                where {where_sql}
                order by created_at desc, id asc
                limit ${len(params) - 1}
                offset ${len(params)}
                """,
                *params,
            ),
        )
        return [self._blog_row_to_dict(row) for row in rows], int(total or 0)

    async def list_all_published_posts(self) -> list[dict[str, Any]]:
        rows = await self._fetch(
            f"""
            select {BLOG_SELECT_SQL}
            from blog_posts
            where status::text = 'published'
            order by created_at desc, id asc
            """
        )
        return [self._blog_row_to_dict(row) for row in rows]

    async def get_post_by_slug(self, *, slug: str, include_drafts: bool = False) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            select {BLOG_SELECT_SQL}
            from blog_posts
            where slug = $1
              and ($2::boolean or status::text = 'published')
            """,
            slug,
            include_drafts,
        )
        return self._blog_row_to_dict(row) if row else None

    async def create_post(self, *, fields: dict[str, Any], slug: str, author_id: str) -> dict[str, Any]:
        columns = [column for column in BLOG_EDITABLE_COLUMNS if column in fields]
        values = [fields[column] for column in columns]
        placeholders = [f"${index}" for index in range(1, len(values) + 1)]
        row = await self._fetchrow(
            f"""
            insert into blog_posts ({", ".join(columns)}, slug, author_id)
            values ({", ".join(placeholders)}, ${len(values) + 1}, ${len(values) + 2}::uuid)
            returning {BLOG_SELECT_SQL}
            """,
            *values,
            slug,
            author_id,
        )
        if not row:
            raise RepositoryConflictError("failed to create blog post")
        return self._blog_row_to_dict(row)

    async def update_post(self, *, post_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        columns = [column for column in BLOG_EDITABLE_COLUMNS if column in fields]
        if not columns:
            raise RepositoryValidationError("no editable fields supplied")
        assignments = [f"{column} = ${index}" for index, column in enumerate(columns, start=2)]
        row = await self._fetchrow(
            f"""
            update blog_posts
            set {", ".join(assignments)}, updated_at = now()
            where id = $1::uuid
            returning {BLOG_SELECT_SQL}
            """,
            post_id,
            *[fields[column] for column in columns],
        )
        if not row:
            raise RepositoryNotFoundError("blog post not found")
        return self._blog_row_to_dict(row)

    async def delete_post(self, *, post_id: str) -> None:
        deleted = await self._fetchval("delete from blog_posts where id = $1::uuid returning id", post_id)
        if deleted is None:
            raise RepositoryNotFoundError("blog post not found")

    # plumbing

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        pool = await self._get_pool()
        return await self._run(pool.fetch, query, *args)

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        pool = await self._get_pool()
        return await self._run(pool.fetchrow, query, *args)

    async def _fetchval(self, query: str, *args: Any) -> Any:
        pool = await self._get_pool()
        return await self._run(pool.fetchval, query, *args)

    @staticmethod
    async def _run(method: Any, query: str, *args: Any) -> Any:
        try:
            return await method(query, *args)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("a record with the same unique value already exists") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid identifier or field value") from exc
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.warning("database query failed: %s", exc)
            raise RepositoryUnavailableError("database query failed") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("MCPD_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        # Count and page queries run concurrently; only one of them may create the pool.
        async with self._pool_lock:
            if self._pool is not None:
                return self._pool
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.database_url,
                    min_size=self.min_pool_size,
                    max_size=self.max_pool_size,
                    command_timeout=15,
                )
            except Exception as exc:  # pragma: no cover - depends on environment
                raise RepositoryUnavailableError("database unavailable") from exc
        return self._pool

    @staticmethod
    def _listing_table(kind: str) -> str:
        table = LISTING_TABLES.get(kind)
        if table is None:
            raise RepositoryValidationError(f"unknown listing kind: {kind}")
        return table

    @staticmethod
    def _editable_columns(kind: str) -> tuple[str, ...]:
        return LISTING_COMMON_COLUMNS + LISTING_KIND_COLUMNS[kind]

    def _listing_select_sql(self, kind: str) -> str:
        columns = [
            "id",
            "created_at",
            *self._editable_columns(kind),
            "status::text as status",
            "user_id::text as user_id",
        ]
        return ", ".join(columns)

    @staticmethod
    def _listing_row_to_dict(kind: str, row: asyncpg.Record) -> dict[str, Any]:
        record = normalize_listing_record(kind, dict(row))
        record["slug"] = generate_slug(record.get("name") or "")
        return record

    @staticmethod
    def _blog_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return normalize_blog_record(dict(row))

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
