from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from xml.sax.saxutils import escape

from mcp_directory.core.slugs import generate_slug
from mcp_directory.services.repository import RepositoryError

logger = logging.getLogger(__name__)

META_DESCRIPTION_LIMIT = 160
LISTING_PATHS: dict[str, str] = {"server": "servers", "client": "clients"}
LISTING_LABELS: dict[str, str] = {"server": "Server", "client": "Client"}
LISTING_URL_FIELDS: dict[str, str] = {"server": "endpoint_url", "client": "client_url"}
LISTING_KEYWORD_FIELDS: dict[str, tuple[str, ...]] = {
    "server": ("tags", "features"),
    "client": ("tags", "capabilities"),
}
STATIC_ROUTES: tuple[tuple[str, str, float], ...] = (
    ("/", "daily", 1.0),
    ("/servers", "daily", 0.9),
    ("/clients", "daily", 0.9),
    ("/blog", "daily", 0.8),
    ("/submit", "weekly", 0.8),
    ("/about", "monthly", 0.6),
)
ROBOTS_DISALLOW: tuple[str, ...] = ("/admin/", "/api/")


@dataclass(slots=True)
class SitemapEntry:
    loc: str
    lastmod: str | None = None
    changefreq: str | None = None
    priority: float | None = None


class SitemapSource(Protocol):
    async def list_all_approved_listings(self, *, kind: str) -> list[dict[str, Any]]: ...

    async def list_all_published_posts(self) -> list[dict[str, Any]]: ...


def truncate_description(text: str | None, limit: int = META_DESCRIPTION_LIMIT) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."


def listing_canonical_url(site_url: str, kind: str, listing: dict[str, Any]) -> str:
    slug = generate_slug(listing.get("name") or "")
    return f"{site_url.rstrip('/')}/{LISTING_PATHS[kind]}/{slug}"


def build_listing_metadata(*, site_url: str, site_name: str, kind: str, listing: dict[str, Any]) -> dict[str, Any]:
    name = listing.get("name") or ""
    label = LISTING_LABELS[kind]
    description = truncate_description(listing.get("description"))
    canonical_url = listing_canonical_url(site_url, kind, listing)
    logo_url = listing.get("logo_url")

    keywords = [f"MCP {label.lower()}", "Model Context Protocol"]
    for field_name in LISTING_KEYWORD_FIELDS[kind]:
        keywords.extend(listing.get(field_name) or [])

    return {
        "title": f"{name} | {site_name}",
        "description": description,
        "keywords": keywords,
        "canonical_url": canonical_url,
        "open_graph": {
            "title": f"{name} - Model Context Protocol {label}",
            "description": description,
            "type": "website",
            "url": canonical_url,
            "site_name": site_name,
            "images": [{"url": logo_url, "alt": f"{name} logo"}] if logo_url else [],
        },
        "twitter": {
            "card": "summary",
            "title": f"{name} | MCP {label}",
            "description": description,
            "images": [logo_url] if logo_url else [],
        },
        "structured_data": build_structured_data(kind=kind, listing=listing),
    }


def build_structured_data(*, kind: str, listing: dict[str, Any]) -> dict[str, Any]:
    created_at = listing.get("created_at")
    data: dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "SoftwareApplication",
        "name": listing.get("name"),
        "description": listing.get("description"),
        "applicationCategory": "AIApplication",
        "operatingSystem": "Cross-platform",
        "url": listing.get(LISTING_URL_FIELDS[kind]),
        "datePublished": created_at.isoformat() if isinstance(created_at, datetime) else created_at,
        "offers": {
            "@type": "Offer",
            "price": "0",
            "priceCurrency": "USD",
            "availability": "https://schema.org/InStock",
        },
        "keywords": ", ".join(listing.get("tags") or []),
    }
    if listing.get("logo_url"):
        data["image"] = listing["logo_url"]
    if listing.get("github_url"):
        data["codeRepository"] = listing["github_url"]
    return data


async def collect_sitemap_entries(source: SitemapSource, site_url: str) -> list[SitemapEntry]:
    base_url = site_url.rstrip("/")
    entries = [
        SitemapEntry(loc=f"{base_url}{path}", changefreq=changefreq, priority=priority)
        for path, changefreq, priority in STATIC_ROUTES
    ]

    for kind, path in LISTING_PATHS.items():
        try:
            listings = await source.list_all_approved_listings(kind=kind)
        except RepositoryError as exc:
            logger.error("sitemap skipped %s listings: %s", kind, exc)
            continue
        entries.extend(
            SitemapEntry(
                loc=listing_canonical_url(base_url, kind, listing),
                lastmod=_format_lastmod(listing.get("created_at")),
                changefreq="weekly",
                priority=0.8,
            )
            for listing in listings
            if listing.get("slug")
        )

    try:
        posts = await source.list_all_published_posts()
    except RepositoryError as exc:
        logger.error("sitemap skipped blog posts: %s", exc)
        posts = []
    entries.extend(
        SitemapEntry(
            loc=f"{base_url}/blog/{post['slug']}",
            lastmod=_format_lastmod(post.get("updated_at") or post.get("created_at")),
            changefreq="monthly",
            priority=0.7,
        )
        for post in posts
        if post.get("slug")
    )
    return entries


def render_sitemap_xml(entries: list[SitemapEntry]) -> str:
    xml_parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for entry in entries:
        xml_parts.append("  <url>")
        xml_parts.append(f"    <loc>{escape(entry.loc)}</loc>")
        if entry.lastmod:
            xml_parts.append(f"    <lastmod>{entry.lastmod}</lastmod>")
        if entry.changefreq:
            xml_parts.append(f"    <changefreq>{entry.changefreq}</changefreq>")
        if entry.priority is not None:
            xml_parts.append(f"    <priority>{entry.priority:.1f}</priority>")
        xml_parts.append("  </url>")
    xml_parts.append("</urlset>")
    return "\n".join(xml_parts)


def render_robots_txt(site_url: str) -> str:
    base_url = site_url.rstrip("/")
    lines = ["User-agent: *"]
    lines.extend(f"Disallow: {path}" for path in ROBOTS_DISALLOW)
    lines.append("")
    lines.append(f"Sitemap: {base_url}/sitemap.xml")
    lines.append(f"Host: {base_url}")
    return "\n".join(lines) + "\n"


def _format_lastmod(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return None
