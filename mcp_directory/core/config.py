from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "mcp-directory-api"
    environment: str = "dev"
    site_url: str = "https://mcp-server-directory.com"
    site_name: str = "MCP Server Directory"
    cors_extra_origins: str = "http://localhost:3000"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    storage_timeout_seconds: float = 15.0
    storage_max_upload_bytes: int = 5 * 1024 * 1024
    servers_page_size: int = 9
    clients_page_size: int = 12
    blog_page_size: int = 9
    recommended_listings_limit: int = 9
    log_level: str = "INFO"
    otel_enabled: bool = True
    otel_service_name: str = "mcp-directory-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True
    otel_excluded_urls: str = "healthz,robots.txt,sitemap.xml"

    model_config = SettingsConfigDict(env_prefix="MCPD_", extra="ignore")

    @property
    def cors_origins(self) -> list[str]:
        extra = [origin.strip().rstrip("/") for origin in self.cors_extra_origins.split(",")]
        return list(dict.fromkeys([self.site_url.rstrip("/"), *filter(None, extra)]))


@lru_cache
def get_settings() -> Settings:
    return Settings()
