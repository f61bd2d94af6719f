"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. Endpoint URLs and tokens are injected via environment,
never hard-coded for production.

To extend: add new fields here; every field can be set as an env var of the
same name (case-insensitive).
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins for the map front end.
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── Clustering backend ────────────────────────────────────────
    cluster_api_url: str = "http://localhost:3000"
    cluster_endpoint: str = "/api/mapa-calor/lugar-intervencion"
    cluster_api_token: str = ""

    # When True, ClusterAdapter returns generated points instead of calling
    # the backend. Always True in tests; set False when a backend is running.
    cluster_mock_mode: bool = True

    # Transport-level timeout; the synchronizer itself imposes none.
    http_timeout_seconds: float = 15.0

    # ─── Reverse geocoding (Nominatim) ─────────────────────────────
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    # Nominatim's usage policy requires an identifying User-Agent.
    nominatim_user_agent: str = "heatmap-sync/0.1 (contact: admin@example.com)"
    geocoding_rate_limit: str = "1/second"
    geocoding_cache_ttl_seconds: int = 7 * 24 * 60 * 60
    geocoding_cache_maxsize: int = 1000

    # ─── Geolocation ───────────────────────────────────────────────
    # False means the user has not consented; the default center is used.
    geolocation_enabled: bool = False
    geolocation_url: str = "http://ip-api.com/json/"
    geolocation_timeout_seconds: float = 5.0

    # ─── Viewport ──────────────────────────────────────────────────
    # Default center (Mexico City) when geolocation is unavailable.
    default_latitude: float = 19.4326
    default_longitude: float = -99.1332
    initial_zoom: int = 11
    initial_span_degrees: float = 0.2  # ~22 km radius
    debounce_seconds: float = 0.3

    # ─── Inbound rate limiting ─────────────────────────────────────
    viewport_rate_limit: str = "240/minute"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton: import this everywhere instead of instantiating Settings()
settings = Settings()
