from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "P2P Shuttle API"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    # CORS: "*" for dev; in production set to comma-separated origins, e.g. "https://p2pnow.netlify.app"
    cors_origins: str = "*"
    mapbox_token: str = ""  # Server-side only; directions and geocoding fall back to straight lines / no matches without it
    claude_api_key: str = ""  # Anthropic API key for the complaints summary
    app_db_path: str = "data/app.db"  # Recent searches; path relative to backend root, or absolute
    route_geometry_path: str = "data/route_geometry.json"  # Written by scripts/fetch_route_geometry.py

    # Planning / rendering tunables
    walk_preferred_threshold_m: float = 200.0
    route_overlap_tolerance_m: float = 4.0
    leave_buffer_seconds: float = 90.0

    # Live behavior
    vehicle_tick_seconds: float = 0.3
    geocode_debounce_seconds: float = 0.28
    proximity_lon: float = -79.0478  # Student Union
    proximity_lat: float = 35.9105


def get_settings() -> Settings:
    return Settings()
