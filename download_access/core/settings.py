from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, case_sensitive=False)

    # App
    app_name: str = "Download Access API"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./download_access.db"

    # Security
    access_token_secret: str = "dev-access-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expires_minutes: int = 15

    # Download tokens
    download_token_secret: str = "dev-download-secret-change-me"
    max_downloads_per_token: int = 10
    download_token_expires_hours: int = 24
    user_agent_similarity_threshold: float = 0.8
    # Only enable behind a reverse proxy that overwrites X-Forwarded-For and friends
    trust_proxy_headers: bool = False

    # Request classification
    existence_cache_ttl_seconds: int = 300

    # Janitor
    janitor_enabled: bool = True
    janitor_interval_minutes: int = 15


settings = Settings()
