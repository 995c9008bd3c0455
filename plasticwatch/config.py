from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    data_dir: str = "./data"
    api_key: str = ""  # empty = no gateway check (local dev)
    public_base_url: str = "http://localhost:8000"
    max_image_size_bytes: int = 10 * 1024 * 1024  # 10MB
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    # Accept role=admin from user_metadata when app_metadata does not grant it
    allow_legacy_role_claim: bool = True
    log_level: str = "INFO"

    # Offline client
    queue_database_url: str = "sqlite+aiosqlite:///./data/offline_queue.sqlite3"
    remote_api_url: str = "http://localhost:8000"
    remote_api_key: str = ""
    remote_user_claims: str = ""  # JSON forwarded as X-User-Claims
    remote_timeout_seconds: float = 30.0
    sync_poll_interval_seconds: float = 15.0
    image_bucket: str = "images"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
