"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Worker process
    ytdlp_binary: str = "yt-dlp"
    default_format: str = "best"
    info_timeout_seconds: float = 60.0

    # Artifact storage
    downloads_dir: str = "./downloads"
    cleanup_grace_seconds: float = 5.0
    stale_artifact_ttl_hours: int = 2
    sweep_interval_seconds: float = 600.0

    # Progress streaming
    observer_queue_size: int = 1000

    # Server
    port: int = 3001
    cors_origins: str = "*"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def cors_origins_list(self) -> list:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
