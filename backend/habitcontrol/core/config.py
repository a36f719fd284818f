from pydantic_settings import BaseSettings
from typing import List, Any
from pydantic import field_validator
import json


class Settings(BaseSettings):
    # Branding
    app_name: str = "HabitControl"

    # Storage
    storage_backend: str = "local"  # local, sql
    data_dir: str = "./data"
    database_url: str = "sqlite:///./habitcontrol.db"

    # Persistence calls made by the habit store
    persistence_timeout_s: float = 5.0
    persistence_retries: int = 2
    persistence_retry_delay_s: float = 0.2

    # Logging
    log_level: str = "INFO"

    # HTTP
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = ["http://localhost:8081", "http://localhost:19006"]

    class Config:
        env_file = ".env"

    @field_validator("storage_backend", mode="before")
    @classmethod
    def _normalize_backend(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("local", "sql"):
                raise ValueError(f"Unknown storage backend: {v}")
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v: Any) -> Any:
        """Allow CORS_ORIGINS to be provided as JSON array or comma-separated string."""
        if isinstance(v, str):
            sv = v.strip()
            if not sv:
                return []
            if sv.startswith("["):
                try:
                    parsed = json.loads(sv)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            # Fallback: comma-separated
            return [s.strip() for s in sv.split(",") if s.strip()]
        return v


settings = Settings()
