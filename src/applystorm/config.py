from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "ApplyStorm"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8080
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/applystorm.db"
    data_dir: Path = Path("./data")
    store_backend: str = "sql"
    jobs_path: str = "expats_jobs"
    users_path: str = "users"
    ledger_path: str = "applyLog"

    resend_api_key: str = ""
    resend_base_url: str = "https://api.resend.com"
    mail_timeout_sec: int = 20
    from_email: str = "So Jobless BH <team@sojobless.live>"
    brand_base_url: str = "https://sojobless.live"
    brand_name: str = "So Jobless BH"

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_timeout_sec: int = 30

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 60

    enhancement_provider: str = "openai"
    enhancement_timeout_sec: float = 15.0
    enhancement_delay_ms: int = 100
    enhancement_backoff_max_sec: float = 60.0

    max_selected_roles: int = 3
    max_contacts: int = 3
    send_delay_ms: int = 150
    user_delay_ms: int = 250
    run_deadline_sec: float = 240.0
    sweep_deadline_sec: float = 3300.0
    categorize_limit: int = 200
    detach_summary_email: bool = True
    taxonomy_path: Path | None = None

    cors_origins: str = (
        "https://sojobless.live,http://localhost:3000,http://localhost:8080,"
        "https://applystorm-production.up.railway.app"
    )
    cors_origin_regex: str = r"https://.*\.up\.railway\.app"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, value: str) -> str:
        allowed = {"sql", "memory"}
        if value not in allowed:
            raise ValueError(f"store_backend must be one of {sorted(allowed)}")
        return value

    @field_validator("max_selected_roles", "max_contacts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def brand_url(self) -> str:
        return (self.brand_base_url or "https://sojobless.live").rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
