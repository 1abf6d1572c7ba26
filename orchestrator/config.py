# orchestrator/config.py
from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Agent Orchestrator"
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Dispatcher
    task_check_interval: float = Field(default=5.0, gt=0)
    wait_timeout: float = Field(default=60.0, gt=0)
    stats_file: Optional[str] = Field(default=None)

    # Workflows
    step_timeout: float = Field(default=60.0, gt=0)

    # Model selection
    default_provider: str = Field(default="openai")
    default_model: str = Field(default="gpt-4o")

    # Audit log; in-memory when unset
    memory_dir: Optional[str] = Field(default=None)

    # Natural language scheduling
    openrouter_api_key: Optional[str] = Field(default=None)
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    openrouter_model: str = Field(default="openai/gpt-4o-mini")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
