"""Centralised configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Root application settings – populated from env vars / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Server ───────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8080, validation_alias="API_PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_agent_io: bool = Field(default=False, validation_alias="LOG_AGENT_IO")
    log_max_chars: int = Field(default=3000, validation_alias="LOG_MAX_CHARS")

    # ── Generation transport ─────────────────────────────────────────
    request_timeout_secs: float = Field(default=120.0, validation_alias="REQUEST_TIMEOUT_SECS")
    max_retries: int = Field(default=2, validation_alias="MAX_RETRIES")
    retry_backoff_secs: float = Field(default=1.5, validation_alias="RETRY_BACKOFF_SECS")
    google_api_key: str = Field(default="", validation_alias="GOOGLE_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        validation_alias="GEMINI_BASE_URL",
    )
    default_model: str = Field(default="gemini-2.5-flash-preview-04-17", validation_alias="DEFAULT_MODEL")

    # ── Plan execution ───────────────────────────────────────────────
    # 0 disables the per-step bound.
    step_timeout_secs: float = Field(default=180.0, validation_alias="STEP_TIMEOUT_SECS")
    step_result_max_chars: int = Field(default=8000, validation_alias="STEP_RESULT_MAX_CHARS")
    append_step_context: bool = Field(default=True, validation_alias="APPEND_STEP_CONTEXT")

    # ── Planner (Maestro) ────────────────────────────────────────────
    planner_agent_id: str = Field(default="predef_maestro_orchestrator", validation_alias="PLANNER_AGENT_ID")
    summary_instruction_chars: int = Field(default=100, validation_alias="SUMMARY_INSTRUCTION_CHARS")
    summary_description_chars: int = Field(default=50, validation_alias="SUMMARY_DESCRIPTION_CHARS")
    chat_history_window: int = Field(default=5, validation_alias="CHAT_HISTORY_WINDOW")

    # ── Storage ──────────────────────────────────────────────────────
    # Empty paths keep the store in memory.
    plans_path: str = Field(default="", validation_alias="PLANS_PATH")
    agents_path: str = Field(default="", validation_alias="AGENTS_PATH")
    analytics_path: str = Field(default="", validation_alias="ANALYTICS_PATH")
    seed_builtin_agents: bool = Field(default=True, validation_alias="SEED_BUILTIN_AGENTS")
    plans_per_page: int = Field(default=5, validation_alias="PLANS_PER_PAGE")

    # ── Analytics summaries ──────────────────────────────────────────
    record_input_chars: int = Field(default=150, validation_alias="RECORD_INPUT_CHARS")
    record_output_chars: int = Field(default=200, validation_alias="RECORD_OUTPUT_CHARS")


settings = Settings()
