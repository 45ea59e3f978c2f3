"""
Service configuration using Pydantic Settings

Loads from environment variables with .env file support
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from module_agent.domain.orchestration.core.orchestrator_config import OrchestratorConfig
from module_agent.domain.tool.tool_context import ToolLimits


class Settings(BaseSettings):

    """Application settings"""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    # ========================================================================
    # LLM Provider
    # ========================================================================

    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API key; chat requests fail as internal when empty"
    )

    anthropic_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Model used for every completion"
    )

    max_output_tokens: int = Field(default=4096, ge=1)

    # ========================================================================
    # Orchestrator & Tool Bounds
    # ========================================================================

    max_tool_rounds: int = Field(default=10, ge=1, description="Provider rounds per chat turn")
    max_history_messages: int = Field(default=20, ge=1, description="Messages replayed as history")
    max_batch_entries: int = Field(default=50, ge=1)
    default_query_limit: int = Field(default=20, ge=1)
    max_query_limit: int = Field(default=50, ge=1)
    summary_recent_entries: int = Field(default=5, ge=0)

    # ========================================================================
    # Google Cloud
    # ========================================================================

    google_cloud_project: Optional[str] = Field(
        default=None,
        description="Project hosting Firestore (defaults to the credential's project)"
    )

    firestore_database: Optional[str] = Field(
        default=None,
        description="Named Firestore database; None for (default)"
    )

    firebase_project_id: Optional[str] = Field(
        default=None,
        description="Audience expected on Firebase ID tokens; falls back to google_cloud_project. Tokens are rejected when both are unset"
    )

    # ========================================================================
    # Service
    # ========================================================================

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or console")
    service_name: str = Field(default="module-agent")
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(
            model=self.anthropic_model,
            max_output_tokens=self.max_output_tokens,
            max_tool_rounds=self.max_tool_rounds,
            max_history_messages=self.max_history_messages,
        )

    def token_audience(self) -> Optional[str]:
        return self.firebase_project_id or self.google_cloud_project

    def tool_limits(self) -> ToolLimits:
        return ToolLimits(
            max_batch_entries=self.max_batch_entries,
            default_query_limit=self.default_query_limit,
            max_query_limit=self.max_query_limit,
            summary_recent_entries=self.summary_recent_entries,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
