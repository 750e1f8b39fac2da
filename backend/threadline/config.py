"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - get_settings() is cached (lru_cache): single instance per process
    - Every custom context limit lies in [MIN_CUSTOM_CONTEXT_LIMIT, MAX_CUSTOM_CONTEXT_LIMIT]

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults for every setting: a bare environment decodes Claude Agent SDK output as-is
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from threadline.core.domain_types import (
    DEFAULT_OUTPUT_PROBE_TOOLS, DEFAULT_TASK_TOOL,
    MAX_CUSTOM_CONTEXT_LIMIT, MIN_CUSTOM_CONTEXT_LIMIT,
)
from threadline.core.message_decoder import DecodeOptions


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Agent / usage
    agent_default_model: str = "sonnet"
    agent_context_1m: bool = False
    agent_context_limits: dict[str, int] = {}

    @field_validator("agent_context_limits")
    @classmethod
    def check_context_limits(cls, v: dict[str, int]) -> dict[str, int]:
        for model, limit in v.items():
            if not MIN_CUSTOM_CONTEXT_LIMIT <= limit <= MAX_CUSTOM_CONTEXT_LIMIT:
                raise ValueError(
                    f"context limit for {model!r} must be between "
                    f"{MIN_CUSTOM_CONTEXT_LIMIT} and {MAX_CUSTOM_CONTEXT_LIMIT}, got {limit}"
                )
        return v

    # Tool names
    task_tool_name: str = DEFAULT_TASK_TOOL
    output_probe_tool_names: list[str] = list(DEFAULT_OUTPUT_PROBE_TOOLS)

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError(f"log_format must be 'json' or 'text', got {v!r}")
        return v

    def decode_options(self) -> DecodeOptions:
        return DecodeOptions(
            default_model=self.agent_default_model,
            context_1m_enabled=self.agent_context_1m,
            custom_context_limits=dict(self.agent_context_limits),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
