"""Environment-driven settings for the research service."""

from functools import lru_cache
from typing import Annotated, Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_STRUCTURED_MODEL = "anthropic:claude-sonnet-4-5"
DEFAULT_REPORT_MODEL = "anthropic:claude-sonnet-4-5"


class Settings(BaseSettings):
    """Runtime configuration. Read once per process via ``get_settings``."""

    model_config = SettingsConfigDict(
        env_prefix="RESEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Models
    plan_model: str = Field(default=DEFAULT_STRUCTURED_MODEL, description="Model for research plans")
    analysis_model: str = Field(default=DEFAULT_STRUCTURED_MODEL, description="Model for analysis steps")
    gap_model: str = Field(default=DEFAULT_STRUCTURED_MODEL, description="Model for gap analysis")
    synthesis_model: str = Field(default=DEFAULT_STRUCTURED_MODEL, description="Model for the final synthesis")
    report_model: str = Field(default=DEFAULT_REPORT_MODEL, description="Model for the streamed report")

    # Search
    tavily_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("TAVILY_API_KEY", "tavily_api_key"),
        description="Tavily API key",
    )
    include_domains: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), description="Comma separated domains every search is restricted to"
    )
    exclude_domains: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), description="Comma separated domains removed from every search"
    )

    # Timeouts in seconds
    generation_timeout: float = Field(default=120.0, gt=0)
    search_timeout: float = Field(default=30.0, gt=0)
    image_check_timeout: float = Field(default=5.0, gt=0)

    @field_validator("include_domains", "exclude_domains", mode="before")
    @classmethod
    def split_domains(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings for production code paths."""
    return Settings()
