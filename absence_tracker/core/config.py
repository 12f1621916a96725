from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    # Local development only; deployed databases are migrated
    auto_create_tables: bool = Field(False, alias="AUTO_CREATE_TABLES")

    # Extraction providers, tried left to right
    ai_provider_order: str = Field("grok,openai", alias="AI_PROVIDER_ORDER")

    grok_api_key: Optional[str] = Field(None, alias="GROK_API_KEY")
    grok_base_url: str = Field("https://api.x.ai/v1", alias="GROK_BASE_URL")
    grok_model: str = Field("grok-beta", alias="GROK_MODEL")
    grok_cost_per_1k_tokens: float = Field(0.00015, alias="GROK_COST_PER_1K_TOKENS")

    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field("https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field("gpt-4", alias="OPENAI_MODEL")
    openai_cost_per_1k_tokens: float = Field(0.03, alias="OPENAI_COST_PER_1K_TOKENS")

    ai_provider_timeout_seconds: float = Field(30.0, alias="AI_PROVIDER_TIMEOUT_SECONDS")
    ai_pipeline_timeout_seconds: float = Field(90.0, alias="AI_PIPELINE_TIMEOUT_SECONDS")
    ai_confidence_threshold: float = Field(0.8, alias="AI_CONFIDENCE_THRESHOLD")
    ai_max_tokens: int = Field(1000, alias="AI_MAX_TOKENS")
    ai_temperature: float = Field(0.1, alias="AI_TEMPERATURE")
    ai_log_body_excerpt_chars: int = Field(500, alias="AI_LOG_BODY_EXCERPT_CHARS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and pricing for one chat-completion extraction provider."""

    name: str
    api_key: Optional[str]
    base_url: str
    model: str
    cost_per_1k_tokens: float = 0.0


@dataclass(frozen=True)
class ExtractionConfig:
    """Everything the extraction orchestrator needs; built once and injected."""

    providers: List[ProviderConfig] = field(default_factory=list)
    provider_timeout_seconds: float = 30.0
    pipeline_timeout_seconds: float = 90.0
    confidence_threshold: float = 0.8
    max_tokens: int = 1000
    temperature: float = 0.1
    log_body_excerpt_chars: int = 500


def extraction_config_from_settings(s: Settings) -> ExtractionConfig:
    """Map flat settings to an ExtractionConfig, keeping AI_PROVIDER_ORDER priority."""
    known = {
        "grok": ProviderConfig(
            name="grok",
            api_key=s.grok_api_key,
            base_url=s.grok_base_url,
            model=s.grok_model,
            cost_per_1k_tokens=s.grok_cost_per_1k_tokens,
        ),
        "openai": ProviderConfig(
            name="openai",
            api_key=s.openai_api_key,
            base_url=s.openai_base_url,
            model=s.openai_model,
            cost_per_1k_tokens=s.openai_cost_per_1k_tokens,
        ),
    }
    order = [name.strip().lower() for name in s.ai_provider_order.split(",") if name.strip()]
    unknown = [name for name in order if name not in known]
    if unknown:
        raise ValueError(f"Unknown extraction provider(s) in AI_PROVIDER_ORDER: {', '.join(unknown)}")
    return ExtractionConfig(
        providers=[known[name] for name in order],
        provider_timeout_seconds=s.ai_provider_timeout_seconds,
        pipeline_timeout_seconds=s.ai_pipeline_timeout_seconds,
        confidence_threshold=s.ai_confidence_threshold,
        max_tokens=s.ai_max_tokens,
        temperature=s.ai_temperature,
        log_body_excerpt_chars=s.ai_log_body_excerpt_chars,
    )
