from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workout_ai.core.token_counting import DEFAULT_WORKOUT_BUDGET, TokenBudget

SUPPORTED_DEFAULT_PROVIDERS = ("openai", "anthropic", "gemini", "moonshot")


class Settings(BaseSettings):
    encryption_secret: str = Field(default="", validation_alias="ENCRYPTION_SECRET")
    auth_secret_key: str = Field(default="", validation_alias="AUTH_SECRET_KEY")
    default_llm_provider: str = Field(default="openai", validation_alias="DEFAULT_LLM_PROVIDER")
    default_llm_model: str = Field(default="", validation_alias="DEFAULT_LLM_MODEL")
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    moonshot_api_key: str = Field(default="", validation_alias="MOONSHOT_API_KEY")
    llm_request_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="LLM_REQUEST_TIMEOUT_SECONDS",
        description="Hard timeout for a single vendor call",
    )
    llm_max_schema_retries: int = Field(
        default=2,
        validation_alias="LLM_MAX_SCHEMA_RETRIES",
        description="Retry rounds after a schema validation failure",
    )
    llm_max_output_tokens: int = Field(default=4000, validation_alias="LLM_MAX_OUTPUT_TOKENS")
    llm_token_budget_enabled: bool = Field(default=True, validation_alias="LLM_TOKEN_BUDGET_ENABLED")
    llm_budget_max_input_tokens: int = Field(default=8000, validation_alias="LLM_BUDGET_MAX_INPUT_TOKENS")
    llm_budget_max_output_tokens: int = Field(default=4000, validation_alias="LLM_BUDGET_MAX_OUTPUT_TOKENS")
    llm_budget_max_total_tokens: int = Field(default=12000, validation_alias="LLM_BUDGET_MAX_TOTAL_TOKENS")
    llm_budget_max_cost_usd: float = Field(
        default=0.10,
        validation_alias="LLM_BUDGET_MAX_COST_USD",
        description="Worst-case estimated cost allowed for a single vendor call",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("default_llm_provider")
    @classmethod
    def validate_default_provider(cls, value: str) -> str:
        """Normalize the default vendor name, falling back to openai when unknown."""
        normalized = value.strip().lower()
        if normalized not in SUPPORTED_DEFAULT_PROVIDERS:
            logger.warning(
                f"Unsupported DEFAULT_LLM_PROVIDER '{value}'. "
                f"Valid providers are: {', '.join(SUPPORTED_DEFAULT_PROVIDERS)}. Defaulting to openai."
            )
            return "openai"
        return normalized

    @field_validator("llm_request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            logger.warning(f"LLM_REQUEST_TIMEOUT_SECONDS must be positive, got {value}. Defaulting to 30.")
            return 30.0
        return value

    @field_validator("llm_max_schema_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """Clamp schema retries to a small bounded number."""
        if value < 0:
            return 0
        if value > 3:
            logger.warning(f"LLM_MAX_SCHEMA_RETRIES={value} is too high, clamping to 3")
            return 3
        return value

    @property
    def vault_secret(self) -> str:
        """Master secret for the credential vault.

        Falls back to AUTH_SECRET_KEY when no dedicated ENCRYPTION_SECRET is set.
        """
        return self.encryption_secret or self.auth_secret_key

    def token_budget(self) -> TokenBudget | None:
        if not self.llm_token_budget_enabled:
            return None
        return TokenBudget(
            max_input_tokens=self.llm_budget_max_input_tokens,
            max_output_tokens=self.llm_budget_max_output_tokens,
            max_total_tokens=self.llm_budget_max_total_tokens,
            max_cost_usd=self.llm_budget_max_cost_usd,
        )

    def api_key_for(self, provider: str) -> str:
        keys = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
            "moonshot": self.moonshot_api_key,
        }
        return keys.get(provider, "").strip()


@dataclass(frozen=True)
class DefaultCredential:
    """System-wide vendor credential used when a user has not configured one."""

    provider: str
    api_key: str
    model: str | None = None

    def __repr__(self) -> str:
        return f"DefaultCredential(provider={self.provider!r}, model={self.model!r}, api_key='***')"


@dataclass(frozen=True)
class ProcessConfig:
    """Process-wide generation configuration.

    Built once at startup from Settings and injected into the provider
    factory and orchestrator. Read-only for the lifetime of the process.
    """

    default_credential: DefaultCredential | None
    request_timeout_seconds: float = 30.0
    max_schema_retries: int = 2
    max_output_tokens: int = 4000
    token_budget: TokenBudget | None = DEFAULT_WORKOUT_BUDGET

    @classmethod
    def from_settings(cls, source: Settings) -> ProcessConfig:
        default_credential = None
        api_key = source.api_key_for(source.default_llm_provider)
        if api_key:
            default_credential = DefaultCredential(
                provider=source.default_llm_provider,
                api_key=api_key,
                model=source.default_llm_model or None,
            )
            logger.info(f"System default LLM credential available for provider={source.default_llm_provider}")
        else:
            logger.warning(
                f"No system default API key for provider={source.default_llm_provider}. "
                "Users without their own AI configuration will not be able to generate plans."
            )

        return cls(
            default_credential=default_credential,
            request_timeout_seconds=source.llm_request_timeout_seconds,
            max_schema_retries=source.llm_max_schema_retries,
            max_output_tokens=source.llm_max_output_tokens,
            token_budget=source.token_budget(),
        )


settings = Settings()
