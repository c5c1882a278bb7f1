"""Application configuration."""

from typing import Literal
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # DeepSeek Settings (analysis service)
    deepseek_api_key: str | None = Field(default=None, description="DeepSeek API key")
    deepseek_base_url: str = Field(
        default="https://api.deepseek.com",
        description="DeepSeek API base URL"
    )
    deepseek_model: str = Field(default="deepseek-chat", description="DeepSeek model name")
    analysis_timeout_seconds: float = Field(
        default=120.0,
        description="Hard timeout for a single analysis call"
    )
    analysis_max_retries: int = Field(
        default=0,
        description="Extra attempts after a transient analysis failure (0 = exactly one call per report)"
    )
    analysis_retry_wait_seconds: float = Field(
        default=1.0,
        description="Pause between analysis attempts when retries are enabled"
    )
    analysis_max_tokens: int = Field(default=4000, description="Maximum tokens to generate")
    analysis_temperature: float = Field(default=0.3, description="Sampling temperature")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./stemcare.db",
        description="Database connection URL"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8080",
        description="Comma-separated list of allowed CORS origins"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Report lifecycle
    duplicate_window_seconds: int = Field(
        default=300,
        description="Identical submissions within this window return the existing report"
    )
    comparison_max_selections: int = Field(
        default=3,
        description="Maximum number of exams in one comparison report"
    )
    stale_after_seconds: int = Field(
        default=900,
        description="Reports still processing after this age are swept to failed"
    )

    # PDF conversion
    pdf_converter: Literal["reportlab", "http"] = Field(
        default="reportlab",
        description="Document converter backend"
    )
    pdf_convert_url: str = Field(
        default="http://localhost:4000/convert",
        description="External markdown-to-PDF service endpoint (http converter)"
    )
    pdf_convert_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single conversion request"
    )
    pdf_convert_retries: int = Field(
        default=1,
        description="Extra attempts after a transient conversion failure"
    )

    # System settings cache
    settings_staleness_seconds: int = Field(
        default=300,
        description="Maximum age of the cached system settings before a reload"
    )

    # Development Settings
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator(
        "analysis_timeout_seconds",
        "pdf_convert_timeout_seconds",
        "duplicate_window_seconds",
        "stale_after_seconds",
        "analysis_max_tokens",
    )
    @classmethod
    def validate_positive(cls, v):
        """Validate value is positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @field_validator(
        "analysis_max_retries",
        "analysis_retry_wait_seconds",
        "pdf_convert_retries",
        "settings_staleness_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Validate value is zero or positive."""
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v

    @field_validator("comparison_max_selections")
    @classmethod
    def validate_comparison_max_selections(cls, v: int) -> int:
        """A comparison needs at least two exams."""
        if v < 2:
            raise ValueError("comparison_max_selections must be at least 2")
        if v > 10:
            raise ValueError("comparison_max_selections should not exceed 10")
        return v

    @field_validator("analysis_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is between 0 and 2."""
        if not 0 <= v <= 2:
            raise ValueError("analysis_temperature must be between 0 and 2")
        return v

    @model_validator(mode="after")
    def validate_lifecycle_windows(self) -> "Settings":
        """A report must be allowed to run longer than all of its analysis attempts before it counts as stale."""
        if self.stale_after_seconds <= self.analysis_budget_seconds:
            raise ValueError(
                "stale_after_seconds must be greater than "
                "(analysis_max_retries + 1) * analysis_timeout_seconds plus the retry waits "
                f"({self.analysis_budget_seconds:g}s)"
            )
        return self

    @property
    def analysis_budget_seconds(self) -> float:
        """Worst-case wall-clock time of one analysis including retries."""
        return (
            (self.analysis_max_retries + 1) * self.analysis_timeout_seconds
            + self.analysis_max_retries * self.analysis_retry_wait_seconds
        )

    @property
    def deepseek_configured(self) -> bool:
        """Whether an analysis API key is available."""
        return bool(self.deepseek_api_key)


# Global settings instance
settings = Settings()
