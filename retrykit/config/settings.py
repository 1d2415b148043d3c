from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class RetrySettings(BaseSettings):
    """Retry defaults loaded from ``RETRYKIT_*`` environment variables."""

    max_retries: int = Field(3, ge=0)
    timeout_ms: Optional[float] = Field(None, ge=0)
    max_elapsed_ms: Optional[float] = Field(None, gt=0)

    rate_limit_tokens_per_interval: Optional[int] = Field(None, gt=0)
    rate_limit_interval_ms: Optional[float] = Field(None, gt=0)
    rate_limit_jitter_mode: Literal["none", "full", "equal"] = "none"

    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("rate_limit_jitter_mode", "log_format", mode="before")
    @classmethod
    def _lowercase(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v

    class Config:
        env_prefix = "RETRYKIT_"
        env_file = ".env"
        case_sensitive = False
