"""Environment-aware settings for retrykit."""

from __future__ import annotations

from .settings import RetrySettings


def get_settings() -> RetrySettings:
    """Return settings read from the environment and ``.env``."""

    return RetrySettings()


__all__ = ["RetrySettings", "get_settings"]
