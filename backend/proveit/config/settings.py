"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "ProveIt"
    app_version: str = "1.0.0"
    debug: bool = False

    # Anthropic Messages API
    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-6"
    llm_base_url: str = "https://api.anthropic.com/v1"
    llm_api_version: str = "2023-06-01"
    llm_max_tokens: int = 8096
    llm_timeout: float = 300.0

    # Conversation limits
    chat_history_limit: int = 48  # messages forwarded to the model per turn
    web_search_max_uses: int = 5

    # Rate limiting (per client IP)
    chat_rate_limit: int = 20
    chat_rate_window_seconds: float = 60.0
    fast_rate_limit: int = 10
    fast_rate_window_seconds: float = 60.0

    # Upstash Redis (distributed limiter); in-memory limiter when unset
    upstash_redis_rest_url: Optional[str] = None
    upstash_redis_rest_token: Optional[str] = None

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/proveit.log"
    log_file_enabled: bool = False
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
