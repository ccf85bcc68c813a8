"""
VectorFeed Configuration System
===============================

Simple configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


DEFAULT_FEEDS = [
    "https://www.theverge.com/rss/index.xml",
    "https://feeds.bbci.co.uk/sport/rss.xml",
    "https://feeds.bbci.co.uk/news/england/rss.xml",
    "https://feeds.bbci.co.uk/news/england/london/rss.xml",
    "http://feeds.bbci.co.uk/news/business/rss.xml",
    "http://feeds.bbci.co.uk/news/politics/rss.xml",
    "http://feeds.bbci.co.uk/news/health/rss.xml",
    "http://feeds.bbci.co.uk/news/education/rss.xml",
    "http://feeds.bbci.co.uk/news/science_and_environment/rss.xml",
    "http://feeds.bbci.co.uk/news/technology/rss.xml",
    "http://feeds.bbci.co.uk/news/entertainment_and_arts/rss.xml",
    "https://www.theguardian.com/uk/rss",
    "https://hnrss.org/frontpage",
]


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProcessingSettings(BaseModel):
    """Queue consumer and pipeline configuration."""
    batch_size: int = Field(default=10, ge=1, le=100, description="Messages received per batch")
    max_concurrent_messages: int = Field(default=1, ge=1, le=50, description="Messages processed concurrently within a batch")
    max_attempts: int = Field(default=3, ge=1, le=100, description="Deliveries before a message is dead-lettered")
    retry_delay_seconds: float = Field(default=30.0, ge=0.0, le=3600.0, description="Base redelivery delay")
    visibility_timeout_seconds: float = Field(default=300.0, ge=1.0, le=43200.0, description="Lease held on a received message")
    poll_interval_seconds: float = Field(default=5.0, ge=0.1, le=300.0, description="Idle wait between empty receives")


class LimitsSettings(BaseModel):
    """Network timeouts and size limits."""
    request_timeout: int = Field(default=30, ge=5, le=300, description="Feed and API request timeout in seconds")
    augment_timeout: float = Field(default=10.0, ge=1.0, le=60.0, description="Publisher page fetch timeout in seconds")
    max_text_length: int = Field(default=50000, ge=1000, description="Maximum stored item text length")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/vectorfeed.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/vectorfeed.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class AISettings(BaseModel):
    """Embedding model configuration (Cloudflare Workers AI via AI Gateway)."""
    cloudflare_account_id: Optional[str] = Field(default=None, description="Cloudflare account ID")
    cloudflare_api_token: Optional[str] = Field(default=None, description="Cloudflare API token")
    embedding_model: str = Field(default="@cf/baai/bge-base-en-v1.5", description="Embedding model identifier")
    gateway_id: str = Field(default="llm-rss-vectorise-agent", description="AI Gateway ID")
    gateway_base_url: str = Field(default="https://gateway.ai.cloudflare.com/v1", description="AI Gateway base URL")
    skip_cache: bool = Field(default=False, description="Bypass the gateway response cache")
    cache_ttl: int = Field(default=172800, ge=0, description="Gateway cache TTL in seconds")

    def has_credentials(self) -> bool:
        """Check if Cloudflare credentials are configured."""
        return bool(self.cloudflare_account_id and self.cloudflare_api_token)


class VectorStoreSettings(BaseModel):
    """Vector index configuration (Cloudflare Vectorize)."""
    index_name: str = Field(default="llm-rss-vectorise-agent", description="Vectorize index name")
    api_base_url: str = Field(default="https://api.cloudflare.com/client/v4", description="Cloudflare API base URL")
    query_top_k: int = Field(default=15, ge=1, le=100, description="Default number of query matches")


class VectorFeedSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    ai: AISettings = Field(default_factory=AISettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    feeds: List[str] = Field(default_factory=lambda: list(DEFAULT_FEEDS), description="Feeds enqueued by discovery")

    app_name: str = Field(default="VectorFeed", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "VECTORFEED_"
    }

    @property
    def user_agent(self) -> str:
        return f"{self.app_name}/{self.version}"

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if not self.ai.has_credentials():
            errors.append("Missing Cloudflare account ID or API token")

        if not self.feeds:
            errors.append("No feeds configured")

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> VectorFeedSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = VectorFeedSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[VectorFeedSettings] = None


def get_settings(reload: bool = False) -> VectorFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
