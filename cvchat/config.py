"""Configuration management for the CVChat application."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    KNOWLEDGE_BASE_PATH: Path = Path(
        os.getenv("KNOWLEDGE_BASE_PATH", "data/knowledge_base.json")
    )
    PERSONA_NAME: str = os.getenv("PERSONA_NAME", "Serhii")
    CONTACT_EMAIL: str = os.getenv("CONTACT_EMAIL", "serhii@example.com")

    # Model Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-nano-2025-04-14")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "300"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

    # Engine Orchestration
    PRIMARY_ENGINE: str = os.getenv("PRIMARY_ENGINE", "extractive").lower()
    FALLBACK_ENABLED: bool = _env_flag("FALLBACK_ENABLED", "true")
    AB_TESTING_ENABLED: bool = _env_flag("AB_TESTING_ENABLED", "false")
    AB_TESTING_RATIO: float = float(os.getenv("AB_TESTING_RATIO", "0.5"))
    ENGINE_TIMEOUT_SECONDS: float = float(os.getenv("ENGINE_TIMEOUT_SECONDS", "10"))
    ENGINE_INIT_TIMEOUT_SECONDS: float = float(
        os.getenv("ENGINE_INIT_TIMEOUT_SECONDS", "60")
    )
    MODEL_LOAD_MAX_ATTEMPTS: int = int(os.getenv("MODEL_LOAD_MAX_ATTEMPTS", "3"))
    MODEL_LOAD_BASE_DELAY: float = float(os.getenv("MODEL_LOAD_BASE_DELAY", "2.0"))

    # Conversation Configuration
    MAX_HISTORY_TURNS: int = int(os.getenv("MAX_HISTORY_TURNS", "25"))
    CONTEXT_WINDOW_TURNS: int = int(os.getenv("CONTEXT_WINDOW_TURNS", "5"))

    # Cache Configuration
    RESPONSE_CACHE_SIZE: int = int(os.getenv("RESPONSE_CACHE_SIZE", "50"))
    RESPONSE_CACHE_TTL_SECONDS: float = float(
        os.getenv("RESPONSE_CACHE_TTL_SECONDS", "300")
    )
    EMBEDDING_CACHE_SIZE: int = int(os.getenv("EMBEDDING_CACHE_SIZE", "200"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "CVChat/1.0")

    @classmethod
    def requires_openai(cls) -> bool:
        """Check whether the configured engines need the OpenAI API.

        Returns:
            True if the generative engine is primary or A/B testing is on.
        """
        return cls.PRIMARY_ENGINE == "generative" or cls.AB_TESTING_ENABLED

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is needed but not set, or the
                primary engine name is unknown.
        """
        if cls.PRIMARY_ENGINE not in {"extractive", "generative"}:
            msg = (
                f"PRIMARY_ENGINE must be 'extractive' or 'generative', "
                f"got {cls.PRIMARY_ENGINE!r}."
            )
            raise ValueError(msg)
        if cls.requires_openai() and not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required for the generative engine. "
                "Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )
        logging.getLogger("httpx").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
