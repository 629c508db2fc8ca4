"""
Configuration module for the Chat Relay application.
Handles environment variables and application settings.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _get_float(name: str, default: float | None) -> float | None:
    """Read an optional float setting, treating empty values as unset."""
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    return float(raw)


class Config:
    """Application configuration class."""

    # Application Settings
    APP_TITLE: str = "Chat Relay"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Inference provider
    OLLAMA_HOST: str | None = os.getenv("OLLAMA_HOST") or None
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "llama3.2:3b")

    # Deadline for a whole provider call (in seconds), unset means no deadline
    PROVIDER_TIMEOUT: float | None = _get_float("PROVIDER_TIMEOUT", None)

    # Rate limiting
    RATE_LIMIT_WINDOW_SECONDS: float = _get_float("RATE_LIMIT_WINDOW_SECONDS", 60.0)
    CHAT_RATE_LIMIT_MAX: int = int(os.getenv("CHAT_RATE_LIMIT_MAX", "1"))
    STATUS_RATE_LIMIT_MAX: int = int(os.getenv("STATUS_RATE_LIMIT_MAX", "10"))
    RATE_LIMIT_SWEEP_INTERVAL: int = int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL", "100"))
    DEFAULT_RETRY_AFTER_MS: int = 60000

    # Use the first X-Forwarded-For entry as the client identifier
    TRUST_PROXY_HEADERS: bool = os.getenv("TRUST_PROXY_HEADERS", "false").lower() in ("1", "true", "yes")

    # How often the relay checks whether the client went away (in seconds)
    DISCONNECT_POLL_INTERVAL: float = _get_float("DISCONNECT_POLL_INTERVAL", 0.25)

    # Client settings
    CHAT_SERVER_URL: str = os.getenv("CHAT_SERVER_URL", "http://localhost:3001")
    CLIENT_TIMEOUT: float | None = _get_float("CLIENT_TIMEOUT", None)

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and print warnings for questionable settings."""
        if cls.CHAT_RATE_LIMIT_MAX < 1:
            print("   WARNING: CHAT_RATE_LIMIT_MAX is below 1")
            print("   Every chat request will be rejected with 429 Too Many Requests.")

        if cls.RATE_LIMIT_WINDOW_SECONDS <= 0:
            print("   WARNING: RATE_LIMIT_WINDOW_SECONDS must be positive")
            print("   Falling back to a 60 second window.")
            cls.RATE_LIMIT_WINDOW_SECONDS = 60.0

        if cls.PROVIDER_TIMEOUT is None:
            print("   NOTE: PROVIDER_TIMEOUT not set, a stalled model call keeps the stream open")


Config.validate()
