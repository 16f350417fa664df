"""Application configuration loaded from environment variables and .env file."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from environment variables first,
    then from a .env file in the project root as fallback.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    DATABASE_URL: str = "sqlite:///./storyrelay.db"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Narrative generator
    AI_PROVIDER: str = "mock"
    AI_API_KEY: Optional[str] = None
    AI_MODEL: Optional[str] = None
    AI_OPENING_MODEL: Optional[str] = None

    # Scene images
    IMAGE_PROVIDER: str = "placeholder"  # "placeholder" | "imagen" | "gemini"
    IMAGE_API_KEY: Optional[str] = None
    IMAGEN_MODEL: str = "imagen-3.0-generate-002"
    IMAGEN_ASPECT_RATIO: str = "16:9"
    GEMINI_IMAGE_MODEL: str = "gemini-2.0-flash-exp-image-generation"
    PLACEHOLDER_IMAGE_URL: str = (
        "https://via.placeholder.com/1024x576.png?text=Image+Unavailable"
    )
    IMAGE_TIMEOUT_SECONDS: float = 60.0

    # Generation retry policy
    GENERATION_TIMEOUT_SECONDS: float = 45.0
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_BACKOFF_SECONDS: float = 0.5

    # Turn coordination
    STALE_TURN_POLICY: str = "reject"  # "reject" | "truncate"
    DEFAULT_MAX_PLAYERS: int = 4
    MIN_MULTIPLAYER_PLAYERS: int = 2
    MAX_MULTIPLAYER_PLAYERS: int = 8


settings = Settings()
