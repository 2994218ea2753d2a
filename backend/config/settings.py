"""
Centralized Settings Management using Pydantic Settings
Service configuration with environment variable support.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache


STROKE_CHOICES = ("forehand", "backhand", "serve", "volley", "auto")
VIEWPOINT_CHOICES = ("rear-elevated", "side", "front", "auto")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Use .env file for local development.
    """

    # Application
    APP_NAME: str = "Tennis Form Analyzer API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")

    # CORS
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = False

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_SESSIONS: str = "60/minute"
    RATE_LIMIT_FRAMES: str = "1800/minute"
    RATE_LIMIT_ANALYZE: str = "10/hour"

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_JSON: bool = Field(default=False, description="Emit JSON log lines")
    LOG_FILE: Optional[str] = Field(default=None, description="Optional JSON log file")

    # Analysis defaults
    DEFAULT_STROKE_TYPE: str = Field(default="forehand", description="forehand, backhand, serve, volley or auto")
    DEFAULT_CAMERA_VIEWPOINT: str = Field(default="rear-elevated", description="rear-elevated, side, front or auto")
    UPDATE_INTERVAL_MS: int = Field(default=500, description="Minimum interval between analysis updates")
    HISTORY_CAPACITY: int = Field(default=60, description="Frames kept in the motion history")

    # Video analysis
    VIDEO_DIR: str = Field(default="./data/videos", description="Directory videos are analyzed from")
    MAX_VIDEO_FRAMES: Optional[int] = Field(default=None, description="Frame cap per analyzed video")

    # Sessions
    MAX_SESSIONS: int = Field(default=32, description="Concurrent in-memory analysis sessions")

    @property
    def allowed_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    @field_validator("DEFAULT_STROKE_TYPE")
    @classmethod
    def validate_stroke_type(cls, v: str) -> str:
        if v not in STROKE_CHOICES:
            raise ValueError(f"DEFAULT_STROKE_TYPE must be one of {', '.join(STROKE_CHOICES)}")
        return v

    @field_validator("DEFAULT_CAMERA_VIEWPOINT")
    @classmethod
    def validate_camera_viewpoint(cls, v: str) -> str:
        if v not in VIEWPOINT_CHOICES:
            raise ValueError(f"DEFAULT_CAMERA_VIEWPOINT must be one of {', '.join(VIEWPOINT_CHOICES)}")
        return v

    @field_validator("UPDATE_INTERVAL_MS", "HISTORY_CAPACITY", "MAX_SESSIONS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once per process.
    """
    return Settings()


# Convenience function for direct access
settings = get_settings()
