# config.py
from __future__ import annotations
from typing import List, Optional, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices, model_validator

PLACEHOLDER_KEYS = {"", "your-gemini-api-key-here", "YOUR_API_KEY"}

class Settings(BaseSettings):
    # Read .env; ignore extra env vars to avoid crashes
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_prefix="",  # no automatic prefix
    )

    # --- Runtime env / debugging ---
    APP_ENV: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "app_env"),
    )
    DEBUG: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "debug"),
    )

    # --- Completion service (Gemini with Google Search grounding) ---
    GEMINI_API_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY", "gemini_api_key"),
    )
    GEMINI_MODEL: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_MODEL", "gemini_model"),
    )

    # --- Coin price service ---
    COINGECKO_API_BASE: str = Field(
        default="https://api.coingecko.com/api/v3",
        validation_alias=AliasChoices("COINGECKO_API_BASE", "coingecko_api_base"),
    )
    PRICE_REFERENCE_CURRENCY: str = Field(
        default="usd",
        validation_alias=AliasChoices("PRICE_REFERENCE_CURRENCY", "price_reference_currency"),
    )
    COIN_SEARCH_LIMIT: int = Field(
        default=100,
        validation_alias=AliasChoices("COIN_SEARCH_LIMIT", "coin_search_limit"),
    )

    # --- Planner sessions ---
    SESSION_TTL_SECONDS: int = Field(
        default=3600,
        validation_alias=AliasChoices("SESSION_TTL_SECONDS", "session_ttl_seconds"),
    )
    SUBMIT_RATE_LIMIT: int = Field(
        default=5,
        validation_alias=AliasChoices("SUBMIT_RATE_LIMIT", "submit_rate_limit"),
    )
    SUBMIT_RATE_WINDOW_SECONDS: int = Field(
        default=300,
        validation_alias=AliasChoices("SUBMIT_RATE_WINDOW_SECONDS", "submit_rate_window_seconds"),
    )
    # only honour X-Forwarded-For / X-Real-IP behind a proxy that sets them
    TRUST_PROXY_HEADERS: bool = Field(
        default=False,
        validation_alias=AliasChoices("TRUST_PROXY_HEADERS", "trust_proxy_headers"),
    )

    # --- Server Settings (for deployment) ---
    PORT: int = Field(
        default=8000,
        validation_alias=AliasChoices("PORT", "port"),
    )
    HOST: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )

    # --- Logging ---
    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    # --- CORS (env-driven) ---
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:8000", "http://127.0.0.1:8000"],
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "cors_allow_origins"),
    )
    # Optional comma-separated alternative that overrides the above
    FRONTEND_ORIGINS: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FRONTEND_ORIGINS", "frontend_origins"),
    )
    CORS_ALLOW_METHODS: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "OPTIONS"],
        validation_alias=AliasChoices("CORS_ALLOW_METHODS", "cors_allow_methods"),
    )
    CORS_ALLOW_HEADERS: List[str] = Field(
        default_factory=lambda: ["Accept", "Content-Type", "X-Request-Id"],
        validation_alias=AliasChoices("CORS_ALLOW_HEADERS", "cors_allow_headers"),
    )
    CORS_EXPOSE_HEADERS: List[str] = Field(
        default_factory=lambda: ["X-Request-Id"],
        validation_alias=AliasChoices("CORS_EXPOSE_HEADERS", "cors_expose_headers"),
    )

    @model_validator(mode="after")
    def _merge_frontend_origins(self) -> "Settings":
        if self.FRONTEND_ORIGINS:
            parts = [p.strip() for p in self.FRONTEND_ORIGINS.split(",") if p.strip()]
            if parts:
                self.CORS_ALLOW_ORIGINS = parts
        return self

    @model_validator(mode="after")
    def _require_api_key(self) -> "Settings":
        """The planner cannot do anything without the completion-service key: refuse to start."""
        if self.GEMINI_API_KEY.strip() in PLACEHOLDER_KEYS:
            raise ValueError(
                "GEMINI_API_KEY (or API_KEY) environment variable not set. "
                "Get a key from https://aistudio.google.com/apikey"
            )
        return self

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()

settings = Settings()
