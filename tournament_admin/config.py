"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - 미설정 시 인메모리 문서 저장소 사용
    database_url: Optional[str] = Field(
        default=None,
        description="Database URL for the SQL document store (None = in-memory store)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )

    # Redis - 미설정 시 프로세스 내 락 사용
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for distributed settlement locks (None = local locks)",
    )
    redis_max_connections: int = Field(
        default=50,
        description="Redis max connections",
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        description="Redis socket timeout in seconds",
    )

    # JWT - 필수 필드 (관리자 토큰 검증용)
    jwt_secret_key: str = Field(
        ...,
        description="JWT secret key (required, minimum 32 characters)",
    )
    jwt_algorithm: str = "HS256"

    # Sentry Error Tracking
    sentry_dsn: str | None = Field(
        default=None,
        description="Sentry DSN for error tracking (optional)",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.05,
        description="Sentry transaction sampling rate (0.0-1.0, default 5%)",
    )

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Settlement
    default_currency: str = Field(
        default="INR",
        description="Currency used when a tournament does not declare one",
    )
    settlement_default_commission_percentage: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Company commission when the tournament does not set one",
    )
    settlement_default_first_prize_percentage: int = Field(
        default=40,
        ge=0,
        le=100,
        description="First place share of the prize pool (기본: 40%)",
    )
    settlement_default_per_kill_percentage: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Kill reward share of the prize pool (기본: 60%)",
    )
    settlement_max_batch_ops: int = Field(
        default=500,
        ge=10,
        description="Max write operations per atomic batch before chunking",
    )
    settlement_lock_ttl_ms: int = Field(
        default=60000,
        description="Settlement lease auto-expire time in milliseconds",
    )
    settlement_lock_acquire_timeout_ms: int = Field(
        default=5000,
        description="Max wait for the settlement lease in milliseconds",
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Validate JWT secret key length."""
        if len(v) < 32:
            raise ValueError(
                "jwt_secret_key must be at least 32 characters long"
            )

        # 약한 키 패턴 검사
        weak_patterns = [
            "change-this",
            "password",
            "12345",
            "qwerty",
        ]
        lower_v = v.lower()
        for pattern in weak_patterns:
            if pattern in lower_v:
                raise ValueError(
                    f"jwt_secret_key contains weak pattern '{pattern}'. "
                    "Use a strong, random secret key."
                )

        return v

    @model_validator(mode="after")
    def validate_settlement_defaults(self) -> "Settings":
        """Default first-place and kill shares must not over-allocate the pool."""
        total = (
            self.settlement_default_first_prize_percentage
            + self.settlement_default_per_kill_percentage
        )
        if total > 100:
            raise ValueError(
                "settlement_default_first_prize_percentage + "
                "settlement_default_per_kill_percentage must not exceed 100"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            # 프로덕션에서 CORS에 "*" 금지
            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

            if self.database_url is None:
                raise ValueError(
                    "database_url is required in production environment"
                )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
