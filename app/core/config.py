"""
Configuration management for the leave engine
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Required settings
    DATABASE_URL: str = Field(..., description="PostgreSQL database URL (SQLite for local/tests)")
    JWT_SECRET_KEY: str = Field(..., description="Secret used to verify bearer tokens issued by the identity service")

    # Optional settings with defaults
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="Lifetime of tokens minted by create_access_token")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Timezone used to decide "today" for notice and date-window checks (code stores UTC)
    TZ: str = Field(default="Asia/Kolkata", description="Business timezone")

    # Leave ledger limits
    LOP_BALANCE_CAP: float = Field(default=10, description="Hard ceiling on accumulated loss-of-pay days")
    DEFAULT_BALANCE_CAP: float = Field(
        default=99,
        description="Ceiling for credited balances when a policy has no annual_max",
    )

    # Notice rules apply only to these leave types (comma-separated)
    NOTICE_LEAVE_TYPES: str = Field(default="casual", description="Leave types subject to notice bands")

    # Sick leave date window relative to the application date
    SICK_BACKDATE_DAYS: int = Field(default=3, description="How many days in the past sick leave may start")
    SICK_ADVANCE_DAYS: int = Field(default=1, description="How many days ahead sick leave may start")

    # Version (can be git SHA or semver)
    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("LOP_BALANCE_CAP")
    @classmethod
    def validate_lop_cap(cls, v: float) -> float:
        if v <= 0 or v > 10:
            raise ValueError("LOP_BALANCE_CAP must be in (0, 10]")
        return v

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )
            if self.DATABASE_URL.startswith("sqlite"):
                raise ValueError("SQLite cannot provide balance row locks; use PostgreSQL in production")

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def get_notice_leave_types(self) -> List[str]:
        return [t.strip().lower() for t in self.NOTICE_LEAVE_TYPES.split(",") if t.strip()]


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
