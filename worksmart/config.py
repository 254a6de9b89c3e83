# worksmart/config.py - configuration management
from dotenv import load_dotenv

load_dotenv()
from typing import List, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]

# Tried in order after ISO-8601; mirrors what the spreadsheet exports in the field contain.
DEFAULT_IMPORT_DATE_FORMATS = ["%m/%d/%Y", "%d-%b-%Y", "%d %B %Y", "%Y/%m/%d"]


class Settings(BaseSettings):
    """Application settings with validation and environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Worksmart Adherence Tracking"
    app_version: str = "2.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(default="sqlite:///./worksmart.db", alias="DATABASE_URL")

    # CORS
    cors_origins: Union[str, List[str]] = Field(default=DEFAULT_CORS_ORIGINS, alias="CORS_ORIGINS")

    # Calendar: "today" is the local calendar date in this zone
    local_timezone: str = Field(default="UTC", alias="LOCAL_TIMEZONE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Tracking rules
    strict_import: bool = Field(default=False, alias="STRICT_IMPORT")
    enforce_terminal_statuses: bool = Field(default=False, alias="ENFORCE_TERMINAL_STATUSES")
    import_date_formats: Union[str, List[str]] = Field(default=DEFAULT_IMPORT_DATE_FORMATS, alias="IMPORT_DATE_FORMATS")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return list(DEFAULT_CORS_ORIGINS)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("import_date_formats", mode="before")
    @classmethod
    def parse_import_date_formats(cls, v):
        if isinstance(v, str):
            return [fmt.strip() for fmt in v.split(",") if fmt.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    environment: str = "development"
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    debug: bool = False
    environment: str = "production"
    log_json: bool = True


class TestingConfig(Settings):
    debug: bool = True
    environment: str = "testing"
    database_url: str = "sqlite://"


def get_config_by_env(env: str) -> Settings:
    """Get configuration by environment name"""
    configs = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }

    config_class = configs.get(env.lower(), Settings)
    return config_class()
