from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# repo root when running from a checkout, src/ inside the container image
ENV_PATH = Path(__file__).resolve().parents[3] / ".env"
if not ENV_PATH.exists():
    ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, encoding="utf-8")


class Settings(BaseSettings):
    # Database connection parameters
    # POSTGRES_* names are accepted for docker-compose setups
    db_host: str = Field(..., validation_alias=AliasChoices("DB_HOST", "POSTGRES_HOST"))
    db_port: int = Field(5432, validation_alias=AliasChoices("DB_PORT", "POSTGRES_PORT"))
    db_name: str = Field(..., validation_alias=AliasChoices("DB_NAME", "POSTGRES_DB"))
    db_user: str = Field(..., validation_alias=AliasChoices("DB_USER", "POSTGRES_USER"))
    db_password: str = Field(
        ..., validation_alias=AliasChoices("DB_PASSWORD", "POSTGRES_PASSWORD")
    )
    db_conn_retries: int = Field(10, ge=1)
    db_conn_retry_delay: float = Field(2.0, ge=0.0)
    db_connect_timeout: int = 10
    db_statement_timeout_ms: int = 15000

    # Auth
    auth_jwt_secret: str = Field(..., min_length=32)
    auth_jwt_algorithm: str = "HS256"
    auth_access_token_minutes: int = 60 * 12
    auth_reset_token_minutes: int = 30
    auth_reset_redirect_url: str = "http://localhost:8080/auth?reset=true"
    bcrypt_rounds: int = 12

    # Second factor
    mfa_enabled: bool = False
    mfa_issuer: str = "Care Leads"

    # Lead intake wizard
    wizard_matching_delay: float = 1.5
    wizard_session_ttl: int = 60 * 60

    # Dashboard
    dashboard_timezone: str = "Europe/London"
    metrics_max_concurrency: int = 8

    # Email delivery
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_ssl: bool = False
    smtp_use_tls: bool = True
    smtp_timeout: float = 10.0
    lead_notification_from: str = "no-reply@careleads.co.uk"
    lead_notification_subject: str = "New care enquiry received"
    lead_notification_recipients: List[str] = []
    lead_notification_enabled: bool = False

    cors_allow_origins: List[str] = ["*"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
