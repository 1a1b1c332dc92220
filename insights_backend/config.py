"""
Configuration for InsightsLM Backend
====================================

Environment variables:
- DATABASE_URL: SQLAlchemy URL (read by db.session, default: sqlite:///./dev.db)
- JWT_SECRET_KEY: secret for access/refresh/file tokens
- NOTEBOOK_CHAT_URL: workflow webhook for notebook chat
- LEGAL_CHAT_WEBHOOK_URL: workflow webhook for legal chat
- NOTEBOOK_GENERATION_URL: workflow webhook for notebook title/description generation
- NOTEBOOK_GENERATION_AUTH: shared Authorization header value for all workflow webhooks
- STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SIGNING_SECRET: Stripe credentials
- STRIPE_PRICE_ID_PRO: price of the notebook Pro plan
- STRIPE_LEGAL_PRICE_ID_PRO / STRIPE_LEGAL_PRICE_ID_BUSINESS: legal plan prices
- STORAGE_BACKEND: local|s3 (default: local)
- STORAGE_ROOT: root directory for local storage (default: ./storage)
- S3_BUCKET_PREFIX / S3_ENDPOINT / S3_REGION: S3 backend settings
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Auth
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 7

    # Workflow engine (n8n-style webhooks)
    notebook_chat_url: Optional[str] = None
    legal_chat_webhook_url: Optional[str] = None
    notebook_generation_url: Optional[str] = None
    notebook_generation_auth: Optional[str] = None
    webhook_timeout: int = 120

    # Legal chat context sent along with every legal message
    legal_language: str = "pl"
    legal_jurisdiction: str = "PL"

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_signing_secret: Optional[str] = None
    stripe_price_id_pro: Optional[str] = None
    stripe_legal_price_id_pro: Optional[str] = None
    stripe_legal_price_id_business: Optional[str] = None

    # Storage
    storage_backend: str = "local"  # local | s3
    storage_root: str = "./storage"
    s3_bucket_prefix: str = "insightslm-"
    s3_endpoint: Optional[str] = None
    s3_region: str = "eu-central-1"
    signed_url_ttl: int = 3600

    # App
    app_url: str = "http://localhost:8080"
    public_api_url: str = "http://localhost:8000"
    cors_allow_origins: str = "*"

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def validate_config(self) -> List[str]:
        """Validate integration configuration, return list of warnings"""
        warnings = []

        if not self.notebook_generation_auth:
            warnings.append("NOTEBOOK_GENERATION_AUTH not set - workflow webhooks will be rejected")
        if not self.notebook_chat_url:
            warnings.append("NOTEBOOK_CHAT_URL not set - notebook chat disabled")
        if not self.legal_chat_webhook_url:
            warnings.append("LEGAL_CHAT_WEBHOOK_URL not set - legal chat disabled")

        if not self.stripe_secret_key:
            warnings.append("STRIPE_SECRET_KEY not set - checkout disabled")
        elif not self.stripe_webhook_signing_secret:
            warnings.append("STRIPE_SECRET_KEY set but STRIPE_WEBHOOK_SIGNING_SECRET missing")

        if self.jwt_secret_key == "dev-secret-key-change-in-production":
            warnings.append("JWT_SECRET_KEY uses the development default")

        if self.storage_backend not in ("local", "s3"):
            warnings.append(f"Unknown STORAGE_BACKEND={self.storage_backend}, falling back to local")

        return warnings

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
