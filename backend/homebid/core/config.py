"""Application configuration"""

from decimal import Decimal
from typing import Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "HomeBid API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Security
    # WHY: Tokens are issued by the identity provider; we only verify them
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # Tax
    # WHY: Sales tax is jurisdiction-dependent, so rates are keyed by region
    # code and never inlined. Override with TAX_RATES='{"ON": "0.13", "QC": "0.14975"}'
    TAX_RATES: Dict[str, Decimal] = {"ON": Decimal("0.13")}
    DEFAULT_TAX_JURISDICTION: str = "ON"

    # Proposal lifecycle
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 3600
    ACCEPTANCE_RECONCILE_INTERVAL_SECONDS: int = 300
    ACCEPTANCE_STEP_RETRIES: int = 1

    # S3 / AWS (proposal attachments)
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    S3_ENDPOINT: Optional[str] = None
    S3_BUCKET_NAME: str = "homebid-proposal-attachments"
    S3_PRESIGNED_URL_EXPIRY_SECONDS: int = 3600
    MAX_ATTACHMENT_BYTES: int = 25 * 1024 * 1024

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
