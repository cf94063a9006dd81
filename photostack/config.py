# config.py
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "development"
    port: int = 3000
    use_mock_db: bool = False

    database_url: str = "postgresql://localhost:5432/photostack"
    # Signs development tokens when no JWKS endpoint is configured
    secret_key: str = "development-secret-key"

    # Azure AD B2C
    azure_ad_tenant_id: Optional[str] = None
    azure_ad_client_id: Optional[str] = None
    azure_ad_audience: Optional[str] = None
    azure_ad_issuer: Optional[str] = None
    azure_ad_jwks_uri: Optional[str] = None

    # Azure Blob Storage
    azure_storage_connection_string: Optional[str] = None
    azure_storage_container_name: str = "photos"

    # Azure Cognitive Services
    azure_cognitive_endpoint: Optional[str] = None
    azure_cognitive_key: Optional[str] = None
    azure_text_analytics_endpoint: Optional[str] = None
    azure_text_analytics_key: Optional[str] = None

    cors_origin: str = "*"
    max_file_size: int = 10 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def token_audience(self) -> Optional[str]:
        return self.azure_ad_audience or self.azure_ad_client_id


settings = Settings()


ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 24 * 60

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
USER_ROLES = ("creator", "consumer")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
