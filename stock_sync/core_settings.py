from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional

class Settings(BaseSettings):
    SHOPIFY_STORE_DOMAIN: str = ""
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_API_VERSION: str = "2024-07"
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = None

    RULES_PATH: str = "rules.json"
    ALLOWED_LOCATION_ID: Optional[str] = None
    WRITE_ENABLED: bool = True

    CACHE_TTL_SECONDS: float = 1.0
    DEDUP_WINDOW_SECONDS: float = 2.0
    WRITE_DELAY_SECONDS: float = 0.3
    CACHE_MAX_ENTRIES: int = 10000

    CATALOG_PAGE_SIZE: int = 250
    HTTP_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"
    PORT: int = 3000

    class Config:
        env_file = ".env"

    def missing_credentials(self) -> List[str]:
        required = {
            "SHOPIFY_STORE_DOMAIN": self.SHOPIFY_STORE_DOMAIN,
            "SHOPIFY_ACCESS_TOKEN": self.SHOPIFY_ACCESS_TOKEN,
        }
        return [name for name, value in required.items() if not value.strip()]

@lru_cache
def get_settings() -> Settings:
    return Settings()
