"""Application configuration management."""
import os
from pathlib import Path
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.pack import Pack
from .models.item import NormalizerConfig


DEFAULT_PACKS: List[Pack] = [
    Pack(id="pack-decouverte", name="Pack Découverte", row_limit=50, price=25000, currency="ar", price_label="5 € / 25 000 Ar"),
    Pack(id="pack-essentiel", name="Pack Essentiel", row_limit=150, price=60000, currency="ar", price_label="12 € / 60 000 Ar", popular=True),
    Pack(id="pack-business", name="Pack Business", row_limit=350, price=125000, currency="ar", price_label="25 € / 125 000 Ar"),
    Pack(id="pack-pro", name="Pack Pro", row_limit=700, price=225000, currency="ar", price_label="45 € / 225 000 Ar"),
    Pack(id="pack-enterprise", name="Pack Enterprise", row_limit=1300, price=400000, currency="ar", price_label="80 € / 400 000 Ar"),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Storage Configuration
    storage_base_path: str = "/tmp/data" if os.getenv("SPACE_ID") else "./data"

    # Scraping provider (dataset API)
    provider_api_url: str = "https://api.apify.com/v2"
    provider_token: str = ""  # set via PROVIDER_TOKEN env var
    default_timeout: int = 30  # per HTTP request, seconds
    provider_fetch_timeout: float = 30.0  # whole dataset fetch, seconds
    provider_cleanup_after_export: bool = True

    # Tokens
    capability_token_secret: str = ""
    capability_token_ttl_minutes: int = 24 * 60
    auth_jwt_secret: str = ""

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Access gate
    temporary_session_prefix: str = "temp_"

    # Packs
    packs: List[Pack] = DEFAULT_PACKS
    default_pack_id: str = "pack-decouverte"

    # Price formatting
    local_currency: str = "MGA"
    default_currency: str = "EUR"
    min_plausible_price: Dict[str, float] = {"MGA": 1000}
    price_on_request_label: str = "Prix sur demande"

    # Export metadata
    export_author: str = "Marketplace Scraper Pro"

    # Model Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def storage_path(self) -> Path:
        """Get the resolved storage path."""
        return Path(self.storage_base_path).expanduser().resolve()

    def normalizer_config(self) -> NormalizerConfig:
        """Build the read-only configuration consumed by the record normalizer."""
        return NormalizerConfig(
            local_currency=self.local_currency,
            default_currency=self.default_currency,
            min_plausible_price=dict(self.min_plausible_price),
            price_on_request_label=self.price_on_request_label,
        )


# Global settings instance
settings = Settings()
