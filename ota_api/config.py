"""Configuration settings for the OTA Updates API."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    OTA keys:
    - UPLOAD_KEY: Shared secret required in the upload-key header of uploads
    - UPDATES_ROOT: Directory holding <channel>/<runtimeVersion>/<timestamp>/ bundles
    - PRIVATE_KEY_PATH: RSA private key (PEM) used for expo-signature headers
    - PUBLIC_URL: Externally reachable base URL used in manifest asset URLs

    When PUBLIC_URL is unset, asset URLs are built from the incoming request.
    """

    # OTA
    upload_key: Optional[str] = None
    updates_root: Path = Path("updates")
    private_key_path: Optional[Path] = None
    public_url: Optional[str] = None
    api_prefix: str = "/api"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # CORS
    allowed_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
