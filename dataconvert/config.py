from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Data conversion configuration with environment variable support"""

    # Logging, applied by build_service
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # Rendering budget applied to every conversion of a given input type (seconds)
    operation_timeout: float = 5.0

    # Template collections
    fetch_timeout: float = 30.0  # Upper bound for token issuance + collection download

    # Container registry access (REQUIRED for custom template collections - set in .env)
    # e.g. CONTAINER_REGISTRY_SERVERS='["myregistry.azurecr.io"]'
    container_registry_servers: List[str] = []
    registry_username: str = ""
    registry_password: str = ""
    registry_http_timeout: float = 10.0
    max_layer_size_bytes: int = 50 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
