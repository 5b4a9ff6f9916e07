from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Catalog search
    catalog_base_url: str = "https://connect.instacart.com/idp/v1"
    catalog_api_key: str = ""
    catalog_timeout_seconds: float = 10.0
    use_static_catalog: bool = True

    # AI tie-breaker
    anthropic_api_key: str = ""
    tie_breaker_enabled: bool = True
    tie_breaker_model: str = "claude-3-5-haiku-latest"
    tie_breaker_timeout_seconds: float = 8.0

    # Resolution
    success_cache_ttl_seconds: float = 30 * 60
    failure_cache_ttl_seconds: float = 5 * 60
    max_concurrent_resolutions: int = 5

    # App
    environment: str = "development"
    log_level: str = "INFO"


settings = Settings()
