from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Configuration
    debug: bool = False
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"

    # Database Configuration
    database_url: str = "sqlite:///./data/testpilot.db"

    # Template engine
    # When enabled, {{foo:bar}} with an unknown prefix is an error instead of literal text
    strict_template_prefixes: bool = False

    # Proxy
    proxy_timeout_seconds: float = 30.0
    # Only for local development; lets the proxy reach localhost and private networks
    proxy_allow_internal_hosts: bool = False

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
