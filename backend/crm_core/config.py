"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    
    # Database
    DATABASE_URL: str = "sqlite:///./crm_enterprise.db"
    DB_POOL_PRE_PING: bool = True
    
    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
