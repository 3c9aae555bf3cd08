"""
Application configuration settings.
"""
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings

BULK_RETRY_CAP = 50


class Settings(BaseSettings):
    """Application settings."""

    # MongoDB Configuration
    mongodb_host: str = "localhost"
    mongodb_port: int = 27017
    mongodb_database: str = "editorial_workflow"
    mongodb_username: Optional[str] = None
    mongodb_password: Optional[str] = None

    # Journal Configuration
    journal_prefix: str = "PUJMS"
    client_url: str = "http://localhost:3000"
    review_due_days: int = 14
    min_reviewers: int = 2

    # DOI Registrar Configuration
    doi_prefix: str = "10.12345"
    doi_registrar: str = "mock"  # "mock" or "crossref"
    crossref_api_url: str = "https://api.crossref.org"
    crossref_api_key: Optional[str] = None
    crossref_timeout_seconds: float = 30.0
    bulk_retry_limit: int = Field(BULK_RETRY_CAP, ge=1, le=BULK_RETRY_CAP)

    # AWS S3 Configuration (Role-based access)
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "editorial-manuscripts"

    # Application Configuration
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    logs_dir: str = "logs"

    # Scheduler Configuration (0 disables the DOI retry job)
    doi_retry_interval_minutes: int = 30

    @property
    def mongodb_url(self) -> str:
        """Construct MongoDB connection string."""
        if self.mongodb_username and self.mongodb_password:
            # MongoDB Atlas connection string
            return f"mongodb+srv://{self.mongodb_username}:{self.mongodb_password}@{self.mongodb_host}/{self.mongodb_database}?retryWrites=true&w=majority"
        else:
            # Local MongoDB connection string
            return f"mongodb://{self.mongodb_host}:{self.mongodb_port}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
