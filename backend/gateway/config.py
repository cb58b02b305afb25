"""
Application configuration using Pydantic Settings.
All environment variables are loaded here with sensible defaults.
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder the legacy command line used for "not configured"
UNSET_SENTINEL = "null"

# 1 GiB, enforced before any multipart parsing
DEFAULT_MAX_BODY_BYTES = 1073741824


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Authentication token expected in the ?token= query parameter
    upload_token: str = "password"
    
    # Listener
    host: str = "0.0.0.0"
    port: int = 80
    
    # Local sink
    data_folder: Path = Path("uploads")
    
    # Remote sink (Google Drive shared drive + parent folder)
    drive_id: Optional[str] = None
    parent_id: Optional[str] = None
    identity_file: Path = Path("credentials.json")
    remote_mime_type: str = "text/plain"
    drive_timeout_seconds: float = 60.0
    
    # Transport
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    
    # Environment
    environment: str = "dev"
    log_level: str = "INFO"
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    @property
    def remote_target_configured(self) -> bool:
        """True when both the drive and the parent folder are set."""
        return all(
            value and value.strip() and value.strip() != UNSET_SENTINEL
            for value in (self.drive_id, self.parent_id)
        )
    
    def require_remote_target(self) -> None:
        """
        Validate the remote upload target.
        
        Raises:
            ValueError: If drive_id or parent_id is unset
        """
        if not self.remote_target_configured:
            raise ValueError(
                "Drive ID or Parent ID was not properly defined, exiting!"
            )


# Global settings instance
settings = Settings()
