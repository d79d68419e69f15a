"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """OAuth1 authenticator settings."""

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # OAuth1 consumer credentials
    consumer_key: str
    consumer_secret: str

    # OAuth 1.0a 3-legged authentication endpoints
    request_token_url: str
    authorize_url: str
    access_token_url: str
    callback_url: str

    # Timeout in seconds for the request-token, access-token and identity calls
    request_timeout: float = 30.0

    # Optional username resolution against an identity endpoint
    identity_url: str | None = None
    username_field: str | None = "screen_name"

    # Account storage
    service_id: str = "oauth1"
    account_storage_path: str = "~/.config/oauth1-authenticator/accounts.json"
    account_encryption_key: str | None = None


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
