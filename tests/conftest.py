"""Pytest fixtures for OAuth1 authenticator tests."""

import pytest

from oauth1_authenticator.config import Settings
from oauth1_authenticator.oauth1 import OAuth1Authenticator

REQUEST_TOKEN_URL = "https://api.example.com/oauth/request_token"
AUTHORIZE_URL = "https://api.example.com/oauth/authorize"
ACCESS_TOKEN_URL = "https://api.example.com/oauth/access_token"
CALLBACK_URL = "https://example.com/oauth/callback"


@pytest.fixture
def settings() -> Settings:
    """Return a Settings object with test credentials.

    Returns:
        Settings object configured with test OAuth1 credentials and endpoints.
    """
    return Settings(
        consumer_key="test_consumer_key",
        consumer_secret="test_consumer_secret",
        request_token_url=REQUEST_TOKEN_URL,
        authorize_url=AUTHORIZE_URL,
        access_token_url=ACCESS_TOKEN_URL,
        callback_url=CALLBACK_URL,
    )


@pytest.fixture
async def authenticator(settings: Settings):
    """Create an OAuth1Authenticator from the test settings."""
    flow = OAuth1Authenticator.from_settings(settings)
    yield flow
    await flow.close()


@pytest.fixture
def request_token_body() -> str:
    """Return a form-encoded request token response."""
    return "oauth_token=request_token_123&oauth_token_secret=request_secret_456"


@pytest.fixture
def access_token_body() -> str:
    """Return a form-encoded access token response."""
    return (
        "oauth_token=access_token_789&oauth_token_secret=access_secret_012"
        "&user_id=42&screen_name=alice"
    )
