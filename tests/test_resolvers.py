"""Tests for username resolvers."""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import respx
from httpx import Response

from oauth1_authenticator.exceptions import NetworkError, ProtocolError
from oauth1_authenticator.resolvers import (
    identity_username_resolver,
    property_username_resolver,
)

IDENTITY_URL = "https://api.example.com/1.1/account/verify_credentials.json"


@pytest.fixture
def properties() -> dict[str, str]:
    """Return account properties as produced by the access-token exchange."""
    return {
        "oauth_token": "access_token_789",
        "oauth_token_secret": "access_secret_012",
        "screen_name": "alice",
        "oauth_consumer_key": "test_consumer_key",
        "oauth_consumer_secret": "test_consumer_secret",
    }


class TestPropertyUsernameResolver:
    """Tests for property_username_resolver."""

    async def test_reads_field(self, properties):
        """Test reading the default screen_name field."""
        resolve = property_username_resolver()

        assert await resolve(properties) == "alice"

    async def test_custom_field(self, properties):
        """Test reading another field."""
        resolve = property_username_resolver("oauth_consumer_key")

        assert await resolve(properties) == "test_consumer_key"

    async def test_missing_field(self, properties):
        """Test that a missing field is a protocol error."""
        resolve = property_username_resolver("user_nsid")

        with pytest.raises(ProtocolError) as exc_info:
            await resolve(properties)

        assert "user_nsid" in str(exc_info.value)


class TestIdentityUsernameResolver:
    """Tests for identity_username_resolver."""

    @respx.mock
    async def test_signed_request_with_access_token(self, properties):
        """Test that the identity call is signed with the access token."""
        route = respx.get(url__startswith=IDENTITY_URL).mock(
            return_value=Response(200, json={"screen_name": "alice", "id": 42})
        )
        resolve = identity_username_resolver(IDENTITY_URL)

        assert await resolve(properties) == "alice"

        request = route.calls.last.request
        params = parse_qs(urlsplit(str(request.url)).query)
        assert params["oauth_token"] == ["access_token_789"]
        assert params["oauth_consumer_key"] == ["test_consumer_key"]
        assert params["oauth_signature_method"] == ["HMAC-SHA1"]
        assert "oauth_signature" in params
        assert "access_secret_012" not in str(request.url)

    @respx.mock
    async def test_custom_field_and_client(self, properties):
        """Test a numeric field read through a caller-owned client."""
        respx.get(url__startswith=IDENTITY_URL).mock(
            return_value=Response(200, json={"id": 42})
        )

        async with httpx.AsyncClient() as client:
            resolve = identity_username_resolver(IDENTITY_URL, "id", client=client)
            assert await resolve(properties) == "42"

    @respx.mock
    async def test_non_json_response(self, properties):
        """Test that a non-JSON body is a protocol error."""
        respx.get(url__startswith=IDENTITY_URL).mock(
            return_value=Response(200, text="<html>oops</html>")
        )
        resolve = identity_username_resolver(IDENTITY_URL)

        with pytest.raises(ProtocolError) as exc_info:
            await resolve(properties)

        assert exc_info.value.response_text == "<html>oops</html>"

    @respx.mock
    async def test_missing_field(self, properties):
        """Test that a JSON body without the field is a protocol error."""
        respx.get(url__startswith=IDENTITY_URL).mock(
            return_value=Response(200, json={"name": "Alice"})
        )
        resolve = identity_username_resolver(IDENTITY_URL)

        with pytest.raises(ProtocolError):
            await resolve(properties)

    @respx.mock
    async def test_http_error(self, properties):
        """Test that an HTTP error is a network error."""
        respx.get(url__startswith=IDENTITY_URL).mock(return_value=Response(401))
        resolve = identity_username_resolver(IDENTITY_URL)

        with pytest.raises(NetworkError) as exc_info:
            await resolve(properties)

        assert exc_info.value.status_code == 401
