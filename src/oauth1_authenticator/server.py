"""OAuth1 authenticator MCP server implementation using FastMCP.

The assistant client acts as the browser surface: it shows the authorize URL
to the user and passes back the URL the provider redirected to.
"""

from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from .account_store import AccountStore, FileAccountStore
from .browser import ManualBrowserSurface
from .config import Settings, get_settings
from .exceptions import (
    AccountStoreError,
    AuthenticationCancelledError,
    AuthenticatorError,
    ConfigurationError,
)
from .models import Account
from .oauth1 import FlowState, OAuth1Authenticator
from .resolvers import (
    UsernameResolver,
    identity_username_resolver,
    property_username_resolver,
)

# Module-level holders for lifespan management
_settings: Settings | None = None
_account_store: AccountStore | None = None
_flow: OAuth1Authenticator | None = None
_surface: ManualBrowserSurface | None = None


@asynccontextmanager
async def lifespan(app: Any):
    """Lifespan context manager for the MCP server.

    Loads settings and opens the account store; the authenticator is created
    on the first start_authentication call.
    """
    global _settings, _account_store, _flow, _surface

    try:
        _settings = get_settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Ensure the OAUTH1_CONSUMER_KEY, "
            f"OAUTH1_CONSUMER_SECRET and OAUTH1_*_URL environment variables "
            f"are set: {e}"
        ) from e

    _account_store = FileAccountStore(
        _settings.account_storage_path, _settings.account_encryption_key
    )

    try:
        yield
    finally:
        if _flow:
            await _flow.close()
        _flow = None
        _surface = None
        _account_store = None
        _settings = None


mcp = FastMCP("oauth1-authenticator", lifespan=lifespan)


def _get_settings() -> Settings:
    """Get the Settings from module state."""
    if _settings is None:
        raise RuntimeError("Settings not initialized - server not running")
    return _settings


def _get_account_store() -> AccountStore:
    """Get the AccountStore from module state."""
    if _account_store is None:
        raise RuntimeError("AccountStore not initialized - server not running")
    return _account_store


def _build_username_resolver(settings: Settings) -> UsernameResolver | None:
    """Pick the username resolver configured in settings."""
    if settings.identity_url:
        return identity_username_resolver(
            settings.identity_url,
            settings.username_field or "screen_name",
            timeout=settings.request_timeout,
        )
    if settings.username_field:
        return property_username_resolver(settings.username_field)
    return None


def _get_flow() -> OAuth1Authenticator:
    """Get the authenticator, creating it on first use."""
    global _flow, _surface

    if _flow is None:
        settings = _get_settings()
        _flow = OAuth1Authenticator.from_settings(
            settings, _build_username_resolver(settings)
        )
        _surface = ManualBrowserSurface(_flow)
    return _flow


def _get_surface() -> ManualBrowserSurface:
    """Get the browser surface bound to the authenticator."""
    _get_flow()
    if _surface is None:
        raise RuntimeError("Browser surface not initialized - server not running")
    return _surface


def _format_account(account: Account) -> str:
    """Describe an account without exposing any secret."""
    name = account.username or "(unknown user)"
    extra = sorted(
        key
        for key in account.properties
        if key not in ("oauth_token", "oauth_token_secret", "oauth_consumer_secret")
    )
    return f"{name} - properties: {', '.join(extra)}"


# ============================================================================
# Authentication Tools
# ============================================================================


@mcp.tool()
async def check_auth_status() -> str:
    """Check whether an account is connected.

    Returns:
        Authentication status message
    """
    try:
        settings = _get_settings()
        accounts = await _get_account_store().find_accounts_for_service(
            settings.service_id
        )

        if accounts:
            names = ", ".join(a.username or "(unknown user)" for a in accounts)
            return f"Connected: {len(accounts)} account(s) linked ({names})."
        return (
            "Not connected: No account is linked.\n"
            "Use start_authentication to connect an account."
        )
    except AccountStoreError as e:
        return f"Error reading stored accounts: {str(e)}"
    except Exception as e:
        return f"Error checking auth status: {str(e)}"


@mcp.tool()
async def start_authentication() -> str:
    """Start the account connection process.

    Requests a temporary token and returns the URL the user must visit to
    authorize the connection. Starting again abandons an unfinished attempt.

    Returns:
        Instructions with the authorization URL
    """
    try:
        flow = _get_flow()
        surface = _get_surface()

        url = await flow.get_initial_url()
        await surface.display(url)

        return (
            "To connect your account:\n\n"
            f"1. Visit this URL:\n   {url}\n\n"
            "2. Log in and authorize the connection\n\n"
            f"3. Copy the full address you are redirected to "
            f"(it starts with {flow.callback_url})\n\n"
            "4. Use complete_authentication with that address to finish setup"
        )

    except RuntimeError as e:
        return str(e)
    except AuthenticatorError as e:
        return f"Error starting authentication: {str(e)}"
    except Exception as e:
        return f"Unexpected error: {str(e)}"


@mcp.tool()
async def complete_authentication(callback_url: str) -> str:
    """Complete the account connection.

    Args:
        callback_url: The full URL the provider redirected to after authorization

    Returns:
        Success or error message
    """
    try:
        settings = _get_settings()
        flow = _get_flow()

        if flow.state is not FlowState.AWAITING_USER_AUTHORIZATION:
            return (
                "Error: No authentication is in progress.\n"
                "Use start_authentication first."
            )

        await _get_surface().submit_redirect(callback_url)

        outcome = flow.outcome
        if outcome is None:
            return (
                "Error: That address is not the expected callback "
                f"({flow.callback_url}).\n"
                "Copy the full address shown after authorizing and try again."
            )

        account = outcome.raise_for_error()
        await _get_account_store().save(account, settings.service_id)

        return f"Success! Connected as {account.username or '(unknown user)'}."

    except AuthenticationCancelledError:
        return "Authentication was cancelled. Use start_authentication to retry."
    except AuthenticatorError as e:
        return f"Error completing authentication: {str(e)}"
    except Exception as e:
        return f"Unexpected error: {str(e)}"


@mcp.tool()
async def list_accounts() -> str:
    """List the connected accounts.

    Returns:
        One line per stored account
    """
    try:
        settings = _get_settings()
        accounts = await _get_account_store().find_accounts_for_service(
            settings.service_id
        )
        if not accounts:
            return "No accounts connected."
        return "\n".join(_format_account(account) for account in accounts)
    except AccountStoreError as e:
        return f"Error reading stored accounts: {str(e)}"
    except Exception as e:
        return f"Unexpected error: {str(e)}"


@mcp.tool()
async def disconnect_account(username: str = "") -> str:
    """Disconnect an account and delete its stored credentials.

    Args:
        username: The account to remove (as shown by list_accounts)

    Returns:
        Confirmation message
    """
    try:
        settings = _get_settings()
        store = _get_account_store()

        accounts = await store.find_accounts_for_service(settings.service_id)
        matching = [a for a in accounts if a.username == username]
        if not matching:
            return f"No connected account named '{username}'."

        for account in matching:
            await store.delete(account, settings.service_id)

        return f"Disconnected: {username or '(unknown user)'} has been unlinked."

    except Exception as e:
        return f"Error disconnecting account: {str(e)}"


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Run the OAuth1 authenticator MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
