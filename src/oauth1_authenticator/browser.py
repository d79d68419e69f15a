"""Browser surfaces hosting a redirect flow.

A browser surface displays the flow's initial URL and reports navigation
events back into it. Native webviews live outside this package; this module
holds the contract, a surface for pasted redirect URLs, and the helpers to
run a flow against any surface.
"""

import asyncio
import concurrent.futures
import logging
import webbrowser
from typing import Protocol, runtime_checkable

from .exceptions import AuthenticatorError
from .models import NavigationFailure, Outcome
from .redirect import RedirectFlow

logger = logging.getLogger(__name__)


@runtime_checkable
class BrowserSurface(Protocol):
    """Something that can show a URL to the user."""

    async def display(self, url: str) -> None: ...


async def run_authorization(
    flow: RedirectFlow,
    surface: BrowserSurface,
    timeout: float | None = None,
) -> Outcome:
    """Display the flow's initial URL and wait for its outcome.

    The surface is expected to forward navigation events to ``flow`` while
    this coroutine waits.

    Args:
        flow: The redirect flow to run.
        surface: Where the initial URL is displayed.
        timeout: Seconds to wait for the outcome, or None to wait indefinitely.

    Returns:
        The flow's outcome. A failed initial request is returned as the error
        outcome rather than raised.
    """
    try:
        url = await flow.get_initial_url()
    except AuthenticatorError:
        return await flow.wait_for_outcome(0)

    await surface.display(url)

    try:
        return await flow.wait_for_outcome(timeout)
    except asyncio.TimeoutError:
        logger.info("No redirect within %s seconds, cancelling", timeout)
        flow.cancel()
        return await flow.wait_for_outcome(0)


def dispatch_page_loaded(
    flow: RedirectFlow,
    url: str,
    loop: asyncio.AbstractEventLoop,
) -> concurrent.futures.Future[None]:
    """Forward a page-loaded event from a UI thread to the flow's event loop.

    All flow state changes then happen on the loop thread, one event at a time.
    """
    return asyncio.run_coroutine_threadsafe(flow.on_page_loaded(url), loop)


def dispatch_navigation_failed(
    flow: RedirectFlow,
    failure: NavigationFailure,
    loop: asyncio.AbstractEventLoop,
) -> concurrent.futures.Future[None]:
    """Forward a navigation failure from a UI thread to the flow's event loop."""
    return asyncio.run_coroutine_threadsafe(flow.on_navigation_failed(failure), loop)


class ManualBrowserSurface:
    """A surface where the user opens the URL and pastes back the redirect.

    Useful for CLI and assistant clients: the redirect URL the provider sent
    the browser to (or that the browser failed to open, for custom schemes)
    is submitted with :meth:`submit_redirect`.
    """

    def __init__(self, flow: RedirectFlow, open_browser: bool = False) -> None:
        self._flow = flow
        self._open_browser = open_browser
        self.displayed_url: str | None = None

    async def display(self, url: str) -> None:
        self.displayed_url = url
        if self._open_browser and not webbrowser.open(url):
            logger.warning("Could not open a browser for %s", url)

    async def submit_redirect(self, url: str) -> None:
        """Report the pasted redirect URL as a loaded page."""
        await self._flow.on_page_loaded(url.strip())
