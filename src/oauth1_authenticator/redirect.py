"""Building blocks shared by redirect-based authorization flows.

A flow hands the browser surface an initial URL, then watches every page the
surface reports until one matches its callback URL. ``CallbackMatcher`` holds
that matching rule and ``CompletionChannel`` delivers the flow's single
terminal outcome.
"""

import asyncio
import logging
import urllib.parse
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from .models import NavigationFailure, Outcome

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}

CompletedListener = Callable[[Outcome], None]


def _authority(parts: urllib.parse.SplitResult) -> str:
    host = (parts.hostname or "").lower()
    port = parts.port
    if port is not None and port != _DEFAULT_PORTS.get(parts.scheme.lower()):
        host = f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        host = f"{userinfo}@{host}"
    return host


class CallbackMatcher:
    """Decides whether a reported URL is the flow's callback URL.

    Authority (case-insensitive, default port ignored) and path
    (case-sensitive) must match exactly. Query and fragment are not compared,
    they carry the provider's response. ``www.example.com`` and
    ``example.com`` are different authorities.
    """

    def __init__(self, callback_url: str) -> None:
        self.callback_url = callback_url
        parts = urllib.parse.urlsplit(callback_url)
        self._authority = _authority(parts)
        self._path = parts.path or "/"

    def matches(self, url: str) -> bool:
        try:
            parts = urllib.parse.urlsplit(url)
            authority = _authority(parts)
        except ValueError:
            return False
        return (
            authority == self._authority
            and (parts.path or "/") == self._path
        )

    def __repr__(self) -> str:
        return f"CallbackMatcher({self.callback_url!r})"


class CompletionChannel:
    """Single-fire delivery of an :class:`Outcome`.

    The first call to :meth:`complete` wins; later calls are ignored and
    return False.
    """

    def __init__(self) -> None:
        self._outcome: Outcome | None = None
        self._listeners: list[CompletedListener] = []
        self._waiters: list[asyncio.Future[Outcome]] = []

    @property
    def done(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    def add_listener(self, listener: CompletedListener) -> None:
        """Register a callback; called immediately if already completed."""
        if self._outcome is not None:
            listener(self._outcome)
            return
        self._listeners.append(listener)

    def complete(self, outcome: Outcome) -> bool:
        """Deliver the outcome to listeners and waiters.

        Args:
            outcome: The terminal outcome.

        Returns:
            True if this call delivered the outcome, False if one was
            already delivered.
        """
        if self._outcome is not None:
            logger.debug(
                "Ignoring %s outcome, attempt already ended with %s",
                outcome.kind.value,
                self._outcome.kind.value,
            )
            return False

        self._outcome = outcome

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(outcome)
        self._waiters.clear()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(outcome)
            except Exception:
                logger.exception("Completed listener %r failed", listener)

        return True

    async def wait(self, timeout: float | None = None) -> Outcome:
        """Wait for the outcome.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            The delivered outcome.

        Raises:
            asyncio.TimeoutError: If no outcome arrives in time.
        """
        if self._outcome is not None:
            return self._outcome

        waiter: asyncio.Future[Outcome] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)


@runtime_checkable
class RedirectFlow(Protocol):
    """What a browser surface needs from a redirect-based flow."""

    @property
    def callback_url(self) -> str: ...

    async def get_initial_url(self) -> str: ...

    async def on_page_loaded(self, url: str) -> None: ...

    async def on_navigation_failed(self, failure: NavigationFailure) -> None: ...

    def cancel(self) -> None: ...

    async def wait_for_outcome(self, timeout: float | None = None) -> Outcome: ...
