"""Form/query string codec shared by request signing and callback parsing."""

import logging
import urllib.parse
from collections.abc import Mapping

logger = logging.getLogger(__name__)


def percent_encode(value: str) -> str:
    """Percent-encode a value according to RFC 3986.

    Only unreserved characters (letters, digits, ``-._~``) are left as-is,
    which is what OAuth1 requires for both signing and transport.

    Args:
        value: The value to encode.

    Returns:
        Percent-encoded string.
    """
    return urllib.parse.quote(str(value), safe="")


def encode(params: Mapping[str, str]) -> str:
    """Encode a mapping as a query string, preserving insertion order.

    Args:
        params: Keys and values to encode.

    Returns:
        A ``key=value&key=value`` string without a leading ``?``.
    """
    return "&".join(
        f"{percent_encode(key)}={percent_encode(value)}"
        for key, value in params.items()
    )


def decode(text: str | None) -> dict[str, str]:
    """Decode a query string or URL fragment into an ordered mapping.

    A leading ``?`` or ``#`` is stripped. Each ``&`` separated segment is split
    on its first ``=``; a segment without ``=`` yields an empty value. Keys and
    values are percent-decoded (``+`` is left alone). Segments that cannot be
    decoded are skipped. When a key repeats, the last value wins.

    Args:
        text: The query string or fragment, possibly empty or None.

    Returns:
        Decoded keys and values in order of first appearance.
    """
    result: dict[str, str] = {}
    if not text:
        return result

    if text[0] in "?#":
        text = text[1:]

    for segment in text.split("&"):
        if not segment:
            continue

        name, _, value = segment.partition("=")
        try:
            key = urllib.parse.unquote(name, errors="strict")
            decoded = urllib.parse.unquote(value, errors="strict")
        except UnicodeDecodeError:
            logger.debug("Skipping undecodable form segment %r", segment)
            continue

        if not key:
            continue

        result[key] = decoded

    return result
