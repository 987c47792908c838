"""
Utility functions for Web Agent.

Provides helpers for text processing, host matching, and parameter redaction.
"""

import json
from typing import Any, Iterable, Optional
from urllib.parse import urlparse


def truncate_text(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text to a maximum number of characters.

    Args:
        text: Text to truncate
        max_chars: Maximum number of characters
        suffix: Suffix to add when truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_chars:
        return text
    return text[:max_chars - len(suffix)] + suffix


def normalize_host(host: Optional[str]) -> Optional[str]:
    """Lowercase a host, dropping port, userinfo and trailing dot.

    Args:
        host: Raw host (may include a port)

    Returns:
        Normalized host, or None for empty input
    """
    if not host:
        return None
    host = host.strip().lower()
    host = host.rsplit("@", 1)[-1]
    if host.startswith("["):
        # IPv6 literal
        host = host.split("]", 1)[0] + "]"
    else:
        host = host.split(":", 1)[0]
    host = host.rstrip(".")
    return host or None


def host_from_url(url: Optional[str]) -> Optional[str]:
    """Extract the normalized host from a URL.

    Args:
        url: Full URL (scheme optional)

    Returns:
        Host name (e.g., "accounts.google.com"), or None if there is none
    """
    if not url:
        return None
    if "://" not in url:
        url = "https://" + url
    try:
        return normalize_host(urlparse(url).netloc)
    except ValueError:
        return None


def host_matches(host: Optional[str], domains: Iterable[str]) -> bool:
    """Check whether a host equals or is a subdomain of any domain.

    Matching respects label boundaries, so ``notchase.com`` does not match
    ``chase.com`` while ``secure.chase.com`` does.
    """
    host = normalize_host(host)
    if not host:
        return False
    for domain in domains:
        domain = normalize_host(domain)
        if not domain:
            continue
        if host == domain or host.endswith("." + domain):
            return True
    return False


def normalize_url(url: str) -> str:
    """Add https:// when a URL has no scheme."""
    url = url.strip()
    if not url.startswith(("http://", "https://", "file://", "about:", "data:")):
        url = "https://" + url
    return url


# Field name or id fragments the page runtime treats as credentials
SENSITIVE_FIELD_KEYWORDS = (
    "password", "passcode", "totp", "otp", "ssn",
    "social", "credit", "card", "cvv",
)

# Argument keys whose values never reach the audit log or step log
REDACTED_KEYS = {"text", "value"}


def redact_arguments(args: dict[str, Any]) -> dict[str, Any]:
    """Replace typed text and selected values with a length marker."""
    redacted = {}
    for key, value in args.items():
        if key in REDACTED_KEYS and isinstance(value, str):
            redacted[key] = f"[REDACTED {len(value)} chars]"
        else:
            redacted[key] = value
    return redacted


def stringify_parameters(args: dict[str, Any], max_chars: int = 200) -> dict[str, str]:
    """Flatten tool arguments into a string map for the audit log.

    Args:
        args: Raw (already redacted) arguments
        max_chars: Per-value length bound

    Returns:
        Mapping of argument name to a bounded string rendering
    """
    flat = {}
    for key, value in args.items():
        if value is None:
            continue
        if isinstance(value, str):
            rendered = value
        else:
            try:
                rendered = json.dumps(value, sort_keys=True, default=str)
            except (TypeError, ValueError):
                rendered = str(value)
        flat[key] = truncate_text(rendered, max_chars)
    return flat
