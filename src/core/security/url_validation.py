"""
URL validation for archive downloads.

Provides strict validation of generated archive addresses so a malformed
component (ticker, timeframe, bucket) fails loudly instead of producing a
silently broken or redirected request.
"""

import os
import re
from typing import Optional, Set, Tuple
from urllib.parse import urlparse

# Allowed schemes for archive downloads
ALLOWED_SCHEMES: Set[str] = {"https"}

# Hosts explicitly allowed for archive downloads
DEFAULT_ALLOWED_HOSTS: Set[str] = {
    "data.binance.vision",
}

# A single URL path segment: no separators, whitespace, queries or fragments
_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


def get_allowed_hosts() -> Set[str]:
    """
    Get allowed hosts for archive URLs.

    DEFAULT_ALLOWED_HOSTS plus any mirrors listed in the KLINE_ALLOWED_HOSTS
    env var (comma-separated).

    Returns:
        Set of allowed host names (lowercase)
    """
    env_hosts = os.getenv("KLINE_ALLOWED_HOSTS", "")
    if env_hosts:
        return DEFAULT_ALLOWED_HOSTS | {
            h.strip().lower() for h in env_hosts.split(",") if h.strip()
        }
    return DEFAULT_ALLOWED_HOSTS


def validate_path_segment(segment: str) -> Tuple[bool, str]:
    """
    Validate one component interpolated into an archive URL path.

    Returns:
        (is_valid, error_message)

    Examples:
        >>> validate_path_segment("BTCUSDT")
        (True, '')

        >>> validate_path_segment("BTC/USDT")
        (False, "Invalid path segment 'BTC/USDT': only letters, digits, '.', '_' and '-' are allowed")
    """
    if not segment:
        return False, "Empty path segment"
    if segment in (".", ".."):
        return False, f"Invalid path segment {segment!r}: relative segments are not allowed"
    if not _SEGMENT_PATTERN.match(segment):
        return (
            False,
            f"Invalid path segment {segment!r}: only letters, digits, '.', '_' and '-' are allowed",
        )
    return True, ""


def validate_download_url(
    url: str, allowed_hosts: Optional[Set[str]] = None
) -> Tuple[bool, str]:
    """
    Validate URL against host allowlist (strict mode).

    Security considerations:
    - HTTPS required
    - Host must be in allowlist (case-insensitive)
    - No credentials, query string or fragment

    Args:
        url: URL to validate
        allowed_hosts: Optional set of allowed hosts (defaults to get_allowed_hosts())

    Returns:
        (is_valid, error_message)
        - (True, "") if valid
        - (False, "error description") if invalid

    Examples:
        >>> validate_download_url("http://data.binance.vision/data/spot/daily/klines/BTCUSDT/1m/x.zip")
        (False, 'Must be HTTPS, got http')

        >>> validate_download_url("https://data.binance.vision/data/spot/daily/klines/BTCUSDT/1m/x.zip")
        (True, '')
    """
    if not url:
        return False, "Empty URL"

    try:
        parsed = urlparse(url)
    except ValueError as e:
        return False, f"Invalid URL format: {e}"

    if allowed_hosts is None:
        allowed_hosts = get_allowed_hosts()
    else:
        allowed_hosts = {h.lower() for h in allowed_hosts}

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False, f"Must be HTTPS, got {parsed.scheme or 'no scheme'}"

    hostname = parsed.hostname
    if not hostname:
        return False, "No hostname in URL"

    if parsed.username or parsed.password:
        return False, "Credentials are not allowed in URL"

    if parsed.query or parsed.fragment:
        return False, "Query strings and fragments are not allowed in URL"

    if hostname.lower() not in allowed_hosts:
        return False, f"Host not in allowlist: {hostname}"

    return True, ""
