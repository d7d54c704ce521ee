"""
Security validation module.

Provides validation of generated archive URLs before any request is made.
"""

from core.security.url_validation import (
    ALLOWED_SCHEMES,
    DEFAULT_ALLOWED_HOSTS,
    get_allowed_hosts,
    validate_download_url,
    validate_path_segment,
)

__all__ = [
    "validate_download_url",
    "validate_path_segment",
    "get_allowed_hosts",
    "ALLOWED_SCHEMES",
    "DEFAULT_ALLOWED_HOSTS",
]
