"""
Shared infrastructure for kline_fetcher.

Subpackages:
    errors    - ErrorCategory and the typed exception hierarchy
    logging   - JSON/console logging with context propagation
    security  - archive URL validation
    async_utils - signal-aware event loop runner
"""
