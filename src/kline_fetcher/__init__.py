"""
Concurrent downloader for historical kline archives.

Modules:
    calendar_cursor  - period -> ordered calendar buckets
    generator        - tickers x buckets -> file descriptors
    fetch            - one descriptor -> GET, stream to disk, lifecycle events
    channel          - multi-sender event channel closed by sender counting
    aggregator       - drains the channel into the progress display
    batch            - one bounded-concurrency batch of fetch jobs
    retry            - retry controller state machine
    config           - FetcherConfig (config.yaml + environment)
"""

__version__ = "0.1.0"
