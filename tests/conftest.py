"""
pytest configuration for kline_fetcher tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.errors import (  # noqa: E402
    FileExistsConflictError,
    FileNotFoundAtHostError,
    FileOpenError,
    FileWriteError,
    RequestSendError,
)
from kline_fetcher.schemas.descriptors import FileDescriptor  # noqa: E402
from kline_fetcher.schemas.market import PeriodKind, TimeFrame  # noqa: E402

ARCHIVE_ROOT = "https://data.binance.vision/data/spot"


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Keep host environment settings out of tests."""
    for name in (
        "KLINE_ALLOWED_HOSTS",
        "KLINE_ARCHIVE_ROOT",
        "KLINE_OUTPUT_DIR",
        "KLINE_MAX_CONCURRENCY",
        "KLINE_CHUNK_SIZE",
        "KLINE_REQUEST_TIMEOUT",
        "KLINE_OVERWRITE",
    ):
        monkeypatch.delenv(name, raising=False)


def make_descriptor(
    sequence_id: int = 1,
    bucket: str = "2025-01-01",
    ticker: str = "BTCUSDT",
    output_dir: Path = Path("/tmp"),
    period_kind: PeriodKind = PeriodKind.DAILY,
) -> FileDescriptor:
    """Descriptor for BTCUSDT 1m archives, one per bucket."""
    file_name = f"{ticker}-1m-{bucket}.zip"
    return FileDescriptor(
        url=f"{ARCHIVE_ROOT}/{period_kind.value}/klines/{ticker}/1m/{file_name}",
        local_path=output_dir / file_name,
        sequence_id=sequence_id,
        ticker=ticker,
        timeframe=TimeFrame.M1,
        period_kind=period_kind,
        bucket=bucket,
    )


def make_error(kind: str):
    """One fetch error of each kind, keyed by a short name."""
    factories = {
        "send": lambda: RequestSendError("connection refused"),
        "not_found": lambda: FileNotFoundAtHostError("HTTP 404", status_code=404),
        "exists": lambda: FileExistsConflictError("file exists"),
        "open": lambda: FileOpenError("permission denied"),
        "write": lambda: FileWriteError("disk full"),
    }
    return factories[kind]()


@pytest.fixture
def descriptor(tmp_path):
    return make_descriptor(output_dir=tmp_path)


@pytest.fixture
def make_descriptor_fn():
    return make_descriptor


@pytest.fixture
def make_error_fn():
    return make_error
