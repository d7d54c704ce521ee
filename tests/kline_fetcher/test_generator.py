"""Tests for DescriptorGenerator and archive address building."""

from datetime import date
from pathlib import Path

import pytest

from core.errors import InvalidAddressError, ValidationError
from kline_fetcher.generator import DescriptorGenerator, build_archive_url, build_file_name
from kline_fetcher.schemas.market import DailyPeriod, MonthlyPeriod, PeriodKind, Ticker, TimeFrame

ARCHIVE_ROOT = "https://data.binance.vision/data/spot"


def generate(tickers, timeframe, period, output_dir=Path("out")):
    return list(
        DescriptorGenerator(
            tickers=[Ticker.parse(t) for t in tickers],
            timeframe=timeframe,
            period=period,
            archive_root=ARCHIVE_ROOT,
            output_dir=output_dir,
        )
    )


class TestDescriptorGenerator:
    def test_daily_range_single_ticker(self):
        descriptors = generate(
            ["btcusdt"],
            TimeFrame.M1,
            DailyPeriod(start=date(2025, 1, 1), end=date(2025, 1, 3)),
        )

        assert [d.url for d in descriptors] == [
            f"{ARCHIVE_ROOT}/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-01.zip",
            f"{ARCHIVE_ROOT}/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-02.zip",
            f"{ARCHIVE_ROOT}/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-03.zip",
        ]
        assert [d.sequence_id for d in descriptors] == [1, 2, 3]
        assert descriptors[0].local_path == Path("out") / "BTCUSDT-1m-2025-01-01.zip"

    def test_monthly_range_with_mid_month_bounds(self):
        descriptors = generate(
            ["BTCUSDT"],
            TimeFrame.D1,
            MonthlyPeriod(start=date(2025, 1, 15), end=date(2025, 3, 6)),
        )

        assert [d.bucket for d in descriptors] == ["2025-01", "2025-02", "2025-03"]
        assert all("/monthly/klines/BTCUSDT/1d/" in d.url for d in descriptors)
        assert all(d.period_kind == PeriodKind.MONTHLY for d in descriptors)

    def test_tickers_in_outer_loop_with_global_ids(self):
        descriptors = generate(
            ["BTCUSDT", "ETHUSDT"],
            TimeFrame.H1,
            DailyPeriod(start=date(2025, 1, 1), end=date(2025, 1, 2)),
        )

        assert [(d.ticker, d.bucket, d.sequence_id) for d in descriptors] == [
            ("BTCUSDT", "2025-01-01", 1),
            ("BTCUSDT", "2025-01-02", 2),
            ("ETHUSDT", "2025-01-01", 3),
            ("ETHUSDT", "2025-01-02", 4),
        ]

    def test_count_is_tickers_times_buckets(self):
        descriptors = generate(
            ["A1", "B2", "C3"],
            TimeFrame.M5,
            DailyPeriod(start=date(2025, 2, 1), end=date(2025, 2, 28)),
        )
        assert len(descriptors) == 3 * 28
        assert len({d.url for d in descriptors}) == len(descriptors)

    def test_start_after_end_yields_one_bucket_per_ticker(self):
        descriptors = generate(
            ["BTCUSDT"],
            TimeFrame.M1,
            DailyPeriod(start=date(2025, 1, 5), end=date(2025, 1, 1)),
        )
        assert [d.bucket for d in descriptors] == ["2025-01-05"]

    def test_is_deterministic_and_restartable(self):
        generator = DescriptorGenerator(
            tickers=[Ticker.parse("BTCUSDT")],
            timeframe=TimeFrame.M1,
            period=DailyPeriod(start=date(2025, 1, 1), end=date(2025, 1, 3)),
            archive_root=ARCHIVE_ROOT,
            output_dir=Path("out"),
        )
        assert list(generator) == list(generator)

    def test_case_variant_tickers_collapse(self):
        descriptors = generate(
            ["BTCUSDT", "ethusdt", "btcusdt"],
            TimeFrame.M1,
            DailyPeriod(start=date(2025, 1, 1)),
        )

        paths = [d.local_path for d in descriptors]
        assert len(paths) == len(set(paths))
        assert [d.file_name for d in descriptors] == [
            "BTCUSDT-1m-2025-01-01.zip",
            "ETHUSDT-1m-2025-01-01.zip",
        ]
        assert [d.sequence_id for d in descriptors] == [1, 2]

    def test_empty_ticker_list_rejected(self):
        with pytest.raises(ValidationError):
            DescriptorGenerator(
                tickers=[],
                timeframe=TimeFrame.M1,
                period=DailyPeriod(start=date(2025, 1, 1)),
                archive_root=ARCHIVE_ROOT,
                output_dir=Path("out"),
            )

    def test_unlisted_host_rejected(self):
        generator = DescriptorGenerator(
            tickers=[Ticker.parse("BTCUSDT")],
            timeframe=TimeFrame.M1,
            period=DailyPeriod(start=date(2025, 1, 1)),
            archive_root="https://mirror.example.com/data/spot",
            output_dir=Path("out"),
        )
        with pytest.raises(InvalidAddressError):
            list(generator)

    def test_allowed_hosts_from_environment(self, monkeypatch):
        monkeypatch.setenv("KLINE_ALLOWED_HOSTS", "mirror.example.com")
        generator = DescriptorGenerator(
            tickers=[Ticker.parse("BTCUSDT")],
            timeframe=TimeFrame.M1,
            period=DailyPeriod(start=date(2025, 1, 1)),
            archive_root="https://mirror.example.com/data/spot",
            output_dir=Path("out"),
        )
        assert list(generator)[0].url.startswith("https://mirror.example.com/")


class TestBuildArchiveUrl:
    def test_builds_conventional_address(self):
        url = build_archive_url(ARCHIVE_ROOT + "/", "daily", "BTCUSDT", "1m", "2025-01-01")
        assert url == f"{ARCHIVE_ROOT}/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-01.zip"

    @pytest.mark.parametrize(
        "ticker,bucket",
        [("BTC/USDT", "2025-01-01"), ("BTCUSDT", "2025 01"), ("..", "2025-01"), ("BTCUSDT", "")],
    )
    def test_rejects_malformed_segments(self, ticker, bucket):
        with pytest.raises(InvalidAddressError) as exc_info:
            build_archive_url(ARCHIVE_ROOT, "daily", ticker, "1m", bucket)
        assert isinstance(exc_info.value, ValidationError)

    def test_rejects_plain_http_root(self):
        with pytest.raises(InvalidAddressError, match="HTTPS"):
            build_archive_url("http://data.binance.vision/data/spot", "daily", "BTCUSDT", "1m", "2025-01-01")

    def test_file_name(self):
        assert build_file_name("ETHUSDT", "1mo", "2024-12") == "ETHUSDT-1mo-2024-12.zip"
