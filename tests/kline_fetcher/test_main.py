"""Tests for the command-line entry point."""

import io
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from core.errors import InvalidAddressError
from kline_fetcher.__main__ import (
    EXIT_INPUT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_UNRESOLVED,
    RunSummary,
    build_request,
    describe_failure,
    main,
    parse_args,
    report,
    resolve_config,
    run_fetch,
)
from kline_fetcher.config import FetcherConfig
from kline_fetcher.progress import NullProgressDisplay
from kline_fetcher.retry import DoneReason, RetryOutcome, RetryState
from kline_fetcher.schemas.events import FailureRecord
from kline_fetcher.schemas.market import DailyPeriod, MonthlyPeriod, TimeFrame
from kline_fetcher.user_input import UserAnswer


class TestParseArgs:
    def test_daily_single_day(self):
        args = parse_args(["btcusdt", "1m", "daily", "2025-01-01"])

        assert [t.symbol for t in args.tickers] == ["BTCUSDT"]
        assert args.timeframe is TimeFrame.M1
        assert args.period_kind == "daily"
        assert args.start == date(2025, 1, 1)
        assert args.end is None
        assert not args.overwrite

    def test_monthly_range_and_tickers(self):
        args = parse_args(["BTCUSDT,ethusdt", "1d", "monthly", "2024-01", "-e", "2024-12-15"])

        assert [t.symbol for t in args.tickers] == ["BTCUSDT", "ETHUSDT"]
        assert args.start == date(2024, 1, 1)
        assert args.end == date(2024, 12, 1)

    def test_options_after_subcommand(self):
        args = parse_args(
            ["BTCUSDT", "1h", "daily", "2025-01-01", "--overwrite", "--max-concurrency", "3"]
        )
        assert args.overwrite is True
        assert args.max_concurrency == 3

    def test_options_before_positionals(self, tmp_path):
        args = parse_args(["--output-dir", str(tmp_path), "BTCUSDT", "1h", "daily", "2025-01-01"])
        assert args.output_dir == tmp_path
        assert args.log_level == "WARNING"

    @pytest.mark.parametrize(
        "argv",
        [
            ["BTC/USDT", "1m", "daily", "2025-01-01"],
            [",", "1m", "daily", "2025-01-01"],
            ["BTCUSDT", "7m", "daily", "2025-01-01"],
            ["BTCUSDT", "1m", "daily", "2025-13-01"],
            ["BTCUSDT", "1m", "weekly", "2025-01-01"],
            ["BTCUSDT", "1m"],
            ["BTCUSDT", "1m", "daily", "2025-01-05", "-e", "2025-01-01"],
        ],
    )
    def test_invalid_input_exits_with_usage_error(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(argv)
        assert exc_info.value.code == EXIT_INPUT_ERROR

    def test_build_request(self):
        args = parse_args(["BTCUSDT", "1m", "monthly", "2025-01-15", "-e", "2025-03-06"])

        request = build_request(args, overwrite=True)

        assert isinstance(request.period, MonthlyPeriod)
        assert request.period.start == date(2025, 1, 1)
        assert request.period.end == date(2025, 3, 1)
        assert request.overwrite is True


class TestResolveConfig:
    def test_cli_overrides_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KLINE_MAX_CONCURRENCY", "2")
        args = parse_args(
            ["BTCUSDT", "1m", "daily", "2025-01-01", "--max-concurrency", "5",
             "--output-dir", str(tmp_path)]
        )

        with patch("kline_fetcher.config.load_dotenv"):
            config = resolve_config(args)

        assert config.max_concurrency == 5
        assert config.output_dir == tmp_path

    def test_environment_used_without_flags(self, monkeypatch):
        monkeypatch.setenv("KLINE_OVERWRITE", "true")
        args = parse_args(["BTCUSDT", "1m", "daily", "2025-01-01"])

        with patch("kline_fetcher.config.load_dotenv"):
            config = resolve_config(args)

        assert config.overwrite is True


def make_session(status_by_bucket):
    """Session whose GET answers with the status mapped from the URL's bucket."""

    class Content:
        def iter_chunked(self, n):
            return self._iterate()

        async def _iterate(self):
            yield b"zipdata"

    def get(url):
        name = url.rsplit("/", 1)[-1].removesuffix(".zip")
        status = status_by_bucket.get(name.split("-", 2)[-1], 200)
        response = MagicMock()
        response.status = status
        response.content_length = 7
        response.content = Content()
        ctx = MagicMock()
        ctx.__aenter__.return_value = response
        ctx.__aexit__.return_value = False
        return ctx

    session = MagicMock()
    session.get.side_effect = get
    session.__aenter__.return_value = session
    session.__aexit__.return_value = False
    return session


class StaticPrompt:
    def __init__(self, answer):
        self.answer = answer
        self.count = 0

    async def prompt(self, message):
        self.count += 1
        return self.answer


class TestRunFetch:
    @pytest.mark.asyncio
    async def test_downloads_every_archive(self, tmp_path):
        args = parse_args(["BTCUSDT", "1m", "daily", "2025-01-01", "-e", "2025-01-03"])
        config = FetcherConfig(output_dir=tmp_path)

        with patch("kline_fetcher.__main__.create_session", return_value=make_session({})):
            summary = await run_fetch(
                build_request(args, overwrite=False), config, StaticPrompt(UserAnswer.NO),
                NullProgressDisplay(),
            )

        assert summary.outcome.succeeded
        assert summary.total_files == 3
        assert summary.completed == 3
        assert summary.bytes_written == 21
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "BTCUSDT-1m-2025-01-01.zip",
            "BTCUSDT-1m-2025-01-02.zip",
            "BTCUSDT-1m-2025-01-03.zip",
        ]

    @pytest.mark.asyncio
    async def test_missing_archive_is_unresolved(self, tmp_path):
        args = parse_args(["BTCUSDT", "1m", "daily", "2025-01-01", "-e", "2025-01-02"])
        config = FetcherConfig(output_dir=tmp_path)
        prompt = StaticPrompt(UserAnswer.YES)

        with patch(
            "kline_fetcher.__main__.create_session",
            return_value=make_session({"2025-01-02": 404}),
        ):
            summary = await run_fetch(
                build_request(args, overwrite=False), config, prompt, NullProgressDisplay()
            )

        assert summary.outcome.reason == DoneReason.NOTHING_RETRYABLE
        assert [r.descriptor.bucket for r in summary.outcome.unresolved] == ["2025-01-02"]
        assert prompt.count == 0
        assert summary.completed == 1

    @pytest.mark.asyncio
    async def test_existing_file_declined_overwrite_untouched(self, tmp_path):
        existing = tmp_path / "BTCUSDT-1m-2025-01-01.zip"
        existing.write_bytes(b"original")
        args = parse_args(["BTCUSDT", "1m", "daily", "2025-01-01"])
        config = FetcherConfig(output_dir=tmp_path)

        class Answers:
            def __init__(self):
                self.answers = [UserAnswer.YES, UserAnswer.NO]

            async def prompt(self, message):
                return self.answers.pop(0)

        with patch("kline_fetcher.__main__.create_session", return_value=make_session({})):
            summary = await run_fetch(
                build_request(args, overwrite=False), config, Answers(), NullProgressDisplay()
            )

        assert summary.outcome.reason == DoneReason.DECLINED
        assert summary.outcome.batches == 1
        assert existing.read_bytes() == b"original"

    @pytest.mark.asyncio
    async def test_invalid_address_raises_before_spawning(self, tmp_path):
        args = parse_args(["BTCUSDT", "1m", "daily", "2025-01-01"])
        config = FetcherConfig(
            output_dir=tmp_path, archive_root="https://mirror.example.com/data/spot"
        )
        create = MagicMock()

        with patch("kline_fetcher.__main__.create_session", create):
            with pytest.raises(InvalidAddressError):
                await run_fetch(
                    build_request(args, overwrite=False), config,
                    StaticPrompt(UserAnswer.NO), NullProgressDisplay(),
                )

        create.assert_not_called()


def outcome(state, reason, unresolved=()):
    return RetryOutcome(state=state, reason=reason, unresolved=list(unresolved), batches=1)


class TestReport:
    def test_success(self):
        out, err = io.StringIO(), io.StringIO()
        summary = RunSummary(outcome(RetryState.DONE_SUCCESS, DoneReason.COMPLETED), 3, 3, 21)

        assert report(summary, out=out, err=err) == EXIT_OK
        assert "Downloaded 3/3 archive(s), 21 bytes in 1 batch(es)" in out.getvalue()
        assert err.getvalue() == ""

    def test_unresolved_failures_with_hint(self, make_descriptor_fn, make_error_fn):
        out, err = io.StringIO(), io.StringIO()
        record = FailureRecord(make_descriptor_fn(), make_error_fn("exists"))
        summary = RunSummary(
            outcome(RetryState.DONE_FAILURE, DoneReason.DECLINED, [record]), 1, 0, 0
        )

        assert report(summary, out=out, err=err) == EXIT_UNRESOLVED
        assert "BTCUSDT-1m-2025-01-01.zip" in err.getvalue()
        assert "--overwrite" in err.getvalue()
        assert "declined" in err.getvalue()

    def test_describe_failure_includes_open_reason(self, make_descriptor_fn, make_error_fn):
        line = describe_failure(FailureRecord(make_descriptor_fn(), make_error_fn("exists")))
        assert "could_not_open_file (already_exists)" in line

    def test_describe_failure_without_hint(self, make_descriptor_fn, make_error_fn):
        line = describe_failure(FailureRecord(make_descriptor_fn(), make_error_fn("send")))
        assert line.startswith("BTCUSDT-1m-2025-01-01.zip: failed_to_send_request")
        assert "hint" not in line


class TestMain:
    @pytest.fixture(autouse=True)
    def quiet_setup(self):
        with patch("kline_fetcher.__main__.setup_logging"), patch(
            "kline_fetcher.__main__.load_dotenv"
        ), patch("kline_fetcher.config.load_dotenv"):
            yield

    def test_success_exit_code(self, tmp_path):
        summary = RunSummary(outcome(RetryState.DONE_SUCCESS, DoneReason.COMPLETED), 1, 1, 7)

        with patch(
            "kline_fetcher.__main__.run_async_with_shutdown", return_value=summary
        ) as run, patch("kline_fetcher.__main__.run_fetch") as run_fetch_mock:
            code = main(["BTCUSDT", "1m", "daily", "2025-01-01", "--output-dir", str(tmp_path)])

        assert code == EXIT_OK
        run.assert_called_once()
        request, config = run_fetch_mock.call_args.args[:2]
        assert isinstance(request.period, DailyPeriod)
        assert config.output_dir == tmp_path

    def test_interrupt_exit_code(self, tmp_path):
        with patch(
            "kline_fetcher.__main__.run_async_with_shutdown", side_effect=KeyboardInterrupt
        ), patch("kline_fetcher.__main__.run_fetch"):
            code = main(["BTCUSDT", "1m", "daily", "2025-01-01", "--output-dir", str(tmp_path)])

        assert code == EXIT_INTERRUPTED

    def test_invalid_address_exit_code(self, tmp_path):
        with patch(
            "kline_fetcher.__main__.run_async_with_shutdown",
            side_effect=InvalidAddressError("bad host"),
        ), patch("kline_fetcher.__main__.run_fetch"):
            code = main(["BTCUSDT", "1m", "daily", "2025-01-01", "--output-dir", str(tmp_path)])

        assert code == EXIT_INPUT_ERROR

    def test_configuration_error_exit_code(self, tmp_path):
        code = main(
            ["BTCUSDT", "1m", "daily", "2025-01-01", "--max-concurrency", "0",
             "--output-dir", str(tmp_path)]
        )
        assert code == EXIT_INPUT_ERROR

    def test_metrics_server_started_on_request(self, tmp_path):
        summary = RunSummary(outcome(RetryState.DONE_SUCCESS, DoneReason.COMPLETED), 0, 0, 0)

        with patch(
            "kline_fetcher.__main__.run_async_with_shutdown", return_value=summary
        ), patch("kline_fetcher.__main__.run_fetch"), patch(
            "kline_fetcher.__main__.start_http_server"
        ) as start_server:
            main(["BTCUSDT", "1m", "daily", "2025-01-01", "--metrics-port", "9100",
                  "--output-dir", str(tmp_path)])

        start_server.assert_called_once_with(9100)
