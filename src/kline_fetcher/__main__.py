"""
Entry point for downloading kline archives.

Usage:
    # One day of 1m klines
    python -m kline_fetcher BTCUSDT 1m daily 2025-01-01

    # Several tickers over a range of days
    python -m kline_fetcher BTCUSDT,ETHUSDT 1h daily 2025-01-01 -e 2025-01-31

    # Monthly archives, replacing files that already exist
    python -m kline_fetcher BTCUSDT 1d monthly 2024-01 -e 2024-12 --overwrite

Exit codes:
    0    every archive downloaded
    1    some archives could not be downloaded
    2    invalid input or configuration
    130  interrupted
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, TextIO, Union

from dotenv import load_dotenv
from prometheus_client import start_http_server

from core.async_utils import run_async_with_shutdown
from core.errors import ConfigurationError, PipelineError, ValidationError
from core.logging.setup import get_logger, setup_logging
from core.logging.utilities import log_exception
from kline_fetcher.aggregator import EventAggregator
from kline_fetcher.batch import BatchRunner
from kline_fetcher.config import FetcherConfig
from kline_fetcher.fetch import ArchiveFetcher, create_session
from kline_fetcher.generator import DescriptorGenerator
from kline_fetcher.progress import NullProgressDisplay, ProgressDisplay, TqdmProgressDisplay
from kline_fetcher.retry import RetryController, RetryOutcome
from kline_fetcher.schemas.descriptors import FetchJob
from kline_fetcher.schemas.events import FailureRecord
from kline_fetcher.schemas.market import (
    DailyPeriod,
    MonthlyPeriod,
    PeriodKind,
    Ticker,
    TimeFrame,
    make_period,
    parse_daily_date,
    parse_monthly_date,
)
from kline_fetcher.user_input import ConsolePrompt, UserPrompt

EXIT_OK = 0
EXIT_UNRESOLVED = 1
EXIT_INPUT_ERROR = 2
EXIT_INTERRUPTED = 130

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    """Validated command-line input consumed by the download pipeline."""

    tickers: List[Ticker]
    timeframe: TimeFrame
    period: Union[DailyPeriod, MonthlyPeriod]
    overwrite: bool = False


@dataclass
class RunSummary:
    outcome: RetryOutcome
    total_files: int
    completed: int
    bytes_written: int


def _tickers_arg(value: str) -> List[Ticker]:
    symbols = [part for part in value.split(",") if part.strip()]
    if not symbols:
        raise argparse.ArgumentTypeError("at least one ticker is required")
    try:
        return [Ticker.parse(symbol) for symbol in symbols]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ticker in {value!r}: {e}")


def _timeframe_arg(value: str) -> TimeFrame:
    try:
        return TimeFrame.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _date_arg(parse):
    def convert(value: str) -> date:
        try:
            return parse(value)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))

    return convert


def _add_options(parser: argparse.ArgumentParser, suppress_defaults: bool) -> None:
    """Options accepted both before and after the period subcommand."""

    def default(value):
        return argparse.SUPPRESS if suppress_defaults else value

    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=default(None),
        help="Replace archives that already exist locally",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=default(None),
        help="Directory to write archives into (default: KLINE_OUTPUT_DIR or cwd)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=default(None),
        help="Maximum simultaneous downloads (default: KLINE_MAX_CONCURRENCY or 8)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=default(None),
        help="YAML config file with a 'fetcher:' section",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=default("WARNING"),
        help="Console logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=default(None),
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=default(None),
        help="Serve Prometheus metrics on this port while running",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        default=default(False),
        help="Disable progress bars",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kline-fetcher",
        description="Download historical kline archives",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    kline-fetcher BTCUSDT 1m daily 2025-01-01
    kline-fetcher BTCUSDT,ETHUSDT 1h daily 2025-01-01 -e 2025-01-31
    kline-fetcher BTCUSDT 1d monthly 2024-01 -e 2024-12 --overwrite
        """,
    )
    parser.add_argument(
        "tickers",
        type=_tickers_arg,
        metavar="TICKERS",
        help="Comma-separated ticker symbols, e.g. BTCUSDT,ETHUSDT",
    )
    parser.add_argument(
        "timeframe",
        type=_timeframe_arg,
        metavar="TIMEFRAME",
        help=f"Kline interval, one of: {', '.join(tf.value for tf in TimeFrame)}",
    )
    _add_options(parser, suppress_defaults=False)

    periods = parser.add_subparsers(dest="period_kind", metavar="PERIOD")
    periods.required = True

    daily = periods.add_parser("daily", help="One archive per day")
    daily.add_argument("start", type=_date_arg(parse_daily_date), help="YYYY-MM-DD")
    daily.add_argument(
        "-e", "--end", type=_date_arg(parse_daily_date), help="Last day (inclusive)"
    )
    _add_options(daily, suppress_defaults=True)

    monthly = periods.add_parser("monthly", help="One archive per month")
    monthly.add_argument(
        "start", type=_date_arg(parse_monthly_date), help="YYYY-MM or YYYY-MM-DD"
    )
    monthly.add_argument(
        "-e", "--end", type=_date_arg(parse_monthly_date), help="Last month (inclusive)"
    )
    _add_options(monthly, suppress_defaults=True)

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments; exits with status 2 on invalid input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.end is not None and args.start > args.end:
        parser.error(f"start {args.start} is after end {args.end}")
    return args


def build_request(args: argparse.Namespace, overwrite: bool) -> FetchRequest:
    period = make_period(PeriodKind(args.period_kind), args.start, args.end)
    return FetchRequest(
        tickers=args.tickers,
        timeframe=args.timeframe,
        period=period,
        overwrite=overwrite,
    )


def resolve_config(args: argparse.Namespace) -> FetcherConfig:
    """
    Layer command-line options over config.yaml and environment.

    Raises:
        ConfigurationError: If any layer holds an invalid value
    """
    config = FetcherConfig.load_config(args.config)
    overrides = {}
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.max_concurrency is not None:
        overrides["max_concurrency"] = args.max_concurrency
    if args.overwrite:
        overrides["overwrite"] = True
    return replace(config, **overrides) if overrides else config


async def run_fetch(
    request: FetchRequest,
    config: FetcherConfig,
    prompt: UserPrompt,
    display: ProgressDisplay,
) -> RunSummary:
    """
    Generate descriptors and drive them through the retry controller.

    Raises:
        ValidationError: If descriptors cannot be generated from the request
    """
    generator = DescriptorGenerator(
        tickers=request.tickers,
        timeframe=request.timeframe,
        period=request.period,
        archive_root=config.archive_root,
        output_dir=config.output_dir,
    )
    jobs = [
        FetchJob(descriptor=descriptor, overwrite=request.overwrite)
        for descriptor in generator
    ]
    logger.info(f"Generated {len(jobs)} archive descriptor(s)")

    aggregator = EventAggregator(display)
    try:
        async with create_session(
            config.max_concurrency, config.request_timeout_seconds
        ) as session:
            fetcher = ArchiveFetcher(session, chunk_size=config.chunk_size)
            runner = BatchRunner(fetcher, aggregator, config.max_concurrency)
            outcome = await RetryController(runner, prompt).run(jobs)
    finally:
        display.close()

    return RunSummary(
        outcome=outcome,
        total_files=len(jobs),
        completed=aggregator.completed_count,
        bytes_written=aggregator.bytes_written,
    )


def describe_failure(record: FailureRecord) -> str:
    """One stderr line for an unresolved failure, with a hint where one applies."""
    error = record.error
    kind = error.kind.value
    reason = getattr(error, "reason", None)
    if reason is not None:
        kind = f"{kind} ({reason.value})"
    line = f"{record.descriptor.file_name}: {kind}: {error.message}"
    if error.hint:
        line += f" (hint: {error.hint})"
    return line


def report(
    summary: RunSummary,
    out: TextIO = sys.stdout,
    err: TextIO = sys.stderr,
) -> int:
    """Print the run summary and unresolved failures; return the exit code."""
    outcome = summary.outcome
    print(
        f"Downloaded {summary.completed}/{summary.total_files} archive(s), "
        f"{summary.bytes_written} bytes in {outcome.batches} batch(es)",
        file=out,
    )
    for record in outcome.unresolved:
        print(describe_failure(record), file=err)
    if outcome.succeeded:
        return EXIT_OK
    print(
        f"{len(outcome.unresolved)} archive(s) not downloaded "
        f"({outcome.reason.value.replace('_', ' ')})",
        file=err,
    )
    return EXIT_UNRESOLVED


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    global logger

    load_dotenv()
    args = parse_args(argv)

    # JSON_LOGS=false gives human-readable file logs during local development
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR", "logs"))

    setup_logging(
        name="kline_fetcher",
        stage="fetch",
        domain="klines",
        log_dir=log_dir,
        json_format=json_logs,
        console_level=getattr(logging, args.log_level),
    )
    logger = get_logger(__name__)

    try:
        config = resolve_config(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"kline-fetcher: configuration error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    request = build_request(args, overwrite=config.overwrite)

    try:
        config.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(
            f"kline-fetcher: cannot create output directory {config.output_dir}: {e}",
            file=sys.stderr,
        )
        return EXIT_INPUT_ERROR

    if args.metrics_port is not None:
        logger.info(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    display = NullProgressDisplay() if args.no_progress else TqdmProgressDisplay()

    try:
        summary = run_async_with_shutdown(
            run_fetch(request, config, ConsolePrompt(), display)
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        print("kline-fetcher: interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
    except ValidationError as e:
        log_exception(logger, e, "Invalid download request", include_traceback=False)
        print(f"kline-fetcher: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except PipelineError as e:
        log_exception(logger, e, "Download run failed")
        print(f"kline-fetcher: {e}", file=sys.stderr)
        return EXIT_UNRESOLVED

    return report(summary)


if __name__ == "__main__":
    sys.exit(main())
