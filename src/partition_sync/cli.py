# src/partition_sync/cli.py
"""Command-line interface for the partition-sync tool."""

import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from partition_sync.config import AppConfig, Config, CopyStrategy, split_names
from partition_sync.exceptions import PartitionSyncError
from partition_sync.partitions import DEFAULT_START_DATE, default_end_date
from partition_sync.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_SOFT_FAILURES: int = 2
EXIT_INTERRUPTED: int = 130

DATE_FORMATS: List[str] = ["%Y-%m-%d", "%Y%m%d"]
RUN_LOG_FORMAT: str = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str, log_dir: Path, log_prefix: str) -> logging.Handler:
    """
    Configure rich console logging and the per-run log file.

    Args:
        level (str): The logging level name.
        log_dir (Path): Directory receiving the run log.
        log_prefix (str): Prefix of the run log file name.

    Returns:
        logging.Handler: The file handler, so the caller can detach it.
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    root: logging.Logger = logging.getLogger()
    root.setLevel(level.upper())

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path: Path = log_dir / f"{log_prefix}_{datetime.now():%Y%m%d_%H%M%S}.log"
    file_handler: logging.FileHandler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter(RUN_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )
    root.addHandler(file_handler)

    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "s3transfer", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger.info(f"Writing run log to '{log_path}'.")
    return file_handler


async def main_async(config: Config) -> int:
    """
    Asynchronously execute the sync and map its outcome to an exit code.

    Args:
        config (Config): The application configuration.

    Returns:
        int: The process exit code.
    """
    # Lazily import to keep CLI startup fast
    from partition_sync.scheduler import RunSummary, run_sync

    shutdown_manager: GracefulShutdown = GracefulShutdown()
    async with shutdown_manager as shutdown_event:
        summary: RunSummary = await run_sync(config, shutdown_event)

    if summary.interrupted:
        logger.warning("Run interrupted. Re-run to resume from the listing cache.")
        return EXIT_INTERRUPTED
    if summary.failure_count:
        logger.warning(
            f"Run completed with {summary.failure_count} failure(s). "
            "See the log above and re-run to retry."
        )
        return EXIT_SOFT_FAILURES
    logger.info("✅ Run completed successfully.")
    return EXIT_OK


def _to_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, dir_okay=True, writable=True, resolve_path=True),
    default="data",
    envvar="PSYNC_DATA_DIR",
    help="Working directory for listing caches and run logs.",
    show_default=True,
)
@click.option(
    "--start-date",
    type=click.DateTime(formats=DATE_FORMATS),
    default=None,
    envvar="PSYNC_START_DATE",
    help=f"First partition date (inclusive). [default: {DEFAULT_START_DATE}]",
)
@click.option(
    "--end-date",
    type=click.DateTime(formats=DATE_FORMATS),
    default=None,
    envvar="PSYNC_END_DATE",
    help="Last partition date (inclusive). [default: yesterday]",
)
@click.option(
    "--apps",
    default="",
    envvar="PSYNC_APPS",
    help="Comma-separated application names; only keys containing /<app>/ sync.",
)
@click.option(
    "--copy-strategy",
    type=click.Choice([s.value for s in CopyStrategy], case_sensitive=False),
    default=CopyStrategy.BUFFERED.value,
    envvar="PSYNC_COPY_STRATEGY",
    help="Hold object bodies in memory (buffered) or in temp files (spooled).",
    show_default=True,
)
@click.option(
    "--spool-dir",
    type=click.Path(file_okay=False, dir_okay=True, writable=True, resolve_path=True),
    default=None,
    envvar="PSYNC_SPOOL_DIR",
    help="Directory for spooled temp files. [default: system temp dir]",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=5,
    envvar="PSYNC_MAX_CONCURRENCY",
    help="Maximum number of concurrent object copies.",
    show_default=True,
)
@click.option(
    "--list-concurrency",
    type=click.IntRange(min=1),
    default=50,
    envvar="PSYNC_LIST_CONCURRENCY",
    help="Maximum number of concurrent bucket listings during the pre-scan.",
    show_default=True,
)
@click.option(
    "--prescan/--no-prescan",
    default=True,
    help="List every source bucket first and log a plan by application.",
    show_default=True,
)
@click.option(
    "--verify/--no-verify",
    default=True,
    help="Re-list each partition after copying and report missing objects.",
    show_default=True,
)
@click.option(
    "--parallel-pairs",
    is_flag=True,
    default=False,
    help="Process the bucket pairs of a partition concurrently.",
)
@click.option(
    "--shared-destination",
    is_flag=True,
    default=False,
    help="Allow a single destination bucket to receive every source bucket.",
)
@click.option(
    "--cache-max-age-hours",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    envvar="PSYNC_CACHE_MAX_AGE_HOURS",
    help="Ignore listing caches older than this. [default: never expire]",
)
@click.option(
    "--cache-destination-listings",
    is_flag=True,
    default=False,
    help="Also trust cached destination listings instead of listing live.",
)
@click.option(
    "--progress-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=10.0,
    help="Seconds between progress log lines.",
    show_default=True,
)
@click.option(
    "--log-prefix",
    default="partition_sync",
    help="Prefix of the run log file name.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Mirror date-partitioned objects between two S3-compatible stores.

    For every day from the start date to the end date, and for every
    source/destination bucket pair, objects under the YYYYMMDD prefix that
    exist in the source but not in the destination are copied. Listings are
    cached in the data directory so interrupted runs resume cheaply.

    Endpoints, credentials and bucket names are read from environment
    variables (PSYNC_SOURCE_*, PSYNC_DESTINATION_*, PSYNC_SOURCE_BUCKETS,
    PSYNC_DESTINATION_BUCKETS). See the .env.example file.
    """
    load_dotenv()
    data_dir: Path = Path(kwargs["data_dir"])
    file_handler: logging.Handler = setup_logging(
        kwargs["log_level"], data_dir, kwargs["log_prefix"]
    )

    exit_code: int = EXIT_OK
    try:
        apps: Tuple[str, ...] = tuple(split_names(kwargs["apps"]))
        app_config: AppConfig = AppConfig(
            data_dir=data_dir,
            start_date=_to_date(kwargs["start_date"]) or DEFAULT_START_DATE,
            end_date=_to_date(kwargs["end_date"]) or default_end_date(),
            apps=apps,
            copy_strategy=CopyStrategy(kwargs["copy_strategy"].lower()),
            spool_dir=Path(kwargs["spool_dir"]) if kwargs["spool_dir"] else None,
            max_concurrency=kwargs["max_concurrency"],
            list_concurrency=kwargs["list_concurrency"],
            prescan=kwargs["prescan"],
            verify=kwargs["verify"],
            parallel_pairs=kwargs["parallel_pairs"],
            cache_max_age_hours=kwargs["cache_max_age_hours"],
            cache_destination_listings=kwargs["cache_destination_listings"],
            progress_interval_s=kwargs["progress_interval"],
            log_prefix=kwargs["log_prefix"],
        )
        config: Config = Config.from_env(
            app_config, shared_destination=kwargs["shared_destination"]
        )

        exit_code = asyncio.run(main_async(config))
    except PartitionSyncError as e:
        logger.critical(f"A critical application error occurred: {e}")
        exit_code = EXIT_ERROR
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        exit_code = EXIT_ERROR
    finally:
        logging.getLogger().removeHandler(file_handler)
        file_handler.close()

    if exit_code != EXIT_OK:
        sys.exit(exit_code)


if __name__ == "__main__":
    cli()
