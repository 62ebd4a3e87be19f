"""
Command-line interface for catalog ingestion.

Usage:
    catalog-ingest init-db
    catalog-ingest process --input <file_path>
    catalog-ingest upload --input <file_path>
    catalog-ingest worker [--max-idle SECONDS] [--metrics-port PORT]
    catalog-ingest query [--name TEXT] [--min-price N] [--max-price N]
                         [--min-expiration YYYY-MM-DD] [--sort-by FIELD]
                         [--sort-order asc|desc] [--page N] [--limit N]
    catalog-ingest result --job-id <job_id>
"""

import argparse
import json
import signal
import sys
import threading
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError as SettingsValidationError

from catalog_ingest.batch import BatchProductWriter, ProductCsvReader, ProductIngestionPipeline
from catalog_ingest.cache.redis_cache import RedisCache
from catalog_ingest.config.settings import IngestSettings, load_settings
from catalog_ingest.core.errors import IngestError
from catalog_ingest.core.models import SORTABLE_FIELDS, ProductFilter, SortSpec
from catalog_ingest.enrichment.exchange_rates import ExchangeRateService
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import configure_logging, get_logger
from catalog_ingest.orchestration.orchestrator import UploadOrchestrator
from catalog_ingest.orchestration.results_store import ResultsStore
from catalog_ingest.orchestration.staging import StagingArea
from catalog_ingest.queue.queue_client import QueueClient
from catalog_ingest.warehouse.connection import DatabaseConnectionPool
from catalog_ingest.warehouse.product_repository import ProductRepository
from catalog_ingest.warehouse.schema_mgmt import CatalogSchema

logger = get_logger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_pipeline(
    settings: IngestSettings, pool: DatabaseConnectionPool, cache: RedisCache
) -> ProductIngestionPipeline:
    """Wire reader, rate service and writer from settings."""
    repository = ProductRepository(pool, cache=cache, cache_ttl_seconds=settings.query_cache_ttl_seconds)
    return ProductIngestionPipeline(
        reader=ProductCsvReader.from_settings(settings),
        rate_service=ExchangeRateService.from_settings(settings, cache=cache),
        writer=BatchProductWriter(pool, repository=repository, batch_size=settings.batch_size),
    )


def build_orchestrator(
    settings: IngestSettings,
    pool: DatabaseConnectionPool,
    cache: RedisCache,
    queue: QueueClient | None,
) -> UploadOrchestrator:
    return UploadOrchestrator(
        pipeline=build_pipeline(settings, pool, cache),
        staging=StagingArea(settings.staging_dir),
        queue=queue,
        results=ResultsStore(cache, ttl_seconds=settings.result_ttl_seconds),
        connection_wait_timeout=settings.connection_wait_timeout,
        staged_wait_attempts=settings.staged_wait_attempts,
        staged_wait_delay=settings.staged_wait_delay_seconds,
        worker_retry_delay=settings.worker_retry_delay_seconds,
    )


def init_db_command(args, settings: IngestSettings) -> int:
    with DatabaseConnectionPool.from_settings(settings) as pool:
        CatalogSchema(pool).create()
    logger.info("Catalog schema created")
    print("Catalog schema is ready.")
    return 0


def process_command(args, settings: IngestSettings) -> int:
    """Run the pipeline inline on a local file."""
    input_path = Path(args.input)
    if not input_path.is_file():
        logger.error(f"Input file not found: {args.input}")
        return 1

    cache = RedisCache.from_settings(settings)
    with DatabaseConnectionPool.from_settings(settings) as pool:
        pipeline = build_pipeline(settings, pool, cache)
        try:
            summary = pipeline.run(input_path, mode="direct")
        except IngestError as e:
            logger.error(f"Processing failed: {e}")
            _print_json({"status": "failed", "error": e.to_dict()})
            return 1
        finally:
            pipeline.rate_service.close()
            cache.close()

    _print_json({**summary.to_response(), "summary": summary.model_dump(mode="json")})
    return 0


def upload_command(args, settings: IngestSettings) -> int:
    """Submit a file through the orchestrator (queued, or inline as fallback)."""
    input_path = Path(args.input)
    if not input_path.is_file():
        logger.error(f"Input file not found: {args.input}")
        return 1

    cache = RedisCache.from_settings(settings)
    queue = QueueClient.from_settings(settings)
    queue.connect()

    try:
        with DatabaseConnectionPool.from_settings(settings) as pool:
            orchestrator = build_orchestrator(settings, pool, cache, queue)
            try:
                outcome = orchestrator.submit_upload(input_path.read_bytes(), filename=input_path.name)
            except IngestError as e:
                logger.error(f"Upload failed: {e}")
                _print_json({"status": "failed", "error": e.to_dict()})
                return 1
            finally:
                orchestrator.pipeline.rate_service.close()
    finally:
        queue.close()
        cache.close()

    _print_json(outcome.to_response())
    return 0


def worker_command(args, settings: IngestSettings) -> int:
    """Consume queued jobs until interrupted (or idle for --max-idle seconds)."""
    if args.metrics_port:
        metrics.start_metrics_server(args.metrics_port)

    stop_event = threading.Event()

    def _stop(signum, frame):
        logger.info("Stop signal received", extra={"signal": signum})
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    cache = RedisCache.from_settings(settings)
    queue = QueueClient.from_settings(settings)

    try:
        with DatabaseConnectionPool.from_settings(settings) as pool:
            orchestrator = build_orchestrator(settings, pool, cache, queue)
            handled = orchestrator.run_worker(stop_event=stop_event, max_idle=args.max_idle)
            orchestrator.pipeline.rate_service.close()
    finally:
        queue.close()
        cache.close()

    logger.info("Worker stopped", extra={"handled": handled})
    return 0


def query_command(args, settings: IngestSettings) -> int:
    try:
        filters = ProductFilter(
            name=args.name,
            min_price=Decimal(args.min_price) if args.min_price is not None else None,
            max_price=Decimal(args.max_price) if args.max_price is not None else None,
            min_expiration=date.fromisoformat(args.min_expiration) if args.min_expiration else None,
        )
        sort = SortSpec(field=args.sort_by, order=args.sort_order)
    except (ValueError, ArithmeticError) as e:
        print(f"\nError: {e}")
        return 1

    cache = RedisCache.from_settings(settings)
    try:
        with DatabaseConnectionPool.from_settings(settings) as pool:
            repository = ProductRepository(
                pool, cache=cache, cache_ttl_seconds=settings.query_cache_ttl_seconds
            )
            page = repository.find_many(filters, sort, page=args.page, limit=args.limit)
    finally:
        cache.close()

    _print_json({
        "products": [product.model_dump(mode="json") for product in page.records],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "total_pages": page.total_pages,
    })
    return 0


def result_command(args, settings: IngestSettings) -> int:
    cache = RedisCache.from_settings(settings)
    try:
        summary = ResultsStore(cache, ttl_seconds=settings.result_ttl_seconds).fetch(args.job_id)
    finally:
        cache.close()

    if summary is None:
        print(f"\nNo result found for job: {args.job_id}")
        return 1

    _print_json(summary.model_dump(mode="json"))
    return 0


COMMANDS = {
    "init-db": init_db_command,
    "process": process_command,
    "upload": upload_command,
    "worker": worker_command,
    "query": query_command,
    "result": result_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-ingest",
        description="Product catalog ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the products table
  catalog-ingest init-db

  # Process a file inline
  catalog-ingest process --input data/products.csv

  # Queue a file for a worker (falls back to inline if the broker is down)
  catalog-ingest upload --input data/products.csv

  # Query the catalog
  catalog-ingest query --name milk --max-price 10 --sort-by price --sort-order desc
        """
    )

    # Global configuration options
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--config", help="Path to a YAML settings file")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create the catalog schema")

    process_parser = subparsers.add_parser("process", help="Process a file inline")
    process_parser.add_argument("--input", required=True, help="Path to input file")

    upload_parser = subparsers.add_parser("upload", help="Submit a file through the queue")
    upload_parser.add_argument("--input", required=True, help="Path to input file")

    worker_parser = subparsers.add_parser("worker", help="Consume queued uploads")
    worker_parser.add_argument(
        "--max-idle",
        type=float,
        default=None,
        help="Exit after this many seconds without messages"
    )
    worker_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port"
    )

    query_parser = subparsers.add_parser("query", help="Query the catalog")
    query_parser.add_argument("--name", help="Case-insensitive name substring")
    query_parser.add_argument("--min-price", help="Inclusive minimum price")
    query_parser.add_argument("--max-price", help="Inclusive maximum price")
    query_parser.add_argument("--min-expiration", help="Earliest expiration (YYYY-MM-DD)")
    query_parser.add_argument(
        "--sort-by",
        default="created_at",
        choices=SORTABLE_FIELDS,
        help="Sort field (default: created_at)"
    )
    query_parser.add_argument(
        "--sort-order",
        default="asc",
        choices=["asc", "desc"],
        help="Sort direction (default: asc)"
    )
    query_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    query_parser.add_argument("--limit", type=int, default=10, help="Page size (default: 10)")

    result_parser = subparsers.add_parser("result", help="Show the result of a queued upload")
    result_parser.add_argument("--job-id", required=True, help="Job id returned by upload")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = load_settings(env_file=args.env_file, config_path=args.config)
    except (FileNotFoundError, SettingsValidationError, ValueError) as e:
        print(f"\nConfiguration error: {e}")
        return 1

    configure_logging(args.log_level or settings.log_level, settings.log_format)

    try:
        return COMMANDS[args.command](args, settings)
    except Exception as e:
        logger.error(f"Error running {args.command}: {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
