"""
Command-line interface for the cadastro batch job.

Usage:
    python -m cadastro_batch.cli.batch_cli run [options]
    python -m cadastro_batch.cli.batch_cli runs [--limit N]
"""

import argparse
import sys
from pathlib import Path

from cadastro_batch.batch.pipeline import BatchPipeline
from cadastro_batch.config import BatchSettings, load_settings
from cadastro_batch.core.errors import BatchError
from cadastro_batch.observability.logger import get_logger
from cadastro_batch.observability.metrics import generate_metrics

logger = get_logger(__name__)


def _load(args) -> BatchSettings:
    settings = load_settings(config_path=args.config, env_file=args.env_file)

    overrides = {}
    if getattr(args, "input", None):
        overrides["source_path"] = args.input
    if getattr(args, "chunk_size", None) is not None:
        overrides["chunk_size"] = args.chunk_size
    if overrides:
        job = settings.job.model_validate({**settings.job.model_dump(), **overrides})
        settings = settings.model_copy(update={"job": job})

    return settings


def write_metrics(path: str) -> None:
    """Write the current metrics in Prometheus text format, e.g. for a node_exporter textfile collector."""
    Path(path).write_bytes(generate_metrics())
    logger.info(f"Metrics written to {path}")


def run_command(args) -> int:
    """
    Execute one run of the job.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code: 0 when the run completed, 1 otherwise
    """
    try:
        settings = _load(args)
    except (BatchError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Source file: {settings.job.source_path}")
    logger.info(f"Target table: {settings.job.table} (chunk size {settings.job.chunk_size})")

    try:
        with BatchPipeline(settings) as pipeline:
            result = pipeline.run()
    except BatchError as e:
        logger.error(f"Job could not run: {e}")
        return 1

    if args.metrics_file:
        write_metrics(args.metrics_file)

    logger.info("=" * 60)
    logger.info(f"JOB {result.job_name} RUN {result.run_id}: {result.status}")
    logger.info("=" * 60)
    logger.info(f"Records written: {result.write_count}")
    if result.error is not None:
        logger.error(f"Error: {result.error}")
    logger.info("=" * 60)

    return 0 if result.succeeded else 1


def runs_command(args) -> int:
    """
    List recent executions of the job.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    try:
        settings = _load(args)
        with BatchPipeline(settings) as pipeline:
            executions = pipeline.recent_runs(limit=args.limit)
    except (BatchError, ValueError) as e:
        logger.error(f"Cannot list runs: {e}")
        return 1

    if not executions:
        print(f"No runs recorded for job {settings.job.job_name}")
        return 0

    print(f"{'RUN':>5}  {'STATUS':<10} {'START':<20} {'END':<20} {'WRITTEN':>8}  EXIT")
    for execution in executions:
        start = execution.start_time.strftime("%Y-%m-%d %H:%M:%S") if execution.start_time else "-"
        end = execution.end_time.strftime("%Y-%m-%d %H:%M:%S") if execution.end_time else "-"
        print(
            f"{execution.run_id:>5}  {execution.status:<10} {start:<20} {end:<20} "
            f"{execution.write_count:>8}  {execution.exit_description or ''}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load person records from a delimited file into PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the job with config/batch.yaml
  python -m cadastro_batch.cli.batch_cli run

  # Run against another file with smaller chunks
  python -m cadastro_batch.cli.batch_cli run --input data/cadastros.csv --chunk-size 50

  # Load credentials from a .env file
  python -m cadastro_batch.cli.batch_cli run --env-file config/local.env

  # Export metrics for the node_exporter textfile collector
  python -m cadastro_batch.cli.batch_cli run --metrics-file /var/lib/node_exporter/cadastro.prom

  # Show the last 10 runs
  python -m cadastro_batch.cli.batch_cli runs --limit 10
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: config/batch.yaml if present)"
    )
    common.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with datasource credentials"
    )

    run_parser = subparsers.add_parser("run", parents=[common], help="Run the job once")
    run_parser.add_argument(
        "--input",
        default=None,
        help="Override the source file path"
    )
    run_parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Override the number of records per chunk"
    )
    run_parser.add_argument(
        "--metrics-file",
        default=None,
        help="Write Prometheus metrics of the run to this file (text exposition format)"
    )

    runs_parser = subparsers.add_parser("runs", parents=[common], help="List recent runs")
    runs_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of runs to show (default: 20)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return run_command(args)
    return runs_command(args)


if __name__ == "__main__":
    sys.exit(main())
