"""
Command-line interface for the QuickSight Export Tool.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigurationManager
from .models.asset import ALL_ASSET_TYPES, AssetType
from .models.processing import ExportOptions, RefreshOptions
from .models.exceptions import (
    ConfigurationError,
    AWSCredentialsError,
    QuickSightExportError
)
from .orchestrator import ExportOrchestrator
from .services.error_handler import ErrorHandler
from .services.logging import LoggingService

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_FAILURES = 2
EXIT_STOPPED = 3
EXIT_INTERRUPTED = 130


def print_remediation(error: Exception) -> None:
    """Print suggested next steps for a failed run."""
    print("Suggested steps:", file=sys.stderr)
    for step in ErrorHandler().get_error_remediation_steps(error):
        print(f"  - {step}", file=sys.stderr)


def setup_logging(verbose: bool = False) -> None:
    """
    Setup console logging based on verbosity level.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    root.addHandler(console_handler)

    # boto logs every request at DEBUG
    for noisy in ('botocore', 'boto3', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def validate_config_file(config_path: str) -> str:
    """
    Validate that the configuration file exists and is readable.

    Raises:
        argparse.ArgumentTypeError: If file doesn't exist or isn't readable
    """
    path = Path(config_path)

    if not path.exists():
        raise argparse.ArgumentTypeError(f"Configuration file does not exist: {config_path}")

    if not path.is_file():
        raise argparse.ArgumentTypeError(f"Configuration path is not a file: {config_path}")

    if path.suffix.lower() not in ['.yaml', '.yml', '.json']:
        raise argparse.ArgumentTypeError(f"Configuration file must be YAML or JSON: {config_path}")

    try:
        with open(path, 'r') as f:
            f.read(1)
    except PermissionError:
        raise argparse.ArgumentTypeError(f"Configuration file is not readable: {config_path}")
    except OSError as e:
        raise argparse.ArgumentTypeError(f"Error accessing configuration file: {e}")

    return str(path.absolute())


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected an integer, got: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got: {value}")
    return number


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog='quicksight-export',
        description='QuickSight Export Tool - Incrementally export QuickSight asset metadata to S3',
        epilog='''
Examples:
  %(prog)s --config config.yaml
  %(prog)s --config config.yaml --asset-types dashboard dataset --force-refresh
  %(prog)s --config config.yaml --permissions-only
  %(prog)s --config config.yaml --rebuild-index
  %(prog)s --create-sample-config config.yaml
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--config', '-c',
        type=validate_config_file,
        help='Path to configuration file (YAML or JSON format)'
    )

    parser.add_argument(
        '--create-sample-config',
        metavar='FILE',
        help='Write a sample YAML configuration to FILE and exit'
    )

    # Export scope
    parser.add_argument(
        '--asset-types', '-t',
        nargs='+',
        choices=[t.value for t in ALL_ASSET_TYPES],
        help='Asset types to export (default: all)'
    )

    parser.add_argument(
        '--force-refresh',
        action='store_true',
        help='Re-export every listed asset regardless of cached timestamps'
    )

    refresh_group = parser.add_mutually_exclusive_group()
    refresh_group.add_argument(
        '--permissions-only',
        action='store_true',
        help='Refresh permissions only, reusing previously exported definitions'
    )
    refresh_group.add_argument(
        '--tags-only',
        action='store_true',
        help='Refresh tags only, reusing previously exported definitions'
    )

    parser.add_argument(
        '--rebuild-index',
        action='store_true',
        help='Clear and rebuild the caches; without --asset-types only rebuilds from existing exports'
    )

    parser.add_argument('--batch-size', type=positive_int, help='Assets per batch (overrides config)')
    parser.add_argument('--max-concurrency', type=positive_int,
                        help='Concurrent assets per batch (overrides config)')
    parser.add_argument('--job-id', help='Job identifier (generated when omitted)')

    # Output options
    parser.add_argument(
        '--output-dir', '-o',
        type=str,
        help='Output directory for the export report (default: current directory)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose (DEBUG) logging'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Path to the JSON log file (overrides config)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate configuration and connectivity without exporting'
    )

    parser.add_argument(
        '--version',
        action='version',
        version='%(prog)s 1.0.0'
    )

    return parser


def build_export_options(args: argparse.Namespace, batch_size: int, max_concurrency: int) -> ExportOptions:
    """Translate CLI arguments into ExportOptions."""
    if args.permissions_only:
        refresh = RefreshOptions(definitions=False, permissions=True, tags=False)
    elif args.tags_only:
        refresh = RefreshOptions(definitions=False, permissions=False, tags=True)
    else:
        refresh = RefreshOptions()

    asset_types: List[AssetType]
    if args.asset_types:
        asset_types = [AssetType.from_value(t) for t in args.asset_types]
    elif args.rebuild_index:
        asset_types = []
    else:
        asset_types = list(ALL_ASSET_TYPES)

    return ExportOptions(
        force_refresh=args.force_refresh,
        refresh_options=refresh,
        asset_types=asset_types,
        batch_size=args.batch_size or batch_size,
        max_concurrency=args.max_concurrency or max_concurrency,
        rebuild_index=args.rebuild_index,
    )


def execute_export(args: argparse.Namespace) -> int:
    """
    Execute the export operation based on CLI arguments.

    Returns:
        int: Exit code
    """
    logger = logging.getLogger(__name__)
    logging_service: Optional[LoggingService] = None

    try:
        config_manager = ConfigurationManager()
        config = config_manager.load_config(args.config)
        if args.log_file:
            config.logging_file_path = args.log_file

        logging_service = LoggingService(config, console=False, verbose=args.verbose)

        config_manager.validate_aws_connectivity(config)
        options = build_export_options(args, config.batch_size, config.max_concurrency)

        if args.dry_run:
            logger.info("Dry run mode - configuration and connectivity validated successfully")
            print("✓ Configuration file is valid")
            print("✓ AWS connectivity validated")
            print(f"Would export: {', '.join(t.value for t in options.asset_types) or 'nothing (cache rebuild only)'}")
            print(f"Refresh: {options.refresh_options.to_dict()}, force refresh: {options.force_refresh}")
            return EXIT_SUCCESS

        orchestrator = ExportOrchestrator(config)
        summary = orchestrator.export_assets(options, job_id=args.job_id)

        output_dir = Path(args.output_dir) if args.output_dir else Path.cwd()
        report_path = output_dir / f"export_report_{summary.start_time.strftime('%Y%m%d_%H%M%S')}.json"
        logging_service.log_export_summary(summary, orchestrator.job_id)
        logging_service.save_export_report(summary, str(report_path))

        print("\n" + "=" * 60)
        print("EXPORT STOPPED" if summary.stopped else "EXPORT COMPLETED")
        print("=" * 60)
        print(f"Job ID: {orchestrator.job_id}")
        for type_summary in summary.summaries:
            print(f"  {type_summary.asset_type:<11} listed {type_summary.total_listed:>5}  "
                  f"exported {type_summary.successful:>5}  cached {type_summary.cached:>5}  "
                  f"archived {type_summary.archived:>4}  failed {type_summary.failed:>4}")
        print(f"API calls: {summary.api_calls}")
        print(f"Duration: {summary.duration_ms / 1000:.2f}s")
        print(f"Report: {report_path}")

        if summary.stopped:
            return EXIT_STOPPED
        if summary.failed > 0:
            print(f"⚠ {summary.failed} assets failed")
            return EXIT_FAILURES
        print("✓ All assets exported successfully")
        return EXIT_SUCCESS

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration Error: {e}", file=sys.stderr)
        print("Please check your configuration file and try again.", file=sys.stderr)
        return EXIT_ERROR

    except AWSCredentialsError as e:
        logger.error(f"AWS credentials error: {e}")
        print(f"AWS Credentials Error: {e}", file=sys.stderr)
        print_remediation(e)
        return EXIT_ERROR

    except QuickSightExportError as e:
        logger.error(f"Export error: {e}")
        print(f"Export Error: {e}", file=sys.stderr)
        print_remediation(e)
        return EXIT_ERROR

    except KeyboardInterrupt:
        logger.warning("Export interrupted by user")
        print("\nExport interrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"Unexpected Error: {e}", file=sys.stderr)
        print("Please check the logs for more details.", file=sys.stderr)
        return EXIT_ERROR

    finally:
        if logging_service is not None:
            logging_service.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        int: Exit code
    """
    parser = create_argument_parser()

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code

    setup_logging(verbose=args.verbose)

    if args.create_sample_config:
        ConfigurationManager().create_sample_config(args.create_sample_config)
        print(f"Sample configuration written to {args.create_sample_config}")
        return EXIT_SUCCESS

    if not args.config:
        parser.print_usage(sys.stderr)
        print("error: --config is required unless --create-sample-config is given", file=sys.stderr)
        return EXIT_ERROR

    return execute_export(args)


if __name__ == '__main__':
    sys.exit(main())
