#!/usr/bin/env python3
"""
Salesforce Org Connector - Main Entry Point

Runs one connector subcommand:
- special-types: retrieve profiles, permission sets, translations, ...
- describe-types / describe-sobjects: describe metadata and SObjects
- query, retrieve, deploy, list-orgs, list-sobjects
- execute-apex, user-permissions
"""

import sys
import logging

from sf_connector.cli.config import parse_arguments
from sf_connector.cli.commands import build_connector, run_command
from sf_connector.exceptions import (
    DataRequiredError,
    FormatError,
    OperationNotAllowedError,
    PathValidationError,
    SalesforceError,
    SFConnectionError,
)
from sf_connector.logging import setup_logging
from sf_connector.progress import create_progress_tracker
from sf_connector.progress.core import ProgressMode

logger = logging.getLogger(__name__)


def main(argv=None):
    """
    Main entry point - parse config and execute the requested command.

    Returns:
        Exit code: 0 for success, 2 for fatal errors, 130 when interrupted
    """
    # Parse arguments and load configuration
    args = parse_arguments(argv)

    # Setup logging with progress-aware management
    logging_manager = setup_logging(args.log_file, console_level=args.console_log_level)

    connector = None
    try:
        # Initialize progress tracker based on CLI argument
        progress_tracker = create_progress_tracker(args.progress)

        # Connect logging and progress systems before starting
        progress_tracker.set_logging_manager(logging_manager)
        connector = build_connector(args, progress_tracker)

        # Execute command with progress tracking context
        with progress_tracker:
            # Initial header (suppressed in progress mode)
            logger.info("=" * 70)
            logger.info(f"SALESFORCE ORG CONNECTOR - {args.command.upper()}")
            logger.info("=" * 70)

            stats = run_command(connector, args)

            if progress_tracker.mode != ProgressMode.OFF:
                progress_tracker.display_completion_summary(stats)

            # Still log to file in progress mode
            logger.info("=" * 70)
            logger.info("COMMAND COMPLETE")
            logger.info("=" * 70)
            for key, value in stats.items():
                logger.info(f"{key.replace('_', ' ').capitalize()}: {value}")

        return 0

    except (DataRequiredError, PathValidationError, FormatError) as e:
        logger.error(f"Invalid input: {e}")
        logger.error("Please check the command arguments and configuration")
        logger.debug("Full error details:", exc_info=True)
        return 2

    except OperationNotAllowedError as e:
        logger.error(f"Operation not allowed: {e}")
        return 2

    except SFConnectionError as e:
        logger.error(f"Salesforce connection failed: {e}")
        logger.error("Please check that the org is authorized in the sf CLI (sf org list)")
        logger.debug("Full error details:", exc_info=True)
        return 2

    except SalesforceError as e:
        logger.error(f"Operation failed: {e}")
        logger.debug("Full error details:", exc_info=True)
        return 2

    except KeyboardInterrupt:
        logger.warning("\nCommand interrupted by user (Ctrl+C)")
        if connector is not None:
            connector.abort_connection()
        logger.info("Exiting gracefully...")
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(f"Unexpected error occurred: {e}")
        logger.error("Please check the log file for detailed error information")
        logger.debug("Full error details:", exc_info=True)
        return 2

    finally:
        logging_manager.cleanup()


if __name__ == '__main__':
    sys.exit(main())
