"""
CLI Configuration Module

Handles command-line argument parsing and environment configuration.
"""

import os
import argparse
import logging
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

from sf_connector.api.sf_auth import DEFAULT_API_VERSION
from sf_connector.metadata.xml_codec import SortOrder

logger = logging.getLogger(__name__)

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def _env_number(name: str, default: float, cast=float, minimum: float = 0) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value '{raw}', using default {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} must be at least {minimum}, got {value}. Using default {default}.")
        return default
    return value


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser, taking defaults from the environment.

    Environment variables (a ``.env`` file is loaded first):
        SF_ORG_ALIAS, PROJECT_FOLDER, API_VERSION, LOG_FILE, MULTI_THREAD,
        RETRIEVE_TIMEOUT, PROGRESS
    """
    # Load environment variables from .env file (if present)
    load_dotenv()

    env_org_alias = os.getenv('SF_ORG_ALIAS')
    env_project_folder = os.getenv('PROJECT_FOLDER', '.')
    env_api_version = os.getenv('API_VERSION', DEFAULT_API_VERSION)
    env_log_file = os.getenv('LOG_FILE', './logs/sf_connector.log')
    env_progress = os.getenv('PROGRESS', 'auto')
    multi_thread = _env_flag('MULTI_THREAD')
    retrieve_timeout = _env_number('RETRIEVE_TIMEOUT', 300.0, minimum=1)

    if env_progress not in ('auto', 'on', 'off'):
        logger.warning(f"Invalid PROGRESS value '{env_progress}', using default 'auto'")
        env_progress = 'auto'

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--org',
        type=str,
        default=env_org_alias,
        help=f'Salesforce org alias or username (default: {env_org_alias or "use default org"})'
    )
    common.add_argument(
        '--project',
        type=Path,
        default=Path(env_project_folder),
        help=f'sfdx project folder (default: {env_project_folder})'
    )
    common.add_argument(
        '--api-version',
        type=str,
        default=env_api_version,
        help=f'Metadata API version (default: {env_api_version})'
    )
    common.add_argument(
        '--multi-thread',
        action='store_true',
        default=multi_thread,
        help='Describe metadata types and SObjects in parallel'
    )
    common.add_argument(
        '--progress',
        type=str,
        choices=['auto', 'on', 'off'],
        default=env_progress,
        help=f'Progress display mode (default: {env_progress})'
    )
    common.add_argument(
        '--log-level',
        type=str.upper,
        choices=LOG_LEVELS,
        default='INFO',
        help='Console log level when progress display is off (default: INFO)'
    )

    parser = argparse.ArgumentParser(
        description='Salesforce org connector: metadata, retrieve, deploy and special types'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    special = subparsers.add_parser(
        'special-types', parents=[common],
        help='Retrieve special types (profiles, permission sets, translations, ...)'
    )
    special.add_argument(
        '--mode',
        choices=['local', 'mixed', 'org'],
        default='mixed',
        help='Metadata source for the manifest (default: mixed)'
    )
    special.add_argument(
        '--types',
        type=lambda s: [t.strip() for t in s.split(',') if t.strip()],
        default=None,
        help='Comma-separated special parent types (default: all)'
    )
    special.add_argument(
        '--filter',
        type=str,
        default=None,
        help='JSON selection filter (file path or inline JSON) for files copied back'
    )
    special.add_argument(
        '--compress',
        action='store_true',
        help='Re-serialize copied XML files'
    )
    special.add_argument(
        '--sort-order',
        choices=[order.value for order in SortOrder],
        default=SortOrder.SIMPLE_FIRST.value,
        help='Element order used with --compress'
    )
    special.add_argument(
        '--managed',
        action='store_true',
        help='Include components from managed packages'
    )
    special.add_argument(
        '--tmp-folder',
        type=Path,
        default=None,
        help='Scratch folder for the temporary project (default: new temp folder)'
    )

    describe_types = subparsers.add_parser(
        'describe-types', parents=[common], help='Describe components of metadata types'
    )
    describe_types.add_argument('types', nargs='*', help='Metadata types (default: all)')
    describe_types.add_argument('--managed', action='store_true', help='Include managed package components')
    describe_types.add_argument('--output', type=Path, default=None, help='Write the tree as JSON to this file')

    describe_sobjects = subparsers.add_parser(
        'describe-sobjects', parents=[common], help='Describe SObjects'
    )
    describe_sobjects.add_argument('sobjects', nargs='*', help='SObject API names (default: all)')

    query = subparsers.add_parser('query', parents=[common], help='Run a SOQL query')
    query.add_argument('soql', help='SOQL query')
    query.add_argument('--tooling', action='store_true', help='Use the Tooling API')

    retrieve = subparsers.add_parser('retrieve', parents=[common], help="Retrieve the project's package.xml")
    retrieve.add_argument('--metadata-dir', type=Path, default=None,
                          help='Retrieve metadata format into this folder')

    deploy = subparsers.add_parser('deploy', parents=[common], help="Deploy the project's package.xml")
    deploy.add_argument('--selector', type=str, default=None,
                        help='Deploy "Type:Object.Item" tokens instead of the manifest')
    deploy.add_argument('--test-level', type=str, default=None,
                        choices=['NoTestRun', 'RunSpecifiedTests', 'RunLocalTests', 'RunAllTestsInOrg'])
    deploy.add_argument('--tests', type=lambda s: [t.strip() for t in s.split(',') if t.strip()],
                        default=None, help='Comma-separated test classes for RunSpecifiedTests')
    deploy.add_argument('--wait', type=int, default=None, help='Minutes to wait (default: async)')
    deploy.add_argument('--check-only', action='store_true', help='Validate without saving')

    subparsers.add_parser('list-orgs', parents=[common], help='List orgs authorized in the sf CLI')

    list_sobjects = subparsers.add_parser('list-sobjects', parents=[common], help='List queryable SObjects')
    list_sobjects.add_argument('--category', choices=['all', 'standard', 'custom'], default='all')

    apex = subparsers.add_parser('execute-apex', parents=[common], help='Run an anonymous Apex script')
    apex.add_argument('script', type=Path, help='Apex script file')

    permissions = subparsers.add_parser(
        'user-permissions', parents=[common], help='List the user permissions available in the org'
    )
    permissions.add_argument('--tmp-folder', type=Path, default=None,
                             help='Scratch folder for the temporary project (default: new temp folder)')

    parser.set_defaults(log_file=Path(env_log_file), retrieve_timeout=retrieve_timeout)
    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments and load environment configuration.

    Returns:
        argparse.Namespace: Parsed arguments with additional attributes:
            - log_file: Path
            - retrieve_timeout: float
            - console_log_level: int
    """
    args = build_parser().parse_args(argv)
    args.console_log_level = getattr(logging, args.log_level)
    return args
