"""
CLI Command Handlers

One handler per subcommand. Each handler runs the connector operation
and returns a flat stats dict used for the completion summary.
"""

import json
import logging
from argparse import Namespace
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.table import Table

from sf_connector.connector import SFConnector
from sf_connector.metadata.merge import MergeMode
from sf_connector.metadata.tree import tree_to_json
from sf_connector.metadata.xml_codec import SortOrder
from sf_connector.progress.core.tracker import ProgressTracker

logger = logging.getLogger(__name__)

Handler = Callable[[SFConnector, Namespace, Console], Dict[str, Any]]


def build_connector(args: Namespace, tracker: Optional[ProgressTracker] = None) -> SFConnector:
    return SFConnector(
        username=args.org,
        api_version=args.api_version,
        project_folder=args.project,
        multi_thread=args.multi_thread,
        tracker=tracker,
        retrieve_timeout=args.retrieve_timeout,
    )


def special_types_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    operations = {
        MergeMode.LOCAL: connector.retrieve_local_special_types,
        MergeMode.MIXED: connector.retrieve_mixed_special_types,
        MergeMode.ORG: connector.retrieve_org_special_types,
    }
    mode = MergeMode(args.mode)
    options = dict(
        types=args.types,
        selection=args.filter,
        compress=args.compress,
        sort_order=SortOrder(args.sort_order),
        tmp_folder=args.tmp_folder,
    )
    if mode != MergeMode.LOCAL:
        options['download_all'] = args.managed
    result = operations[mode](**options)
    return {
        'mode': mode.value,
        'status': result.status or 'n/a',
        'retrieved_files': len(result.files),
    }


def describe_types_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    tree = connector.describe_metadata_types(args.types or None, download_all=args.managed)
    components = sum(len(node.childs) for node in tree.values())
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(tree_to_json(tree), indent=2), encoding='utf-8')
        logger.info(f"Metadata tree written to {args.output}")
    else:
        table = Table(title="Metadata types")
        table.add_column("Type", style="cyan")
        table.add_column("Components", justify="right")
        for name, node in tree.items():
            table.add_row(name, str(len(node.childs)))
        console.print(table)
    return {'types_described': len(tree), 'components': components}


def describe_sobjects_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    sobjects = connector.describe_sobjects(args.sobjects or None)
    table = Table(title="SObjects")
    table.add_column("Name", style="cyan")
    table.add_column("Label")
    table.add_column("Fields", justify="right")
    for sobject in sobjects.values():
        table.add_row(sobject.name, sobject.label, str(len(sobject.fields)))
    console.print(table)
    return {'sobjects_described': len(sobjects)}


def query_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    records = connector.query(args.soql, use_tooling=args.tooling)
    console.print_json(data=records)
    return {'records': len(records)}


def retrieve_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    result = connector.retrieve(target_dir=args.metadata_dir, use_metadata_api=args.metadata_dir is not None)
    return {'status': result.status or 'n/a', 'retrieved_files': len(result.files)}


def deploy_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    if args.selector:
        if args.check_only:
            logger.warning("--check-only is ignored when deploying a selector")
        result = connector.deploy_selector(args.selector, args.test_level, args.tests, args.wait)
    else:
        result = connector.deploy(args.test_level, args.tests, args.wait, check_only=args.check_only)
    for error in result.errors:
        logger.error(f"  ✗ {error.type} {error.full_name}: {error.problem}")
    return {
        'job_id': result.job_id or 'n/a',
        'status': result.status or 'n/a',
        'components_deployed': result.number_components_deployed,
        'component_errors': result.number_component_errors,
    }


def list_orgs_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    orgs = connector.list_auth_orgs()
    table = Table(title="Authorized orgs")
    table.add_column("Alias", style="cyan")
    table.add_column("Username")
    table.add_column("Instance URL")
    table.add_column("Default", justify="center")
    for org in orgs:
        table.add_row(org['alias'] or '', org['username'], org['instance_url'] or '', "✓" if org['is_default'] else "")
    console.print(table)
    return {'orgs': len(orgs)}


def list_sobjects_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    names = connector.list_sobjects(args.category)
    for name in names:
        console.print(name)
    return {'category': args.category, 'sobjects': len(names)}


def execute_apex_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    log = connector.execute_apex_anonymous(args.script)
    console.print(log, markup=False, highlight=False)
    return {'script': args.script.name, 'log_lines': len(log.splitlines())}


def user_permissions_command(connector: SFConnector, args: Namespace, console: Console) -> Dict[str, Any]:
    permissions = connector.load_user_permissions(args.tmp_folder)
    table = Table(title="User permissions")
    table.add_column("Permission", style="cyan")
    for name in permissions:
        table.add_row(name)
    console.print(table)
    return {'user_permissions': len(permissions)}


COMMANDS: Dict[str, Handler] = {
    'special-types': special_types_command,
    'describe-types': describe_types_command,
    'describe-sobjects': describe_sobjects_command,
    'query': query_command,
    'retrieve': retrieve_command,
    'deploy': deploy_command,
    'list-orgs': list_orgs_command,
    'list-sobjects': list_sobjects_command,
    'execute-apex': execute_apex_command,
    'user-permissions': user_permissions_command,
}


def run_command(connector: SFConnector, args: Namespace, console: Optional[Console] = None) -> Dict[str, Any]:
    """Dispatch ``args.command`` to its handler."""
    handler = COMMANDS[args.command]
    logger.debug(f"Running command: {args.command}")
    return handler(connector, args, console or Console())
