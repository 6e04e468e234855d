"""
Salesforce Connector

Public operation set for one org: auth lookup, query, metadata and SObject
describe, retrieve/deploy lifecycle, tree and bulk data commands and the
special types retrieval.

Every public operation runs inside a tracker operation. Only one primary
operation may be open per connector; report/cancel calls are pollable and
may run next to it.
"""

import logging
import math
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from sf_connector.api.process import ProcessResponse, ProcessRunner
from sf_connector.api.sf_auth import DEFAULT_API_VERSION, get_sf_auth_info
from sf_connector.api.sf_auth import list_auth_orgs as cli_list_auth_orgs
from sf_connector.api.sf_client import OrgClient
from sf_connector.exceptions import DataRequiredError, SalesforceError, SFAPIError
from sf_connector.metadata.catalog import TypeCatalog
from sf_connector.metadata.manifest import PACKAGE_FILE_NAME
from sf_connector.metadata.merge import MergeMode
from sf_connector.metadata.tree import MetadataNode, MetadataTree, parse_selector, selector_tokens
from sf_connector.metadata.types import FOLDER_TYPES, MetadataDetail, OBJECT_CHILD_TYPES
from sf_connector.metadata.xml_codec import SortOrder
from sf_connector.models import DeployResult, RetrieveResult, SObject
from sf_connector.progress.core.events import EventType, ProgressSink
from sf_connector.progress.core.tracker import OperationContext, ProgressTracker
from sf_connector.workflows.common import ensure_directories, validate_file, validate_folder
from sf_connector.workflows.special_types import RetrievalOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_DIR = "force-app/main/default"
DESTRUCTIVE_CHANGES_FILE = "destructiveChanges.xml"

SOBJECT_ALL = "all"
SOBJECT_CUSTOM = "custom"
SOBJECT_CATEGORIES = (SOBJECT_ALL, "standard", SOBJECT_CUSTOM)

# Marks a unit skipped because the operation was aborted
_SKIPPED = object()


class SFConnector:
    """
    Connector bound to one org username/alias and one local project.

    Args:
        username: Org username or alias used as ``--target-org``
        api_version: API version (defaults to the org's reported version)
        project_folder: Root of the local sfdx project
        package_folder: Folder holding package.xml (``<project>/manifest`` by default)
        package_dir: Source package directory inside the project
        namespace_prefix: Namespace kept when managed components are filtered out
        multi_thread: Describe units in parallel (one worker per CPU)
        runner: ProcessRunner for sf CLI commands
        org_client: OrgClient to use instead of one built from the sf CLI session
        tracker: ProgressTracker shared with a display
        retrieve_timeout: Seconds to wait for retrieved files
        poll_interval: Seconds between retrieved-files checks
    """

    def __init__(
        self,
        username: Optional[str] = None,
        api_version: Optional[str] = None,
        project_folder: Union[str, Path] = ".",
        package_folder: Optional[Union[str, Path]] = None,
        package_dir: str = DEFAULT_PACKAGE_DIR,
        namespace_prefix: str = "",
        multi_thread: bool = False,
        runner: Optional[ProcessRunner] = None,
        org_client: Optional[OrgClient] = None,
        tracker: Optional[ProgressTracker] = None,
        retrieve_timeout: float = 300.0,
        poll_interval: float = 0.5,
    ) -> None:
        self.username = username
        self.api_version = api_version or DEFAULT_API_VERSION
        self.project_folder = Path(project_folder)
        self.package_folder = Path(package_folder) if package_folder else self.project_folder / "manifest"
        self.package_dir = package_dir
        self.namespace_prefix = namespace_prefix or ""
        self.multi_thread = multi_thread
        self.runner = runner or ProcessRunner()
        self.tracker = tracker or ProgressTracker()
        self.retrieve_timeout = retrieve_timeout
        self.poll_interval = poll_interval
        self._org_client = org_client
        self._org_client_lock = threading.Lock()
        self._catalog: Optional[TypeCatalog] = None

    # ------------------------------------------------------------------
    # Collaborators and shared helpers
    # ------------------------------------------------------------------

    @property
    def org_client(self) -> OrgClient:
        with self._org_client_lock:
            if self._org_client is None:
                self._org_client = OrgClient.from_org(self._require_username(), self.runner, self.api_version)
            return self._org_client

    @property
    def package_path(self) -> Path:
        """Source package directory of the current project."""
        return self.project_folder / self.package_dir

    @property
    def manifest_file(self) -> Path:
        return self.package_folder / PACKAGE_FILE_NAME

    def add_sink(self, sink: ProgressSink) -> None:
        self.tracker.add_sink(sink)

    def remove_sink(self, sink: ProgressSink) -> None:
        self.tracker.remove_sink(sink)

    def _require_username(self) -> str:
        if not self.username:
            raise DataRequiredError("An org username or alias is required for this operation")
        return self.username

    @staticmethod
    def _require(value: Any, label: str) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise DataRequiredError(f"{label} is required")
        return value

    def _run_cli(
        self,
        context: OperationContext,
        args: List[str],
        cwd: Optional[Path] = None,
    ) -> ProcessResponse:
        self.tracker.emit(EventType.PROCESS, payload=' '.join(args[:3]), context=context)
        return self.runner.run(args, cwd=cwd)

    def get_catalog(self, refresh: bool = False) -> TypeCatalog:
        """Metadata type catalog of the org, described once per connector."""
        if self._catalog is None or refresh:
            records = self.org_client.metadata_describe(self.api_version)
            self._catalog = TypeCatalog.from_describe(records)
            logger.debug(f"Catalog loaded with {len(self._catalog)} type(s)")
        return self._catalog

    def _run_units(
        self,
        context: OperationContext,
        units: Sequence[str],
        worker: Callable[[str], Any],
        before: EventType,
        after: EventType,
        entity: str = "type",
    ) -> Dict[str, Any]:
        """
        Run ``worker`` once per unit with progress, abort and error handling.

        The abort flag is checked before each unit starts. A unit raising a
        SalesforceError is reported through a DOWNLOAD_ERROR event and left
        out of the result.

        Returns:
            Results of the completed units, in request order
        """
        self.tracker.set_units(len(units), context)
        results: Dict[str, Any] = {}

        def event_fields(unit: str) -> Dict[str, str]:
            return {'entity_type': unit} if entity == "type" else {'entity_name': unit}

        def run_one(unit: str) -> Any:
            if context.aborted:
                return _SKIPPED
            self.tracker.emit(before, context=context, **event_fields(unit))
            return worker(unit)

        def record(unit: str, outcome: Any = None, error: Optional[Exception] = None) -> None:
            if error is not None:
                logger.error(f"  ✗ {unit}: {error}")
                self.tracker.emit(EventType.DOWNLOAD_ERROR, payload=str(error), context=context,
                                  **event_fields(unit))
                return
            if outcome is _SKIPPED:
                return
            results[unit] = outcome
            self.tracker.advance(context)
            self.tracker.emit(after, payload=outcome, context=context, **event_fields(unit))

        if self.multi_thread and len(units) > 1:
            with ThreadPoolExecutor(max_workers=os.cpu_count() or 1) as executor:
                future_to_unit = {executor.submit(run_one, unit): unit for unit in units}
                for future in as_completed(future_to_unit):
                    unit = future_to_unit[future]
                    try:
                        record(unit, future.result())
                    except SalesforceError as e:
                        record(unit, error=e)
        else:
            for unit in units:
                if context.aborted:
                    logger.warning(f"Aborted after {len(results)} of {len(units)} {entity}(s)")
                    break
                try:
                    record(unit, run_one(unit))
                except SalesforceError as e:
                    record(unit, error=e)

        return {unit: results[unit] for unit in units if unit in results}

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def list_auth_orgs(self) -> List[Dict[str, str]]:
        """Orgs authorized in the sf CLI."""
        with self.tracker.operation("list_auth_orgs") as context:
            self.tracker.emit(EventType.PROCESS, payload="org list", context=context)
            return cli_list_auth_orgs(self.runner)

    def get_auth_org(self, username: Optional[str] = None) -> Dict[str, str]:
        """Auth details of ``username`` (the connector's org, or the CLI default)."""
        with self.tracker.operation("get_auth_org") as context:
            self.tracker.emit(EventType.PROCESS, payload="org display", context=context)
            return get_sf_auth_info(username or self.username, self.runner)

    def get_auth_username(self, username: Optional[str] = None) -> Optional[str]:
        """Username behind an alias (or the connector's org)."""
        return self.get_auth_org(username).get('username')

    def get_server_instance(self, username: Optional[str] = None) -> Optional[str]:
        """Instance URL of an authorized org."""
        return self.get_auth_org(username).get('instance_url')

    def set_auth_org(self, project_folder: Optional[Union[str, Path]] = None) -> None:
        """Make the connector's org the target org of a project."""
        username = self._require_username()
        folder = validate_folder(project_folder or self.project_folder, "Project folder")
        with self.tracker.operation("set_auth_org") as context:
            self._set_target_org(context, folder, username)

    def _set_target_org(self, context: OperationContext, folder: Path, username: str) -> None:
        self._run_cli(context, ['config', 'set', f'target-org={username}'], cwd=folder)
        logger.info(f"Target org set to {username} in {folder}")

    # ------------------------------------------------------------------
    # Query and describe
    # ------------------------------------------------------------------

    def query(self, soql: str, use_tooling: bool = False) -> List[Dict[str, Any]]:
        self._require(soql, "SOQL query")
        self._require_username()
        with self.tracker.operation("query"):
            return self.org_client.query(soql, use_tooling=use_tooling)

    def list_metadata_types(self) -> List[MetadataDetail]:
        """Metadata types reported by the org, sorted by name."""
        self._require_username()
        with self.tracker.operation("list_metadata_types") as context:
            self.tracker.emit(EventType.PROCESS, payload="org list metadata-types", context=context)
            catalog = self.get_catalog(refresh=True)
            return [catalog.get(name) for name in catalog.names()]

    def describe_metadata_types(
        self,
        types: Optional[Sequence[Any]] = None,
        download_all: bool = True,
    ) -> MetadataTree:
        """
        Describe the components of metadata types.

        Args:
            types: Type names or detail objects (None describes every type)
            download_all: Keep components of managed packages

        Returns:
            Tree with one TYPE node per successfully described type
        """
        self._require_username()
        with self.tracker.operation("describe_metadata_types") as context:
            names = self.get_catalog().resolve(types)
            return self.describe_metadata_tree(names, download_all, context)

    def describe_metadata_tree(
        self,
        type_names: Sequence[str],
        download_all: bool,
        context: OperationContext,
    ) -> MetadataTree:
        """Fan-out describe of ``type_names`` inside an already open operation."""
        catalog = self.get_catalog()
        logger.info(f"Describing {len(type_names)} metadata type(s)")
        return self._run_units(
            context,
            list(type_names),
            lambda name: self._describe_type(catalog.get(name), download_all),
            EventType.BEFORE_DOWNLOAD_TYPE,
            EventType.AFTER_DOWNLOAD_TYPE,
        )

    def _keep_component(self, component: Dict[str, Any], download_all: bool) -> bool:
        if download_all:
            return True
        namespace = component.get('namespacePrefix') or ""
        return not namespace or namespace == self.namespace_prefix

    def _describe_type(self, detail: MetadataDetail, download_all: bool) -> MetadataNode:
        type_name = detail.xml_name
        client = self.org_client
        type_node = MetadataNode(type_name)

        if detail.in_folder:
            folder_type = FOLDER_TYPES.get(type_name, f"{type_name}Folder")
            for folder in client.metadata_list(folder_type, self.api_version):
                folder_name = folder.get('fullName')
                if not folder_name or not self._keep_component(folder, download_all):
                    continue
                folder_node = type_node.add_child(MetadataNode(folder_name))
                for item in client.metadata_list(type_name, self.api_version, folder=folder_name):
                    full_name = item.get('fullName') or ''
                    if full_name and self._keep_component(item, download_all):
                        folder_node.add_child(MetadataNode(full_name.split('/', 1)[-1]))
            return type_node

        for component in client.metadata_list(type_name, self.api_version):
            full_name = component.get('fullName')
            if not full_name or not self._keep_component(component, download_all):
                continue
            if type_name in OBJECT_CHILD_TYPES and '.' in full_name:
                object_name, _, item_name = full_name.partition('.')
                object_node = type_node.get_child(object_name) or type_node.add_child(MetadataNode(object_name))
                object_node.add_child(MetadataNode(item_name))
            else:
                type_node.add_child(MetadataNode(full_name))
        return type_node

    def list_sobjects(self, category: Optional[str] = None) -> List[str]:
        """
        Names of the queryable SObjects of the org.

        Args:
            category: ``standard``, ``custom`` or ``all`` (None means all)
        """
        self._require_username()
        category = (category or SOBJECT_ALL).lower()
        if category not in SOBJECT_CATEGORIES:
            raise DataRequiredError(f"Unknown SObject category '{category}', use one of {', '.join(SOBJECT_CATEGORIES)}")
        with self.tracker.operation("list_sobjects"):
            names = []
            for sobject in self.org_client.describe_global():
                if not sobject.get('queryable', True):
                    continue
                custom = bool(sobject.get('custom', False))
                if category == SOBJECT_ALL or custom == (category == SOBJECT_CUSTOM):
                    names.append(sobject['name'])
            return sorted(names)

    def describe_sobjects(self, names: Optional[Sequence[str]] = None) -> Dict[str, SObject]:
        """
        Describe SObjects one unit at a time.

        Args:
            names: SObject API names (None describes every SObject)

        Returns:
            Describes of the SObjects that succeeded, in request order
        """
        self._require_username()
        with self.tracker.operation("describe_sobjects") as context:
            if names is None:
                names = sorted(s['name'] for s in self.org_client.describe_global())
            names = TypeCatalog().resolve(names)
            logger.info(f"Describing {len(names)} SObject(s)")
            return self._run_units(
                context,
                names,
                lambda name: SObject.from_describe(self.org_client.describe(name)),
                EventType.BEFORE_DOWNLOAD_OBJECT,
                EventType.AFTER_DOWNLOAD_OBJECT,
                entity="object",
            )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        name: str,
        folder: Optional[Union[str, Path]] = None,
        template: Optional[str] = None,
        with_manifest: bool = False,
    ) -> Path:
        """
        Generate an empty sfdx project ``<folder>/<name>`` and switch the connector to it.

        Args:
            name: Project name
            folder: Parent folder (the connector's project folder by default)
            template: ``sf project generate`` template (standard, empty, analytics)
            with_manifest: Also generate ``manifest/package.xml``; the connector's
                           package folder then points at it
        """
        self._require(name, "Project name")
        target = validate_folder(folder or self.project_folder, "Project parent folder", create=True)
        with self.tracker.operation("create_project") as context:
            project = self.create_project_folder(name, target, context, template, with_manifest)
        self.project_folder = project
        if with_manifest:
            self.package_folder = project / "manifest"
        return project

    def create_project_folder(
        self,
        name: str,
        folder: Path,
        context: OperationContext,
        template: Optional[str] = None,
        with_manifest: bool = False,
    ) -> Path:
        """Generate a project inside an already open operation."""
        args = ['project', 'generate', '--name', name, '--output-dir', str(folder)]
        if template:
            args += ['--template', template]
        if self.namespace_prefix:
            args += ['--namespace', self.namespace_prefix]
        if with_manifest:
            args.append('--manifest')
        self._run_cli(context, args)
        project = Path(folder) / name
        ensure_directories(project / self.package_dir)
        logger.info(f"Created project {project}")
        return project

    def set_project_org(self, project: Path, context: OperationContext) -> None:
        """Point ``project`` at the connector's org inside an already open operation."""
        self._set_target_org(context, project, self._require_username())

    def convert_project(
        self,
        target_dir: Union[str, Path],
        source_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        """Convert source format into metadata format (``sf project convert source``)."""
        source = validate_folder(source_dir or self.package_path, "Source folder")
        target = validate_folder(target_dir, "Target folder", create=True)
        with self.tracker.operation("convert_project") as context:
            self._run_cli(
                context,
                ['project', 'convert', 'source', '--source-dir', str(source), '--output-dir', str(target)],
                cwd=self.project_folder,
            )
            return target

    def convert_metadata_project(
        self,
        target_dir: Union[str, Path],
        source_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        """Convert a metadata format folder into source format (``sf project convert mdapi``)."""
        source = validate_folder(source_dir or self.package_folder, "Metadata folder")
        manifest = validate_file(source / PACKAGE_FILE_NAME, "Manifest")
        target = validate_folder(target_dir, "Target folder", create=True)
        with self.tracker.operation("convert_metadata_project") as context:
            self._run_cli(
                context,
                ['project', 'convert', 'mdapi', '--root-dir', str(source), '--manifest', str(manifest),
                 '--output-dir', str(target), '--api-version', self.api_version],
                cwd=self.project_folder,
            )
            return target

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    @property
    def _wait_minutes(self) -> str:
        return str(max(1, math.ceil(self.retrieve_timeout / 60)))

    def retrieve(
        self,
        target_dir: Optional[Union[str, Path]] = None,
        use_metadata_api: bool = False,
        wait: Optional[int] = None,
    ) -> RetrieveResult:
        """
        Retrieve the components listed in the project's package.xml.

        Args:
            target_dir: Output folder for metadata format (required with use_metadata_api)
            use_metadata_api: Retrieve metadata format zip contents into target_dir
            wait: Minutes to wait for the job (default derived from retrieve_timeout)
        """
        username = self._require_username()
        manifest = validate_file(self.manifest_file, "Manifest")
        args = ['project', 'retrieve', 'start', '--manifest', str(manifest), '--target-org', username,
                '--wait', str(wait) if wait else self._wait_minutes]
        if use_metadata_api:
            target = validate_folder(self._require(target_dir, "Target folder"), "Target folder", create=True)
            args += ['--target-metadata-dir', str(target), '--unzip']
        with self.tracker.operation("retrieve") as context:
            self.tracker.emit(EventType.RETRIEVE, context=context)
            response = self._run_cli(context, args, cwd=self.project_folder)
            return RetrieveResult.from_response(response.result)

    def retrieve_project(self, project: Path, context: OperationContext) -> RetrieveResult:
        """Source format retrieve of ``project``'s manifest inside an already open operation."""
        args = ['project', 'retrieve', 'start', '--manifest', str(self.manifest_file),
                '--target-org', self._require_username(), '--wait', self._wait_minutes]
        response = self._run_cli(context, args, cwd=project)
        result = RetrieveResult.from_response(response.result)
        logger.info(f"Retrieve {result.status or 'finished'}: {len(result.files)} file(s)")
        return result

    def retrieve_report(self, job_id: str, target_dir: Optional[Union[str, Path]] = None) -> RetrieveResult:
        """Status of a retrieve job. Pollable: may run during another operation."""
        self._require(job_id, "Retrieve job id")
        username = self._require_username()
        args = ['project', 'retrieve', 'report', '--job-id', job_id, '--target-org', username]
        if target_dir:
            args += ['--target-metadata-dir', str(validate_folder(target_dir, "Target folder", create=True))]
        with self.tracker.operation("retrieve_report", pollable=True) as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return RetrieveResult.from_response(response.result)

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    def _deploy_options(
        self,
        args: List[str],
        test_level: Optional[str],
        run_tests: Optional[Sequence[str]],
        wait: Optional[int],
    ) -> List[str]:
        if test_level:
            args += ['--test-level', test_level]
        for test in run_tests or []:
            args += ['--tests', test]
        if wait:
            args += ['--wait', str(wait)]
        else:
            args.append('--async')
        return args

    def deploy(
        self,
        test_level: Optional[str] = None,
        run_tests: Optional[Sequence[str]] = None,
        wait: Optional[int] = None,
        check_only: bool = False,
    ) -> DeployResult:
        """
        Deploy the components listed in the project's package.xml.

        A ``destructiveChanges.xml`` next to the manifest is applied after
        the deploy. Without ``wait`` the job is started asynchronously and
        its id is returned in the result.
        """
        username = self._require_username()
        manifest = validate_file(self.manifest_file, "Manifest")
        command = 'validate' if check_only else 'start'
        args = ['project', 'deploy', command, '--manifest', str(manifest), '--target-org', username]
        destructive = self.package_folder / DESTRUCTIVE_CHANGES_FILE
        if destructive.is_file():
            args += ['--post-destructive-changes', str(destructive)]
        args = self._deploy_options(args, test_level, run_tests, wait)
        with self.tracker.operation("validate_deploy" if check_only else "deploy") as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return DeployResult.from_response(response.result)

    def validate_deploy(
        self,
        test_level: Optional[str] = None,
        run_tests: Optional[Sequence[str]] = None,
        wait: Optional[int] = None,
    ) -> DeployResult:
        return self.deploy(test_level, run_tests, wait, check_only=True)

    def _selector_args(self, selector: Union[str, MetadataTree]) -> List[str]:
        tree = parse_selector(selector) if isinstance(selector, str) else selector
        args: List[str] = []
        for token in selector_tokens(tree):
            type_name, _, member = token.partition(':')
            if member and type_name in FOLDER_TYPES and '.' in member:
                member = member.replace('.', '/', 1)
            args += ['--metadata', f"{type_name}:{member}" if member else type_name]
        return args

    def deploy_selector(
        self,
        selector: Union[str, MetadataTree],
        test_level: Optional[str] = None,
        run_tests: Optional[Sequence[str]] = None,
        wait: Optional[int] = None,
    ) -> DeployResult:
        """
        Deploy the checked nodes of a tree (or a ``Type:Object.Item`` selector string).

        Raises:
            DataRequiredError: If nothing is selected
        """
        username = self._require_username()
        metadata_args = self._selector_args(selector)
        if not metadata_args:
            raise DataRequiredError("Selector does not contain any checked metadata")
        args = ['project', 'deploy', 'start'] + metadata_args + ['--target-org', username]
        args = self._deploy_options(args, test_level, run_tests, wait)
        with self.tracker.operation("deploy_selector") as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return DeployResult.from_response(response.result)

    def quick_deploy(self, job_id: str, wait: Optional[int] = None) -> DeployResult:
        """Deploy a previously validated job."""
        self._require(job_id, "Validated job id")
        username = self._require_username()
        args = ['project', 'deploy', 'quick', '--job-id', job_id, '--target-org', username]
        args += ['--wait', str(wait)] if wait else ['--async']
        with self.tracker.operation("quick_deploy") as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return DeployResult.from_response(response.result)

    def deploy_report(self, job_id: str) -> DeployResult:
        """Status of a deploy job. Pollable: may run during another operation."""
        self._require(job_id, "Deploy job id")
        args = ['project', 'deploy', 'report', '--job-id', job_id, '--target-org', self._require_username()]
        with self.tracker.operation("deploy_report", pollable=True) as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return DeployResult.from_response(response.result)

    def cancel_deploy(self, job_id: str) -> DeployResult:
        """Cancel a deploy job. Pollable: may run during another operation."""
        self._require(job_id, "Deploy job id")
        args = ['project', 'deploy', 'cancel', '--job-id', job_id, '--target-org', self._require_username()]
        with self.tracker.operation("cancel_deploy", pollable=True) as context:
            response = self._run_cli(context, args, cwd=self.project_folder)
            return DeployResult.from_response(response.result)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def export_tree_data(
        self,
        soql: str,
        output_dir: Union[str, Path],
        prefix: Optional[str] = None,
        plan: bool = True,
    ) -> Any:
        """Export records with ``sf data export tree``."""
        self._require(soql, "SOQL query")
        username = self._require_username()
        target = validate_folder(output_dir, "Output folder", create=True)
        args = ['data', 'export', 'tree', '--query', soql, '--output-dir', str(target), '--target-org', username]
        if prefix:
            args += ['--prefix', prefix]
        if plan:
            args.append('--plan')
        with self.tracker.operation("export_tree_data") as context:
            return self._run_cli(context, args, cwd=self.project_folder).result

    def import_tree_data(
        self,
        plan_file: Optional[Union[str, Path]] = None,
        files: Optional[Sequence[Union[str, Path]]] = None,
    ) -> Any:
        """Import records with ``sf data import tree`` from a plan or data files."""
        username = self._require_username()
        if plan_file:
            args = ['data', 'import', 'tree', '--plan', str(validate_file(plan_file, "Plan file"))]
        elif files:
            paths = [str(validate_file(f, "Data file")) for f in files]
            args = ['data', 'import', 'tree', '--files', ','.join(paths)]
        else:
            raise DataRequiredError("A plan file or data files are required")
        args += ['--target-org', username]
        with self.tracker.operation("import_tree_data") as context:
            return self._run_cli(context, args, cwd=self.project_folder).result

    def bulk_delete(self, sobject: str, csv_file: Union[str, Path], wait: int = 10) -> Any:
        """Delete the records listed (by Id) in a CSV file with the Bulk API."""
        self._require(sobject, "SObject name")
        username = self._require_username()
        source = validate_file(csv_file, "CSV file")
        args = ['data', 'delete', 'bulk', '--sobject', sobject, '--file', str(source),
                '--wait', str(wait), '--target-org', username]
        with self.tracker.operation("bulk_delete") as context:
            return self._run_cli(context, args, cwd=self.project_folder).result

    # ------------------------------------------------------------------
    # Apex and permissions
    # ------------------------------------------------------------------

    def execute_apex_anonymous(self, script_file: Union[str, Path]) -> str:
        """
        Run an anonymous Apex script and return its debug log.

        Raises:
            SFAPIError: If the script does not compile or throws
        """
        username = self._require_username()
        script = validate_file(script_file, "Apex script")
        args = ['apex', 'run', '--file', str(script), '--target-org', username]
        with self.tracker.operation("execute_apex_anonymous") as context:
            result = self._run_cli(context, args, cwd=self.project_folder).result or {}
        if not result.get('success', False):
            if not result.get('compiled', True):
                raise SFAPIError(
                    f"{result.get('compileProblem')} Line: {result.get('line')}; Column: {result.get('column')}"
                )
            raise SFAPIError(f"{result.get('exceptionMessage')}. {result.get('exceptionStackTrace') or ''}".strip())
        return result.get('logs') or ""

    def load_user_permissions(self, tmp_folder: Optional[Union[str, Path]] = None) -> List[str]:
        """
        User permission names available in the org.

        Retrieves the Admin profile into a scratch project and reads its
        ``userPermissions``.
        """
        self._require_username()
        context = self.tracker.start_operation("load_user_permissions")
        orchestrator = RetrievalOrchestrator(self, poll_interval=self.poll_interval, timeout=self.retrieve_timeout)
        return orchestrator.load_user_permissions(context, Path(tmp_folder) if tmp_folder else None)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def abort_connection(self) -> int:
        """
        Abort the open operation and kill every running sf CLI process.

        Returns:
            Number of processes killed
        """
        self.tracker.abort()
        killed = self.runner.kill_all()
        if killed:
            logger.warning(f"Killed {killed} running process(es)")
        return killed

    # ------------------------------------------------------------------
    # Special types
    # ------------------------------------------------------------------

    def _retrieve_special_types(
        self,
        name: str,
        mode: MergeMode,
        types: Optional[Sequence[str]],
        selection: Any,
        compress: bool,
        sort_order: SortOrder,
        download_all: bool,
        tmp_folder: Optional[Union[str, Path]],
    ) -> RetrieveResult:
        self._require_username()
        context = self.tracker.start_operation(name)
        orchestrator = RetrievalOrchestrator(self, poll_interval=self.poll_interval, timeout=self.retrieve_timeout)
        return orchestrator.run(
            context,
            mode,
            types=list(types) if types else None,
            selection=selection,
            compress=compress,
            sort_order=sort_order,
            download_all=download_all,
            tmp_folder=Path(tmp_folder) if tmp_folder else None,
        )

    def retrieve_local_special_types(
        self,
        types: Optional[Sequence[str]] = None,
        selection: Any = None,
        compress: bool = False,
        sort_order: SortOrder = SortOrder.SIMPLE_FIRST,
        tmp_folder: Optional[Union[str, Path]] = None,
    ) -> RetrieveResult:
        """Retrieve special types for the components present in the local project."""
        return self._retrieve_special_types(
            "retrieve_local_special_types", MergeMode.LOCAL, types, selection,
            compress, sort_order, True, tmp_folder,
        )

    def retrieve_mixed_special_types(
        self,
        types: Optional[Sequence[str]] = None,
        selection: Any = None,
        compress: bool = False,
        sort_order: SortOrder = SortOrder.SIMPLE_FIRST,
        download_all: bool = True,
        tmp_folder: Optional[Union[str, Path]] = None,
    ) -> RetrieveResult:
        """Retrieve special types for local components widened with the org's."""
        return self._retrieve_special_types(
            "retrieve_mixed_special_types", MergeMode.MIXED, types, selection,
            compress, sort_order, download_all, tmp_folder,
        )

    def retrieve_org_special_types(
        self,
        types: Optional[Sequence[str]] = None,
        selection: Any = None,
        compress: bool = False,
        sort_order: SortOrder = SortOrder.SIMPLE_FIRST,
        download_all: bool = True,
        tmp_folder: Optional[Union[str, Path]] = None,
    ) -> RetrieveResult:
        """Retrieve special types for every component in the org."""
        return self._retrieve_special_types(
            "retrieve_org_special_types", MergeMode.ORG, types, selection,
            compress, sort_order, download_all, tmp_folder,
        )
