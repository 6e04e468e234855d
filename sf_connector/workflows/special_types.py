"""
Special Types Retrieval Workflow

Retrieves special metadata types (profiles, permission sets, translations,
...) together with the types they depend on, then copies the selected
files back into the original project.

Phases run strictly in order:
1. PREPARE     - parse the selection filter, expand the work set
2. LOAD        - read metadata from disk and/or the org
3. SCAFFOLD    - create a scratch project and its manifest
4. RETRIEVE    - authorize the scratch project and retrieve into it
5. MERGE_BACK  - copy selected files into the original project
6. RESTORE     - restore project pointers and release the operation

The user permissions load reuses the scaffold and retrieve phases for the
Admin profile only.

RESTORE always runs, also when an earlier phase raised.
"""

import logging
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TYPE_CHECKING

from lxml import etree

from sf_connector.exceptions import RetrieveTimeoutError
from sf_connector.metadata.catalog import TypeCatalog
from sf_connector.metadata.manifest import ManifestBuilder
from sf_connector.metadata.merge import MergeMode, MergeResult, MetadataMergeEngine
from sf_connector.metadata.scanner import LocalMetadataScanner
from sf_connector.metadata.tree import MetadataNode, MetadataTree, tree_from_json
from sf_connector.metadata.types import OBJECT_CHILD_TYPES, get_detail, is_special_type, source_file_path
from sf_connector.metadata.xml_codec import SortOrder, XmlCodec
from sf_connector.models import RetrieveResult
from sf_connector.progress.core.events import EventType
from sf_connector.progress.core.tracker import OperationContext
from sf_connector.utils import log_section_header
from sf_connector.workflows.common import copy_file, delete_path, ensure_directories, has_files

if TYPE_CHECKING:
    from sf_connector.connector import SFConnector

logger = logging.getLogger(__name__)

SCRATCH_PROJECT_NAME = "TempProject"
MANIFEST_FOLDER = "manifest"
FORCEIGNORE_FILE = ".forceignore"
PROFILE_TYPE = "Profile"
ADMIN_PROFILE = "Admin"


def read_user_permissions(profile_file: Path) -> List[str]:
    """Names of the ``userPermissions`` entries of a profile file."""
    if not profile_file.is_file():
        logger.warning(f"Profile not retrieved: {profile_file}")
        return []
    root = etree.parse(str(profile_file)).getroot()
    return [name.text for name in root.findall('{*}userPermissions/{*}name') if name.text]


class RetrievalPhase(Enum):
    """Phases of the special types retrieval."""
    IDLE = "idle"
    PREPARE = "prepare"
    LOAD = "load"
    SCAFFOLD = "scaffold"
    RETRIEVE = "retrieve"
    MERGE_BACK = "merge-back"
    RESTORE = "restore"


# (type, object, item, relative path)
CopyUnit = Tuple[str, str, Optional[str], str]


class RetrievalOrchestrator:
    """
    Runs one special types retrieval for a connector.

    The scratch folder is owned by a single run. The connector's project
    and manifest pointers are switched to the scratch project during the
    run and restored at the end.
    """

    def __init__(
        self,
        connector: "SFConnector",
        poll_interval: float = 0.5,
        timeout: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.connector = connector
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self.phase = RetrievalPhase.IDLE
        self.phases_run: List[RetrievalPhase] = []

    def _enter(self, phase: RetrievalPhase, step: int) -> None:
        self.phase = phase
        self.phases_run.append(phase)
        log_section_header(f"STEP {step}: {phase.value.upper()}")

    def run(
        self,
        context: OperationContext,
        mode: MergeMode,
        types: Optional[List[str]] = None,
        selection: Any = None,
        compress: bool = False,
        sort_order: SortOrder = SortOrder.SIMPLE_FIRST,
        download_all: bool = True,
        tmp_folder: Optional[Path] = None,
    ) -> RetrieveResult:
        """
        Execute all phases.

        Args:
            context: Operation context opened by the connector (closed here)
            mode: Metadata source(s) for the manifest
            types: Special parent types to retrieve (None derives them)
            selection: JSON selection filter (dict, JSON string or file path);
                       without it the retrieve itself is the only output
            compress: Re-serialize copied XML files
            sort_order: Element ordering used when compressing
            download_all: Include managed package components from the org
            tmp_folder: Scratch folder (recreated); a new temp folder by default

        Returns:
            RetrieveResult of the scratch project retrieve

        Raises:
            FormatError: If the selection filter is malformed (before any remote call)
            RetrieveTimeoutError: If retrieved files never show up
            SalesforceError: For load, scaffold or retrieve failures
        """
        connector = self.connector
        tracker = connector.tracker
        saved_pointers = (connector.project_folder, connector.package_folder)
        owns_tmp = tmp_folder is None
        scratch_root: Optional[Path] = None

        try:
            # 1. PREPARE
            self._enter(RetrievalPhase.PREPARE, 1)
            selection_tree = self._parse_selection(selection)
            tracker.emit(EventType.PREPARE, context=context)

            # 2. LOAD
            self._enter(RetrievalPhase.LOAD, 2)
            catalog = TypeCatalog() if mode == MergeMode.LOCAL else connector.get_catalog()
            engine = MetadataMergeEngine(
                scanner=LocalMetadataScanner(connector.package_path, catalog),
                describe_org=lambda names, all_: connector.describe_metadata_tree(names, all_, context),
                on_loading=lambda source: tracker.emit(
                    EventType.LOADING_LOCAL if source == MergeMode.LOCAL else EventType.LOADING_ORG,
                    context=context,
                ),
            )
            merged = engine.build(mode, types, selection_tree, download_all)
            if context.aborted:
                logger.warning("Special types retrieval aborted while loading metadata")
                return RetrieveResult(status="Aborted")

            # 3. SCAFFOLD
            self._enter(RetrievalPhase.SCAFFOLD, 3)
            scratch_root = self._prepare_folder(tmp_folder)
            scratch_project = self._scaffold(scratch_root, merged.manifest_tree, catalog, context)

            # 4. RETRIEVE
            self._enter(RetrievalPhase.RETRIEVE, 4)
            result, completed = self._retrieve(scratch_project, context)
            if not completed:
                logger.warning("Special types retrieval aborted while waiting for files")
                return result
            scratch_package = scratch_project / connector.package_dir

            # 5. MERGE_BACK
            if merged.copy_filter is not None:
                self._enter(RetrievalPhase.MERGE_BACK, 5)
                original_package = saved_pointers[0] / connector.package_dir
                self._copy_back(merged, catalog, scratch_package, original_package, compress, sort_order, context)
            else:
                logger.info("No selection filter supplied - skipping copy to project")

            return result

        finally:
            # 6. RESTORE
            self._enter(RetrievalPhase.RESTORE, 6)
            self._restore(saved_pointers, scratch_root if owns_tmp else None, context)

    def load_user_permissions(self, context: OperationContext, tmp_folder: Optional[Path] = None) -> List[str]:
        """
        Retrieve the Admin profile into a scratch project and list its user permissions.

        Runs PREPARE, SCAFFOLD, RETRIEVE and RESTORE; nothing is copied back.

        Returns:
            Permission names in file order (empty when aborted or not retrieved)
        """
        connector = self.connector
        saved_pointers = (connector.project_folder, connector.package_folder)
        owns_tmp = tmp_folder is None
        scratch_root: Optional[Path] = None

        try:
            self._enter(RetrievalPhase.PREPARE, 1)
            connector.tracker.emit(EventType.PREPARE, context=context)
            profile = MetadataNode(PROFILE_TYPE, checked=True)
            profile.add_child(MetadataNode(ADMIN_PROFILE, checked=True))

            self._enter(RetrievalPhase.SCAFFOLD, 2)
            scratch_root = self._prepare_folder(tmp_folder)
            scratch_project = self._scaffold(scratch_root, {PROFILE_TYPE: profile}, TypeCatalog(), context)

            self._enter(RetrievalPhase.RETRIEVE, 3)
            _, completed = self._retrieve(scratch_project, context)
            if not completed:
                logger.warning("User permissions load aborted while waiting for files")
                return []

            connector.tracker.emit(EventType.PROCESS, payload="read user permissions", context=context)
            profile_file = scratch_project / connector.package_dir / source_file_path(
                get_detail(PROFILE_TYPE), ADMIN_PROFILE
            )
            return read_user_permissions(profile_file)

        finally:
            self._enter(RetrievalPhase.RESTORE, 4)
            self._restore(saved_pointers, scratch_root if owns_tmp else None, context)

    def _scaffold(
        self,
        scratch_root: Path,
        manifest_tree: MetadataTree,
        catalog: TypeCatalog,
        context: OperationContext,
    ) -> Path:
        """Create the scratch project, point the connector at it and write its manifest."""
        connector = self.connector
        connector.tracker.emit(EventType.CREATE_PROJECT, payload=str(scratch_root), context=context)
        scratch_project = connector.create_project_folder(SCRATCH_PROJECT_NAME, scratch_root, context)
        delete_path(scratch_project / FORCEIGNORE_FILE)
        connector.project_folder = scratch_project
        connector.package_folder = scratch_project / MANIFEST_FOLDER
        ManifestBuilder(connector.api_version, catalog).build(manifest_tree, connector.package_folder)
        return scratch_project

    def _retrieve(self, scratch_project: Path, context: OperationContext) -> Tuple[RetrieveResult, bool]:
        """
        Authorize and retrieve the scratch project.

        Returns:
            The retrieve result and False if the operation was aborted while waiting
        """
        connector = self.connector
        connector.set_project_org(scratch_project, context)
        connector.tracker.emit(EventType.RETRIEVE, context=context)
        result = connector.retrieve_project(scratch_project, context)
        if not result.files:
            return result, True
        return result, self._wait_for_files(scratch_project / connector.package_dir, context)

    def _restore(
        self,
        saved_pointers: Tuple[Path, Path],
        owned_root: Optional[Path],
        context: OperationContext,
    ) -> None:
        connector = self.connector
        connector.project_folder, connector.package_folder = saved_pointers
        if owned_root is not None:
            delete_path(owned_root)
        connector.tracker.end_operation(context)

    @staticmethod
    def _parse_selection(selection: Any) -> Optional[MetadataTree]:
        if selection is None:
            return None
        if isinstance(selection, dict) and all(hasattr(v, 'childs') for v in selection.values()):
            return selection
        return tree_from_json(selection)

    @staticmethod
    def _prepare_folder(tmp_folder: Optional[Path]) -> Path:
        if tmp_folder is None:
            return Path(tempfile.mkdtemp(prefix="sf_connector_special_"))
        folder = Path(tmp_folder)
        if not delete_path(folder):
            logger.debug(f"Scratch folder could not be fully deleted: {folder}")
        ensure_directories(folder)
        return folder

    def _wait_for_files(self, folder: Path, context: OperationContext) -> bool:
        """
        Poll until ``folder`` holds retrieved files.

        Returns:
            False if the operation was aborted while waiting

        Raises:
            RetrieveTimeoutError: When the deadline passes
        """
        deadline = time.monotonic() + self.timeout
        while not has_files(folder):
            if context.aborted:
                return False
            if time.monotonic() >= deadline:
                raise RetrieveTimeoutError(
                    f"No retrieved files appeared in {folder} after {self.timeout:.0f} seconds"
                )
            self._sleep(self.poll_interval)
        return True

    def _copy_units(self, copy_filter: MetadataTree, catalog) -> Iterator[CopyUnit]:
        for type_name, type_node in copy_filter.items():
            # Dependent types are in the manifest only
            if not is_special_type(type_name):
                logger.debug(f"Not a special type, not copied: {type_name}")
                continue
            detail = catalog.get(type_name)
            for object_name, object_node in type_node.childs.items():
                if detail.in_folder or type_name in OBJECT_CHILD_TYPES:
                    for item in object_node.childs.values():
                        if item.checked:
                            yield type_name, object_name, item.name, source_file_path(detail, object_name, item.name)
                elif object_node.is_active():
                    yield type_name, object_name, None, source_file_path(detail, object_name)

    def _copy_back(
        self,
        merged: MergeResult,
        catalog,
        scratch_package: Path,
        original_package: Path,
        compress: bool,
        sort_order: SortOrder,
        context: OperationContext,
    ) -> Dict[str, int]:
        tracker = self.connector.tracker
        codec = XmlCodec(sort_order) if compress else None
        units = list(self._copy_units(merged.copy_filter or {}, catalog))
        tracker.set_units(len(units), context)
        tracker.emit(EventType.COPY_DATA, payload=len(units), context=context)

        stats = {'copied': 0, 'missing': 0, 'compressed': 0}
        for type_name, object_name, item_name, relative in units:
            if context.aborted:
                logger.warning("Copy to project aborted")
                break

            source = scratch_package / relative
            if not source.is_file():
                stats['missing'] += 1
                logger.debug(f"Not retrieved, skipping: {relative}")
                tracker.advance(context)
                continue

            target = original_package / relative
            copy_file(source, target)
            stats['copied'] += 1
            tracker.emit(
                EventType.COPY_FILE,
                entity_type=type_name, entity_name=object_name, entity_item=item_name,
                payload=str(target), context=context,
            )
            if codec is not None:
                codec.compress_file(target)
                stats['compressed'] += 1
                tracker.emit(
                    EventType.COMPRESS_FILE,
                    entity_type=type_name, entity_name=object_name, entity_item=item_name,
                    payload=str(target), context=context,
                )
            tracker.advance(context)

        logger.info(
            f"Copied {stats['copied']} file(s) to project "
            f"({stats['missing']} component(s) not retrieved, {stats['compressed']} compressed)"
        )
        return stats
