"""
Metadata Merge Engine

Combines the metadata found on disk with the metadata described from the
org for the special types work set, and derives the tree used to build
the retrieval manifest plus the filter used to copy files back.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from sf_connector.metadata.scanner import LocalMetadataScanner
from sf_connector.metadata.tree import MetadataTree, check_all, merge, select
from sf_connector.metadata.types import SPECIAL_METADATA, expand_special_types

logger = logging.getLogger(__name__)

# (type names, download_all) -> described tree
OrgDescriber = Callable[[List[str], bool], MetadataTree]


class MergeMode(Enum):
    """Where the special types metadata comes from."""
    LOCAL = "local"
    MIXED = "mixed"
    ORG = "org"


@dataclass
class MergeResult:
    """Output of one merge run."""
    work_set: List[str]
    tree: MetadataTree
    manifest_tree: MetadataTree
    copy_filter: Optional[MetadataTree] = None


def resolve_parent_keys(
    parent_keys: Optional[Iterable[str]],
    selection: Optional[MetadataTree],
) -> List[str]:
    """
    Pick the special parent types to work on.

    Explicit keys win. Otherwise the special types named in the selection
    are used, and with neither every registered parent is used.
    """
    if parent_keys:
        return [key for key in parent_keys if key in SPECIAL_METADATA]
    if selection:
        keys = [name for name in selection if name in SPECIAL_METADATA]
        if keys:
            return keys
    return sorted(SPECIAL_METADATA)


class MetadataMergeEngine:
    """
    Builds the merged tree for one special types retrieval.

    The org tree always wins over the local tree when both define a node
    (see ``tree.merge``).
    """

    def __init__(
        self,
        scanner: LocalMetadataScanner,
        describe_org: OrgDescriber,
        on_loading: Optional[Callable[[MergeMode], None]] = None,
    ) -> None:
        self.scanner = scanner
        self.describe_org = describe_org
        self.on_loading = on_loading

    def _notify(self, source: MergeMode) -> None:
        if self.on_loading:
            self.on_loading(source)

    def load_local(self, work_set: List[str]) -> MetadataTree:
        self._notify(MergeMode.LOCAL)
        logger.info(f"Scanning local project for {len(work_set)} type(s)")
        return self.scanner.scan(work_set)

    def load_org(self, work_set: List[str], download_all: bool) -> MetadataTree:
        self._notify(MergeMode.ORG)
        logger.info(f"Describing {len(work_set)} type(s) from org")
        described = self.describe_org(list(work_set), download_all)
        return {name: node for name, node in described.items() if name in work_set}

    def build(
        self,
        mode: MergeMode,
        parent_keys: Optional[Iterable[str]] = None,
        selection: Optional[MetadataTree] = None,
        download_all: bool = True,
    ) -> MergeResult:
        """
        Run the merge for the given mode.

        Args:
            mode: Source(s) to read metadata from
            parent_keys: Special parent types requested (None derives them)
            selection: Parsed user selection filter, if any
            download_all: Keep managed package components on the org side

        Returns:
            MergeResult with work set, merged tree, manifest tree and copy filter
        """
        work_set = expand_special_types(resolve_parent_keys(parent_keys, selection))
        logger.debug(f"Special types work set ({mode.value}): {', '.join(work_set)}")

        if mode == MergeMode.LOCAL:
            tree = self.load_local(work_set)
            skipped = [name for name in work_set if name not in tree]
            if skipped:
                logger.info(f"Skipping types absent locally: {', '.join(skipped)}")
            work_set = [name for name in work_set if name in tree]
        elif mode == MergeMode.MIXED:
            local_tree = self.load_local(work_set)
            org_tree = self.load_org(work_set, download_all)
            tree = merge(local_tree, org_tree)
        else:
            tree = self.load_org(work_set, download_all)

        manifest_tree = check_all(tree)
        copy_filter = select(manifest_tree, selection) if selection is not None else None
        return MergeResult(
            work_set=work_set,
            tree=tree,
            manifest_tree=manifest_tree,
            copy_filter=copy_filter,
        )
