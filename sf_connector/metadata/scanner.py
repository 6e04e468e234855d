"""
Local Metadata Scanner

Builds a metadata tree from the source-format files of a project package
directory (e.g. ``force-app/main/default``).
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from sf_connector.metadata.catalog import TypeCatalog
from sf_connector.metadata.tree import MetadataNode, MetadataTree
from sf_connector.metadata.types import BUNDLE_TYPES, OBJECT_CHILD_TYPES, MetadataDetail

logger = logging.getLogger(__name__)


def _visible(entries: Iterable[Path]) -> list:
    return sorted(p for p in entries if not p.name.startswith('.'))


def _component_name(file_name: str, suffix: str) -> Optional[str]:
    ending = f".{suffix}-meta.xml"
    if file_name.endswith(ending):
        return file_name[:-len(ending)]
    return None


class LocalMetadataScanner:
    """Scans one package directory for components of the requested types."""

    def __init__(self, package_dir: Path, catalog: Optional[TypeCatalog] = None) -> None:
        self.package_dir = Path(package_dir)
        self.catalog = catalog or TypeCatalog()

    def scan(self, type_names: Iterable[str]) -> MetadataTree:
        """
        Scan the package directory.

        Args:
            type_names: Types to look for

        Returns:
            Tree holding only the types that have at least one component on disk
        """
        tree: MetadataTree = {}
        if not self.package_dir.is_dir():
            logger.warning(f"Package directory not found: {self.package_dir}")
            return tree

        for type_name in type_names:
            detail = self.catalog.get(type_name)
            type_node = MetadataNode(type_name)
            if type_name in OBJECT_CHILD_TYPES:
                self._scan_object_children(type_node, detail)
            elif detail.in_folder:
                self._scan_folders(type_node, detail)
            elif type_name in BUNDLE_TYPES:
                self._scan_bundles(type_node, detail)
            else:
                self._scan_flat(type_node, detail)

            if type_node.has_children():
                tree[type_name] = type_node
                logger.debug(f"Found {len(type_node.childs)} local {type_name} component(s)")
            else:
                logger.debug(f"No local components for {type_name}")
        return tree

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.package_dir).as_posix()

    def _scan_flat(self, type_node: MetadataNode, detail: MetadataDetail) -> None:
        folder = self.package_dir / detail.directory_name
        if not folder.is_dir():
            return
        suffix = detail.suffix or detail.directory_name
        for entry in _visible(folder.iterdir()):
            name = _component_name(entry.name, suffix)
            if entry.is_file() and name:
                type_node.add_child(MetadataNode(name, path=self._relative(entry)))

    def _scan_bundles(self, type_node: MetadataNode, detail: MetadataDetail) -> None:
        folder = self.package_dir / detail.directory_name
        if not folder.is_dir():
            return
        for entry in _visible(folder.iterdir()):
            if entry.is_dir():
                type_node.add_child(MetadataNode(entry.name, path=self._relative(entry)))

    def _scan_folders(self, type_node: MetadataNode, detail: MetadataDetail) -> None:
        folder = self.package_dir / detail.directory_name
        if not folder.is_dir():
            return
        suffix = detail.suffix or detail.directory_name
        for entry in _visible(folder.iterdir()):
            if not entry.is_dir():
                continue
            folder_node = type_node.add_child(MetadataNode(entry.name, path=self._relative(entry)))
            for item in _visible(entry.iterdir()):
                name = _component_name(item.name, suffix)
                if item.is_file() and name:
                    folder_node.add_child(MetadataNode(name, path=self._relative(item)))

    def _scan_object_children(self, type_node: MetadataNode, detail: MetadataDetail) -> None:
        objects_dir = self.package_dir / 'objects'
        if not objects_dir.is_dir():
            return
        subfolder = OBJECT_CHILD_TYPES[detail.xml_name]
        suffix = detail.suffix or subfolder
        for object_dir in _visible(objects_dir.iterdir()):
            children_dir = object_dir / subfolder
            if not children_dir.is_dir():
                continue
            object_node = MetadataNode(object_dir.name, path=self._relative(object_dir))
            for item in _visible(children_dir.iterdir()):
                name = _component_name(item.name, suffix)
                if item.is_file() and name:
                    object_node.add_child(MetadataNode(name, path=self._relative(item)))
            if object_node.has_children():
                type_node.add_child(object_node)
