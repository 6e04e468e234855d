"""
Package Manifest Builder

Writes package.xml manifests from a checked metadata tree.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from lxml import etree

from sf_connector.metadata.catalog import TypeCatalog
from sf_connector.metadata.tree import MetadataTree
from sf_connector.metadata.types import OBJECT_CHILD_TYPES

logger = logging.getLogger(__name__)

METADATA_NAMESPACE = "http://soap.sforce.com/2006/04/metadata"
PACKAGE_FILE_NAME = "package.xml"


class ManifestBuilder:
    """Builds package.xml files for retrieve and deploy operations."""

    def __init__(self, api_version: str, catalog: Optional[TypeCatalog] = None) -> None:
        self.api_version = api_version
        self.catalog = catalog or TypeCatalog()

    def members(self, tree: MetadataTree) -> Dict[str, List[str]]:
        """
        Collect manifest members per type.

        A fully checked type without children becomes a ``*`` wildcard.
        Folder types list the folder and ``Folder/Item`` members, object
        child types list ``Object.Item`` members.
        """
        result: Dict[str, List[str]] = {}
        for type_name in sorted(tree):
            type_node = tree[type_name]
            detail = self.catalog.get(type_name)
            names: List[str] = []
            if type_node.checked and not type_node.has_children():
                names.append('*')
            for object_name in sorted(type_node.childs):
                object_node = type_node.childs[object_name]
                if not object_node.is_active():
                    continue
                checked_items = sorted(
                    item.name for item in object_node.childs.values() if item.checked
                )
                if detail.in_folder:
                    names.append(object_name)
                    names.extend(f"{object_name}/{item}" for item in checked_items)
                elif type_name in OBJECT_CHILD_TYPES or checked_items:
                    names.extend(f"{object_name}.{item}" for item in checked_items)
                    if not object_node.has_children():
                        names.append(object_name)
                else:
                    names.append(object_name)
            if names:
                result[type_name] = names
        return result

    def to_xml(self, tree: MetadataTree) -> bytes:
        root = etree.Element(f"{{{METADATA_NAMESPACE}}}Package", nsmap={None: METADATA_NAMESPACE})
        for type_name, names in self.members(tree).items():
            types_el = etree.SubElement(root, f"{{{METADATA_NAMESPACE}}}types")
            for name in names:
                etree.SubElement(types_el, f"{{{METADATA_NAMESPACE}}}members").text = name
            etree.SubElement(types_el, f"{{{METADATA_NAMESPACE}}}name").text = type_name
        etree.SubElement(root, f"{{{METADATA_NAMESPACE}}}version").text = self.api_version
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)

    def build(self, tree: MetadataTree, destination: Path) -> Path:
        """
        Write ``package.xml`` into ``destination``.

        Args:
            tree: Checked tree to include
            destination: Folder receiving the manifest

        Returns:
            Path to the written manifest
        """
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        manifest_path = destination / PACKAGE_FILE_NAME
        manifest_path.write_bytes(self.to_xml(tree))
        logger.info(f"Manifest written: {manifest_path}")
        return manifest_path
