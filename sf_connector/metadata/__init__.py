"""Metadata tree, type catalog, merge engine, manifest and XML handling"""
from sf_connector.metadata.tree import (
    MetadataNode,
    MetadataTree,
    NodeDepth,
    check_all,
    flatten_to_selector,
    merge,
    parse_selector,
    tree_from_json,
    tree_to_json,
)
from sf_connector.metadata.types import MetadataDetail, SPECIAL_METADATA, expand_special_types
from sf_connector.metadata.catalog import TypeCatalog, compute_increment
from sf_connector.metadata.merge import MergeMode, MergeResult, MetadataMergeEngine
from sf_connector.metadata.manifest import ManifestBuilder
from sf_connector.metadata.xml_codec import SortOrder, XmlCodec

__all__ = [
    "MetadataNode",
    "MetadataTree",
    "NodeDepth",
    "check_all",
    "flatten_to_selector",
    "merge",
    "parse_selector",
    "tree_from_json",
    "tree_to_json",
    "MetadataDetail",
    "SPECIAL_METADATA",
    "expand_special_types",
    "TypeCatalog",
    "compute_increment",
    "MergeMode",
    "MergeResult",
    "MetadataMergeEngine",
    "ManifestBuilder",
    "SortOrder",
    "XmlCodec",
]
