"""
Type Catalog Module

Normalizes metadata type selectors into execution-ready name lists and
keeps the metadata details reported by the org.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional

from sf_connector.metadata.types import (
    DEFAULT_DETAILS,
    FOLDER_TYPES,
    MetadataDetail,
    get_detail,
)

logger = logging.getLogger(__name__)


def _selector_name(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry.strip() or None
    if isinstance(entry, Mapping):
        name = entry.get('xml_name') or entry.get('xmlName') or entry.get('name')
    else:
        name = getattr(entry, 'xml_name', None) or getattr(entry, 'name', None)
    return name if isinstance(name, str) and name else None


def compute_increment(count: int) -> float:
    """Per-unit progress increment; zero units yield 0.0."""
    if count <= 0:
        return 0.0
    return round(100 / count, 2)


class TypeCatalog:
    """
    Index of metadata details for one org and API version.

    ``resolve`` is tolerant: selector entries that are neither strings nor
    objects exposing a name are skipped without error.
    """

    def __init__(self, details: Optional[Iterable[MetadataDetail]] = None) -> None:
        self._details: Dict[str, MetadataDetail] = dict(DEFAULT_DETAILS)
        for detail in details or []:
            self._details[detail.xml_name] = detail

    @classmethod
    def from_describe(cls, records: Iterable[Dict]) -> "TypeCatalog":
        """
        Build a catalog from ``metadataObjects`` entries of a describe call.

        Child types listed under ``childXmlNames`` are registered too, using
        their default details when known.
        """
        details = []
        for record in records:
            if not isinstance(record, Mapping) or not record.get('xmlName'):
                logger.debug(f"Skipping malformed describe record: {record!r}")
                continue
            detail = MetadataDetail.from_describe(record)
            details.append(detail)
            for child_name in detail.child_xml_names:
                details.append(get_detail(child_name))
        return cls(details)

    def get(self, type_name: str) -> MetadataDetail:
        return get_detail(type_name, self._details)

    def names(self) -> List[str]:
        return self.resolve(list(self._details))

    def folder_map(self) -> Dict[str, MetadataDetail]:
        """FolderMetadataMap: folder-bearing type name to detail."""
        return {
            name: detail for name, detail in self._details.items()
            if detail.in_folder or name in FOLDER_TYPES
        }

    def resolve(self, selector: Optional[Iterable[Any]] = None) -> List[str]:
        """
        Resolve a selector into a sorted list of unique type names.

        Args:
            selector: Type names, detail objects/dicts, or None for all types

        Returns:
            Names sorted case-insensitively, duplicates removed
        """
        if selector is None:
            entries: Iterable[Any] = self._details.keys()
        elif isinstance(selector, (str, Mapping)):
            entries = [selector]
        else:
            entries = selector

        names = set()
        for entry in entries:
            name = _selector_name(entry)
            if name is None:
                logger.debug(f"Ignoring selector entry without a name: {entry!r}")
                continue
            names.add(name)
        return sorted(names, key=lambda n: (n.lower(), n))

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._details

    def __len__(self) -> int:
        return len(self._details)
