"""
Metadata XML Codec

Re-serializes metadata XML files in a compact, sorted layout: elements
whose children are all simple values are written on a single line.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Tuple

from lxml import etree

logger = logging.getLogger(__name__)

INDENT = "    "


class SortOrder(Enum):
    """Ordering applied to sibling elements when compressing."""
    SIMPLE_FIRST = "simpleFirst"
    COMPLEX_FIRST = "complexFirst"
    ALPHABET_ASC = "alphabetAsc"
    ALPHABET_DESC = "alphabetDesc"


def _local_name(element) -> str:
    return etree.QName(element).localname


def _is_simple(element) -> bool:
    return len(element) == 0


def _sort_key(element, sort_order: SortOrder) -> Tuple:
    name = _local_name(element)
    full_name = element.findtext('{*}fullName') or element.findtext('{*}name') or ''
    if sort_order == SortOrder.SIMPLE_FIRST:
        return (not _is_simple(element), name, full_name)
    if sort_order == SortOrder.COMPLEX_FIRST:
        return (_is_simple(element), name, full_name)
    return (name, full_name)


def _sort_children(element, sort_order: SortOrder) -> None:
    children = [child for child in element if isinstance(child.tag, str)]
    for child in children:
        _sort_children(child, sort_order)
    if not children:
        return
    ordered = sorted(
        children,
        key=lambda child: _sort_key(child, sort_order),
        reverse=sort_order == SortOrder.ALPHABET_DESC,
    )
    for child in children:
        element.remove(child)
    element.extend(ordered)


def _layout(element, level: int) -> None:
    """Set text/tail whitespace: compact elements stay on one line."""
    children = list(element)
    if not children:
        return
    compact = all(_is_simple(child) for child in children)
    if compact and level > 0:
        for child in children:
            child.tail = None
        element.text = None
        return
    element.text = "\n" + INDENT * (level + 1)
    for index, child in enumerate(children):
        _layout(child, level + 1)
        last = index == len(children) - 1
        child.tail = "\n" + INDENT * (level if last else level + 1)


class XmlCodec:
    """Compresses metadata XML files in place."""

    def __init__(self, sort_order: SortOrder = SortOrder.SIMPLE_FIRST) -> None:
        self.sort_order = sort_order

    def compress(self, content: bytes) -> bytes:
        parser = etree.XMLParser(remove_blank_text=True)
        root = etree.fromstring(content, parser)
        _sort_children(root, self.sort_order)
        _layout(root, 0)
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8") + b"\n"

    def compress_file(self, path: Path) -> None:
        """
        Compress one XML file in place.

        Raises:
            etree.XMLSyntaxError: If the file is not well-formed XML
        """
        path = Path(path)
        path.write_bytes(self.compress(path.read_bytes()))
        logger.debug(f"Compressed XML file: {path.name}")
