"""
Metadata Tree Module

Checked selection tree used for describe results, local scans and
user-supplied selection filters.

A tree is a mapping of type name to TYPE node. Every node carries its own
``checked`` flag, independent of its children, so a type can be unchecked
while some of its objects are selected (partial selection).
"""

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from sf_connector.exceptions import FormatError

logger = logging.getLogger(__name__)


class NodeDepth(IntEnum):
    """Level of a node inside the Type -> Object -> Item hierarchy."""
    TYPE = 0
    OBJECT = 1
    ITEM = 2


@dataclass
class MetadataNode:
    """One node of the checked tree (type, object or item)."""
    name: str
    depth: NodeDepth = NodeDepth.TYPE
    checked: bool = False
    childs: Dict[str, "MetadataNode"] = field(default_factory=dict)
    path: Optional[str] = None

    def has_children(self) -> bool:
        return bool(self.childs)

    def get_child(self, name: str) -> Optional["MetadataNode"]:
        return self.childs.get(name)

    def add_child(self, child: "MetadataNode") -> "MetadataNode":
        """
        Insert a child node, replacing any existing child with the same name.

        Raises:
            ValueError: If this node is an item (items are leaves)
        """
        if self.depth == NodeDepth.ITEM:
            raise ValueError(f"Item '{self.name}' cannot hold children")
        child.depth = NodeDepth(self.depth + 1)
        self.childs[child.name] = child
        return child

    def is_fully_checked(self) -> bool:
        """True when this node and every descendant are checked."""
        return self.checked and all(c.is_fully_checked() for c in self.childs.values())

    def is_active(self) -> bool:
        """
        True when the node takes part in an operation.

        A leaf counts when it is checked. A container counts when it is
        fully checked or when at least one descendant is active.
        """
        if not self.childs:
            return self.checked
        return self.is_fully_checked() or any(c.is_active() for c in self.childs.values())

    def copy(self) -> "MetadataNode":
        return MetadataNode(
            name=self.name,
            depth=self.depth,
            checked=self.checked,
            childs={name: child.copy() for name, child in self.childs.items()},
            path=self.path,
        )

    def walk(self) -> Iterator["MetadataNode"]:
        yield self
        for child in self.childs.values():
            yield from child.walk()


MetadataTree = Dict[str, MetadataNode]


def copy_tree(tree: MetadataTree) -> MetadataTree:
    return {name: node.copy() for name, node in tree.items()}


def _merge_node(base: MetadataNode, incoming: MetadataNode) -> None:
    base.checked = incoming.checked
    if incoming.path:
        base.path = incoming.path
    for name, child in incoming.childs.items():
        existing = base.childs.get(name)
        if existing is None:
            base.add_child(child.copy())
        else:
            _merge_node(existing, child)


def merge(base: MetadataTree, incoming: MetadataTree) -> MetadataTree:
    """
    Merge ``incoming`` into a copy of ``base``.

    The merge is directional: ``incoming`` is the org side and wins every
    conflict on ``checked``. Types, objects and items only present in
    ``incoming`` are copied over with all of their descendants. Neither
    input is modified.

    Args:
        base: Tree used as starting point (usually the local scan)
        incoming: Tree whose values take precedence (usually the org describe)

    Returns:
        New merged tree
    """
    result = copy_tree(base)
    for name, node in incoming.items():
        existing = result.get(name)
        if existing is None:
            result[name] = node.copy()
        else:
            _merge_node(existing, node)
    return result


def select(tree: MetadataTree, selection: MetadataTree) -> MetadataTree:
    """
    Restrict ``tree`` to the nodes active in ``selection``.

    Checked flags come from the selection. Nodes selected but missing from
    ``tree`` are dropped.
    """
    result: MetadataTree = {}
    for type_name, selected_type in selection.items():
        source_type = tree.get(type_name)
        if source_type is None or not selected_type.is_active():
            continue
        if selected_type.is_fully_checked() and not selected_type.has_children():
            result[type_name] = _with_checked(source_type, True)
            continue
        type_node = MetadataNode(type_name, NodeDepth.TYPE, selected_type.checked, path=source_type.path)
        for object_name, selected_object in selected_type.childs.items():
            source_object = source_type.get_child(object_name)
            if source_object is None or not selected_object.is_active():
                continue
            if selected_object.checked and not selected_object.has_children():
                type_node.add_child(_with_checked(source_object, True))
                continue
            object_node = type_node.add_child(
                MetadataNode(object_name, checked=selected_object.checked, path=source_object.path)
            )
            for item_name, selected_item in selected_object.childs.items():
                source_item = source_object.get_child(item_name)
                if source_item is not None and selected_item.checked:
                    object_node.add_child(MetadataNode(item_name, checked=True, path=source_item.path))
        if type_node.has_children():
            result[type_name] = type_node
    return result


def _with_checked(node: MetadataNode, checked: bool) -> MetadataNode:
    clone = node.copy()
    for descendant in clone.walk():
        descendant.checked = checked
    return clone


def check_all(tree: MetadataTree) -> MetadataTree:
    """
    Return a copy of ``tree`` with every node checked.

    Types without any child are dropped so they never produce empty
    manifest entries or copy attempts. Objects are kept even when they
    have no items, since most types are two levels deep.
    """
    return {
        name: _with_checked(node, True)
        for name, node in tree.items()
        if node.has_children()
    }


def flatten_to_selector(tree: MetadataTree) -> str:
    """
    Flatten checked nodes into a comma separated selector string.

    Tokens are ``Type``, ``Type:Object`` or ``Type:Object.Item``. A fully
    checked node is emitted at its own level and its children are not
    listed individually.

    Example:
        >>> tree = {'CustomObject': MetadataNode('CustomObject')}
        >>> tree['CustomObject'].add_child(MetadataNode('Account', checked=True))
        >>> flatten_to_selector(tree)
        'CustomObject:Account'
    """
    return ','.join(selector_tokens(tree))


def selector_tokens(tree: MetadataTree) -> List[str]:
    tokens: List[str] = []
    for type_name in sorted(tree):
        type_node = tree[type_name]
        if type_node.is_fully_checked():
            tokens.append(type_name)
            continue
        for object_name in sorted(type_node.childs):
            object_node = type_node.childs[object_name]
            if object_node.is_fully_checked():
                tokens.append(f"{type_name}:{object_name}")
                continue
            for item_name in sorted(object_node.childs):
                if object_node.childs[item_name].checked:
                    tokens.append(f"{type_name}:{object_name}.{item_name}")
    return tokens


def parse_selector(selector: Union[str, List[str]]) -> MetadataTree:
    """
    Parse a selector string (or token list) back into a checked tree.

    The item separator is the first dot after the colon, so object names
    containing dots cannot be expressed at item level.
    """
    if isinstance(selector, str):
        tokens = selector.split(',')
    else:
        tokens = list(selector)

    tree: MetadataTree = {}
    for raw_token in tokens:
        token = raw_token.strip()
        if not token:
            continue
        type_name, _, member = token.partition(':')
        type_node = tree.setdefault(type_name, MetadataNode(type_name))
        if not member:
            type_node.checked = True
            continue
        object_name, _, item_name = member.partition('.')
        object_node = type_node.get_child(object_name) or type_node.add_child(MetadataNode(object_name))
        if item_name:
            object_node.add_child(MetadataNode(item_name, checked=True))
        else:
            object_node.checked = True
    return tree


def _node_from_json(name: str, data: Any, depth: NodeDepth) -> MetadataNode:
    if not isinstance(data, dict):
        raise FormatError(f"Node '{name}' must be an object, got {type(data).__name__}")

    checked = data.get('checked', False)
    if not isinstance(checked, bool):
        raise FormatError(f"Node '{name}': 'checked' must be a boolean")

    childs = data.get('childs') or {}
    if not isinstance(childs, dict):
        raise FormatError(f"Node '{name}': 'childs' must be an object")
    if childs and depth == NodeDepth.ITEM:
        raise FormatError(f"Item '{name}' cannot contain childs (max depth is Type > Object > Item)")

    node = MetadataNode(str(data.get('name') or name), depth, checked, path=data.get('path'))
    for child_name, child_data in childs.items():
        node.add_child(_node_from_json(child_name, child_data, NodeDepth(depth + 1)))
    return node


def tree_from_json(source: Union[str, Path, Dict[str, Any]]) -> MetadataTree:
    """
    Build a tree from a JSON selection filter.

    Accepts a dict, a JSON string or a path to a JSON file. The expected
    shape is ``{TypeName: {"name", "checked", "childs": {...}}}``.

    Raises:
        FormatError: If the input is not valid JSON or has the wrong shape
    """
    data = source
    if isinstance(source, Path) or (isinstance(source, str) and not source.lstrip().startswith('{')):
        path = Path(source)
        if not path.is_file():
            raise FormatError(f"Selection filter is neither JSON nor an existing file: {source}")
        try:
            data = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise FormatError(f"Cannot read selection filter {path}: {e}") from e

    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise FormatError(f"Invalid selection filter JSON: {e}") from e

    if not isinstance(data, dict):
        raise FormatError("Selection filter must be a JSON object keyed by metadata type")

    tree = {name: _node_from_json(name, node_data, NodeDepth.TYPE) for name, node_data in data.items()}
    logger.debug(f"Parsed selection filter with {len(tree)} type(s)")
    return tree


def _node_to_json(node: MetadataNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'name': node.name,
        'checked': node.checked,
        'childs': {name: _node_to_json(child) for name, child in node.childs.items()},
    }
    if node.path:
        data['path'] = node.path
    return data


def tree_to_json(tree: MetadataTree) -> Dict[str, Any]:
    return {name: _node_to_json(node) for name, node in tree.items()}
