"""Unit tests for metadata/tree.py: checked tree primitives."""

import json

import pytest

from sf_connector.exceptions import FormatError
from sf_connector.metadata.tree import (
    MetadataNode,
    NodeDepth,
    check_all,
    copy_tree,
    flatten_to_selector,
    merge,
    parse_selector,
    select,
    selector_tokens,
    tree_from_json,
    tree_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _type(name: str, checked: bool = False, **objects) -> MetadataNode:
    """Build a TYPE node; each kwarg is object name -> (checked, [items]) or checked."""
    node = MetadataNode(name, checked=checked)
    for object_name, spec in objects.items():
        if isinstance(spec, bool):
            node.add_child(MetadataNode(object_name, checked=spec))
            continue
        object_checked, items = spec
        object_node = node.add_child(MetadataNode(object_name, checked=object_checked))
        for item in items:
            if isinstance(item, tuple):
                object_node.add_child(MetadataNode(item[0], checked=item[1]))
            else:
                object_node.add_child(MetadataNode(item))
    return node


# ---------------------------------------------------------------------------
# Node behaviour
# ---------------------------------------------------------------------------


class TestMetadataNode:
    def test_add_child_sets_depth_and_overwrites_by_name(self) -> None:
        node = MetadataNode("Profile")
        node.add_child(MetadataNode("Admin", checked=False))
        node.add_child(MetadataNode("Admin", checked=True))

        assert len(node.childs) == 1
        assert node.get_child("Admin").checked is True
        assert node.get_child("Admin").depth == NodeDepth.OBJECT

    def test_items_cannot_hold_children(self) -> None:
        item = MetadataNode("Business", depth=NodeDepth.ITEM)

        with pytest.raises(ValueError):
            item.add_child(MetadataNode("Nested"))

    def test_partial_selection_is_active(self) -> None:
        node = _type("RecordType", Account=(False, [("Business", True), "Person"]))

        assert node.checked is False
        assert node.is_active() is True
        assert node.is_fully_checked() is False

    def test_unchecked_tree_is_not_active(self) -> None:
        node = _type("RecordType", Account=(False, ["Business"]))

        assert node.is_active() is False

    def test_checked_leaf_container_is_active(self) -> None:
        assert MetadataNode("Profile", checked=True).is_active() is True
        assert MetadataNode("Profile").has_children() is False


# ---------------------------------------------------------------------------
# merge
# ---------------------------------------------------------------------------


class TestMerge:
    def test_merge_with_empty_incoming_is_identity(self) -> None:
        tree = {"Profile": _type("Profile", Admin=True, Standard=False)}

        assert merge(tree, {}) == tree

    def test_merge_is_directional(self) -> None:
        local = {"Profile": _type("Profile", Admin=True)}
        org = {"Profile": _type("Profile", Admin=False)}

        assert merge(local, org)["Profile"].childs["Admin"].checked is False
        assert merge(org, local)["Profile"].childs["Admin"].checked is True
        assert merge(local, org) != merge(org, local)

    def test_nodes_only_in_incoming_are_copied_wholesale(self) -> None:
        local = {"Profile": _type("Profile", Admin=True)}
        org = {
            "Profile": _type("Profile", Custom=(False, [])),
            "RecordType": _type("RecordType", Account=(False, ["Business", "Person"])),
        }

        result = merge(local, org)

        assert set(result["Profile"].childs) == {"Admin", "Custom"}
        assert set(result["RecordType"].childs["Account"].childs) == {"Business", "Person"}

    def test_inputs_are_not_modified(self) -> None:
        local = {"Profile": _type("Profile", Admin=True)}
        org = {"Profile": _type("Profile", Admin=False, Custom=True)}
        local_before = copy_tree(local)
        org_before = copy_tree(org)

        result = merge(local, org)
        result["Profile"].childs["Custom"].checked = False

        assert local == local_before
        assert org == org_before


# ---------------------------------------------------------------------------
# check_all / select
# ---------------------------------------------------------------------------


class TestCheckAll:
    def test_checks_every_node_and_drops_empty_types(self) -> None:
        tree = {
            "Profile": _type("Profile", Admin=False),
            "Translations": _type("Translations"),
        }

        result = check_all(tree)

        assert list(result) == ["Profile"]
        assert all(node.checked for node in result["Profile"].walk())

    def test_is_idempotent(self) -> None:
        tree = {
            "Profile": _type("Profile", Admin=False),
            "RecordType": _type("RecordType", Account=(False, ["Business"])),
            "Flow": _type("Flow"),
        }

        once = check_all(tree)

        assert check_all(once) == once


class TestSelect:
    def test_keeps_only_selected_objects(self) -> None:
        tree = check_all({"Profile": _type("Profile", Admin=False, Standard=False)})
        selection = {"Profile": _type("Profile", Admin=True)}

        result = select(tree, selection)

        assert list(result["Profile"].childs) == ["Admin"]

    def test_fully_checked_type_selects_everything(self) -> None:
        tree = check_all({"Profile": _type("Profile", Admin=False, Standard=False)})

        result = select(tree, {"Profile": MetadataNode("Profile", checked=True)})

        assert set(result["Profile"].childs) == {"Admin", "Standard"}

    def test_selected_nodes_missing_from_tree_are_dropped(self) -> None:
        tree = check_all({"Profile": _type("Profile", Admin=False)})
        selection = {
            "Profile": _type("Profile", Ghost=True),
            "PermissionSet": _type("PermissionSet", Sales=True),
        }

        assert select(tree, selection) == {}


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


class TestSelectors:
    def test_checked_object_flattens_to_type_object_token(self) -> None:
        tree = {"CustomObject": MetadataNode("CustomObject")}
        tree["CustomObject"].add_child(MetadataNode("Account", checked=True))

        assert flatten_to_selector(tree) == "CustomObject:Account"

    def test_fully_checked_type_emits_only_type(self) -> None:
        tree = check_all({"Profile": _type("Profile", Admin=False, Standard=False)})

        assert flatten_to_selector(tree) == "Profile"

    def test_item_tokens_for_partial_objects(self) -> None:
        tree = {"RecordType": _type("RecordType", Account=(False, [("Business", True), ("Person", False)]))}

        assert flatten_to_selector(tree) == "RecordType:Account.Business"

    def test_unchecked_tree_flattens_to_empty_string(self) -> None:
        assert flatten_to_selector({"Profile": _type("Profile", Admin=False)}) == ""

    def test_flatten_then_parse_round_trips(self) -> None:
        tree = {
            "CustomObject": _type("CustomObject", Account=True, Contact=False),
            "Profile": MetadataNode("Profile", checked=True),
            "RecordType": _type("RecordType", Account=(False, [("Business", True), ("Person", False)])),
        }
        selector = flatten_to_selector(tree)

        reparsed = parse_selector(selector)

        assert selector == "CustomObject:Account,Profile,RecordType:Account.Business"
        assert flatten_to_selector(reparsed) == selector

    def test_parse_accepts_token_lists_and_skips_blanks(self) -> None:
        tree = parse_selector([" Profile:Admin ", "", "RecordType:Account.Business"])

        assert tree["Profile"].childs["Admin"].checked is True
        assert tree["RecordType"].childs["Account"].childs["Business"].depth == NodeDepth.ITEM
        assert selector_tokens(tree) == ["Profile:Admin", "RecordType:Account.Business"]


# ---------------------------------------------------------------------------
# JSON filters
# ---------------------------------------------------------------------------


class TestJsonFilters:
    def test_reads_dict_string_and_file(self, tmp_path) -> None:
        data = {"Profile": {"name": "Profile", "checked": False,
                            "childs": {"Admin": {"name": "Admin", "checked": True, "childs": {}}}}}
        filter_file = tmp_path / "filter.json"
        filter_file.write_text(json.dumps(data), encoding="utf-8")

        from_dict = tree_from_json(data)

        assert from_dict == tree_from_json(json.dumps(data))
        assert from_dict == tree_from_json(str(filter_file))
        assert from_dict == tree_from_json(filter_file)
        assert from_dict["Profile"].childs["Admin"].checked is True

    def test_to_json_output_is_accepted_back(self) -> None:
        tree = {"RecordType": _type("RecordType", Account=(True, [("Business", True)]))}

        assert tree_from_json(tree_to_json(tree)) == tree

    @pytest.mark.parametrize(
        "source",
        [
            '{"Profile": ',
            '["Profile"]',
            '{"Profile": "Admin"}',
            '{"Profile": {"checked": "yes"}}',
            '{"Profile": {"childs": "Admin"}}',
            '{"A": {"childs": {"B": {"childs": {"C": {"childs": {"D": {}}}}}}}}',
            "missing-filter.json",
        ],
    )
    def test_malformed_filters_raise_format_error(self, source) -> None:
        with pytest.raises(FormatError):
            tree_from_json(source)

    def test_undecodable_filter_file_raises_format_error(self, tmp_path) -> None:
        filter_file = tmp_path / "filter.json"
        filter_file.write_bytes(b'{"Profile": {"name": "\xff\xfe"}}')

        with pytest.raises(FormatError, match="Cannot read selection filter"):
            tree_from_json(str(filter_file))
