"""Tests for the pure category tree functions."""

from types import SimpleNamespace

import pytest

from common.exceptions import CycleDetectedError, InvalidParentError, NotFoundError
from modules.catalog.hierarchy import (
    build_tree, descendants_of, parent_map, path_of, prune_inactive, validate_reparent,
)


def cat(id, name, parent_id=None, sort_order=0, is_active=True):
    return SimpleNamespace(id=id, name=name, slug=name.lower(), parent_id=parent_id,
                           sort_order=sort_order, is_active=is_active)


@pytest.fixture
def rows():
    #  Drinks(1) -> Coffee(2) -> Beans(4)
    #            -> Tea(3)
    #  Kitchen(5)
    return [
        cat(1, "Drinks"),
        cat(2, "Coffee", parent_id=1, sort_order=2),
        cat(3, "Tea", parent_id=1, sort_order=1),
        cat(4, "Beans", parent_id=2),
        cat(5, "Kitchen"),
    ]


class TestBuildTree:
    def test_groups_children_under_parents(self, rows):
        roots = build_tree(rows)
        assert [r.name for r in roots] == ["Drinks", "Kitchen"]
        drinks = roots[0]
        assert [c.name for c in drinks.children] == ["Tea", "Coffee"]
        assert [c.name for c in drinks.children[1].children] == ["Beans"]

    def test_siblings_with_same_order_sorted_by_name(self):
        roots = build_tree([cat(1, "Zinc"), cat(2, "Apple"), cat(3, "Mango", sort_order=-1)])
        assert [r.name for r in roots] == ["Mango", "Apple", "Zinc"]

    def test_orphan_is_treated_as_root(self):
        roots = build_tree([cat(1, "Drinks"), cat(7, "Lost", parent_id=99)])
        assert {r.name for r in roots} == {"Drinks", "Lost"}

    def test_empty_input(self):
        assert build_tree([]) == []

    def test_to_dict_nests_children(self, rows):
        data = build_tree(rows)[0].to_dict()
        assert data["name"] == "Drinks"
        assert data["children"][1]["children"][0]["name"] == "Beans"

    def test_prune_inactive_drops_subtree(self, rows):
        rows[1].is_active = False
        roots = prune_inactive(build_tree(rows))
        assert [c.name for c in roots[0].children] == ["Tea"]


class TestDescendants:
    def test_transitive_children(self, rows):
        assert descendants_of(1, parent_map(rows)) == {2, 3, 4}

    def test_leaf_has_none(self, rows):
        assert descendants_of(4, parent_map(rows)) == set()


class TestValidateReparent:
    def test_move_to_root_allowed(self, rows):
        validate_reparent(4, None, parent_map(rows))

    def test_move_to_unrelated_branch_allowed(self, rows):
        validate_reparent(2, 5, parent_map(rows))

    def test_self_parent_rejected(self, rows):
        with pytest.raises(InvalidParentError, match="own parent"):
            validate_reparent(2, 2, parent_map(rows))

    def test_missing_parent_rejected(self, rows):
        with pytest.raises(InvalidParentError):
            validate_reparent(2, 99, parent_map(rows))

    def test_descendant_parent_is_a_cycle(self, rows):
        with pytest.raises(CycleDetectedError):
            validate_reparent(1, 4, parent_map(rows))

    def test_missing_category(self, rows):
        with pytest.raises(NotFoundError):
            validate_reparent(42, None, parent_map(rows))


class TestPath:
    def test_root_first(self, rows):
        assert path_of(4, parent_map(rows)) == [1, 2, 4]

    def test_root_path_is_itself(self, rows):
        assert path_of(5, parent_map(rows)) == [5]

    def test_corrupt_cycle_is_detected(self):
        with pytest.raises(CycleDetectedError):
            path_of(1, {1: 2, 2: 3, 3: 1})

    def test_missing_category(self, rows):
        with pytest.raises(NotFoundError):
            path_of(42, parent_map(rows))
