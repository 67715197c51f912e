"""
Catalog Module - Category Hierarchy
====================================
Pure tree functions over (id, parent_id) data. No database access.

Most functions take a `parents` map {category_id: parent_id}; build one
from loaded rows with parent_map().
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

from common.exceptions import CycleDetectedError, InvalidParentError, NotFoundError


@dataclass
class CategoryNode:
    id: int
    name: str
    slug: str = ""
    sort_order: int = 0
    is_active: bool = True
    parent_id: Optional[int] = None
    children: List["CategoryNode"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "parent_id": self.parent_id,
            "children": [child.to_dict() for child in self.children],
        }


def parent_map(categories: Iterable) -> Dict[int, Optional[int]]:
    return {c.id: c.parent_id for c in categories}


def _sort_key(node: CategoryNode):
    return (node.sort_order or 0, node.name or "")


def build_tree(categories: Iterable) -> List[CategoryNode]:
    """
    Group categories by parent into a forest.
    A category whose parent is missing from the input is treated as a root.
    Siblings are ordered by sort_order, then name.
    """
    nodes = {
        c.id: CategoryNode(
            id=c.id,
            name=c.name,
            slug=getattr(c, "slug", "") or "",
            sort_order=getattr(c, "sort_order", 0) or 0,
            is_active=bool(getattr(c, "is_active", True)),
            parent_id=c.parent_id,
        )
        for c in categories
    }

    roots = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)

    for node in nodes.values():
        node.children.sort(key=_sort_key)
    roots.sort(key=_sort_key)
    return roots


def prune_inactive(nodes: List[CategoryNode]) -> List[CategoryNode]:
    """Drop inactive nodes together with their subtrees."""
    kept = []
    for node in nodes:
        if not node.is_active:
            continue
        node.children = prune_inactive(node.children)
        kept.append(node)
    return kept


def descendants_of(category_id: int, parents: Mapping[int, Optional[int]]) -> Set[int]:
    """All transitive children of category_id (excluding itself)."""
    children: Dict[int, List[int]] = {}
    for cid, pid in parents.items():
        if pid is not None:
            children.setdefault(pid, []).append(cid)

    found: Set[int] = set()
    queue = deque(children.get(category_id, []))
    while queue:
        cid = queue.popleft()
        if cid in found or cid == category_id:
            continue
        found.add(cid)
        queue.extend(children.get(cid, []))
    return found


def validate_reparent(category_id: int, new_parent_id: Optional[int],
                      parents: Mapping[int, Optional[int]]) -> None:
    """Raise unless category_id may be moved under new_parent_id (None = root)."""
    if category_id not in parents:
        raise NotFoundError(f"Category {category_id} not found")
    if new_parent_id is None:
        return
    if new_parent_id == category_id:
        raise InvalidParentError("Category cannot be its own parent")
    if new_parent_id not in parents:
        raise InvalidParentError("Invalid parent category")
    if new_parent_id in descendants_of(category_id, parents):
        raise CycleDetectedError(
            f"Cannot move category {category_id} under its own descendant {new_parent_id}"
        )


def path_of(category_id: int, parents: Mapping[int, Optional[int]]) -> List[int]:
    """
    Ids from the root down to category_id (inclusive).
    Raises CycleDetectedError if the walk takes more steps than there are categories.
    """
    if category_id not in parents:
        raise NotFoundError(f"Category {category_id} not found")

    path: List[int] = []
    limit = len(parents)
    current = category_id
    while current is not None and current in parents:
        if len(path) >= limit:
            raise CycleDetectedError(f"Cycle detected in ancestors of category {category_id}")
        path.append(current)
        current = parents[current]
    path.reverse()
    return path
