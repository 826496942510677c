"""
Group Tree Manager.

Groups live in a flat list with parent pointers. Every tree question
(children, descendants, ancestors, counts) is answered by filtering that
list on ``parent_id``; there are no child pointers to keep in sync.
"""
from __future__ import annotations

from typing import List, Optional

from error_handling import CycleError, NotFoundError
from models.entities import Group, Tab
from organizer.store import Store


class GroupTree:
    """Tree queries and re-parenting over ``store.groups``."""

    def __init__(self, store: Store):
        self.store = store

    # ----------------- structure -----------------
    def children_of(self, group_id: Optional[str]) -> List[Group]:
        """Direct children in collection order; ``None`` gives the roots."""
        return [g for g in self.store.groups if g.parent_id == group_id]

    def roots(self) -> List[Group]:
        """Groups without a parent, plus groups whose parent no longer exists."""
        known = {g.id for g in self.store.groups}
        return [g for g in self.store.groups if g.parent_id is None or g.parent_id not in known]

    def descendants_of(self, group_id: str) -> List[str]:
        """``group_id`` followed by every descendant id, depth-first."""
        return self._collect(group_id, set())

    def _collect(self, group_id: str, seen: set) -> List[str]:
        if group_id in seen:
            return []
        seen.add(group_id)
        result = [group_id]
        for child in self.children_of(group_id):
            result.extend(self._collect(child.id, seen))
        return result

    def ancestors_of(self, group_id: str) -> List[str]:
        """Parent, grandparent, ... up to the root (stops on a dangling or looping parent)."""
        ancestors: List[str] = []
        seen = {group_id}
        group = self.store.find_group(group_id)
        while group is not None and group.parent_id is not None:
            if group.parent_id in seen:
                break
            ancestors.append(group.parent_id)
            seen.add(group.parent_id)
            group = self.store.find_group(group.parent_id)
        return ancestors

    def depth_of(self, group_id: str) -> int:
        return len([a for a in self.ancestors_of(group_id) if self.store.find_group(a) is not None])

    def is_descendant(self, candidate_id: str, of_id: str) -> bool:
        """True if ``candidate_id`` sits somewhere below ``of_id``."""
        return of_id in self.ancestors_of(candidate_id)

    def valid_drop_targets(self, group_id: str) -> List[Group]:
        """Groups that ``group_id`` may be moved under."""
        return [
            g for g in self.store.groups
            if g.id != group_id and not self.is_descendant(g.id, group_id)
        ]

    # ----------------- membership -----------------
    def direct_tabs(self, group_id: Optional[str]) -> List[Tab]:
        return [t for t in self.store.saved_tabs if t.group_id == group_id]

    def count_tabs(self, group_id: str) -> int:
        """Tabs assigned to the group plus, recursively, to its subgroups."""
        return self._count(group_id, set())

    def _count(self, group_id: str, seen: set) -> int:
        if group_id in seen:
            return 0
        seen.add(group_id)
        count = len(self.direct_tabs(group_id))
        for child in self.children_of(group_id):
            count += self._count(child.id, seen)
        return count

    def tabs_in_subtree(self, group_id: str) -> List[Tab]:
        """
        Tabs of the group and its subgroups in opening order.

        A group's own tabs come first (collection order), then each child
        subtree in group order.
        """
        return self._gather(group_id, set())

    def _gather(self, group_id: str, seen: set) -> List[Tab]:
        if group_id in seen:
            return []
        seen.add(group_id)
        tabs = self.direct_tabs(group_id)
        for child in self.children_of(group_id):
            tabs.extend(self._gather(child.id, seen))
        return tabs

    # ----------------- re-parenting -----------------
    def check_move(self, group_id: str, new_parent_id: Optional[str]) -> Group:
        """
        Validate a re-parent without applying it.

        Raises:
            NotFoundError: the group or the target parent does not exist
            CycleError: the target is the group itself or inside its subtree
        """
        group = self.store.find_group(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}", operation="move_group", entity_id=group_id)
        if new_parent_id is None:
            return group
        if new_parent_id == group_id:
            raise CycleError("A group cannot be its own parent", operation="move_group", entity_id=group_id)
        if self.store.find_group(new_parent_id) is None:
            raise NotFoundError(f"Group not found: {new_parent_id}", operation="move_group",
                                entity_id=new_parent_id)
        if self.is_descendant(new_parent_id, group_id):
            raise CycleError(
                "Cannot move a group into one of its own subgroups",
                operation="move_group",
                entity_id=group_id,
                parent_id=new_parent_id,
            )
        return group

    def move(self, group_id: str, new_parent_id: Optional[str]) -> Group:
        group = self.check_move(group_id, new_parent_id)
        group.parent_id = new_parent_id
        return group
