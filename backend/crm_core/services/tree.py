# backend/crm_core/services/tree.py
"""
Traversal of self-referencing tables (accounts.parent_account_id,
users.reports_to).

Parent pointers are plain ids. Every walk keeps a visited set, so a cycle
already present in stored data raises HierarchyCycleError instead of
looping forever.
"""

from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from crm_core.exceptions import HierarchyCycleError, NotFoundError


class Forest:
    """Parent-pointer forest over one ORM model."""

    def __init__(self, db: Session, model, id_attr: str, parent_attr: str, entity: str):
        self.db = db
        self.model = model
        self.id_attr = id_attr
        self.parent_attr = parent_attr
        self.entity = entity

    @property
    def _id_col(self):
        return getattr(self.model, self.id_attr)

    @property
    def _parent_col(self):
        return getattr(self.model, self.parent_attr)

    def get(self, node_id: UUID):
        node = self.db.get(self.model, node_id)
        if node is None:
            raise NotFoundError(self.entity, node_id)
        return node

    def ancestors(self, node_id: UUID) -> List:
        """Parent, grandparent, ... up to the root (nearest first)."""
        node = self.get(node_id)
        chain = []
        visited: Set[UUID] = {node_id}
        parent_id = getattr(node, self.parent_attr)
        while parent_id is not None:
            if parent_id in visited:
                raise HierarchyCycleError(self.entity, parent_id)
            visited.add(parent_id)
            parent = self.get(parent_id)
            chain.append(parent)
            parent_id = getattr(parent, self.parent_attr)
        return chain

    def root(self, node_id: UUID):
        chain = self.ancestors(node_id)
        return chain[-1] if chain else self.get(node_id)

    def descendants(self, node_id: UUID) -> List:
        """All descendants, breadth-first, using an explicit work-list."""
        self.get(node_id)
        found = []
        seen: Set[UUID] = {node_id}
        frontier = [node_id]
        while frontier:
            children = (
                self.db.query(self.model)
                .filter(self._parent_col.in_(frontier))
                .order_by(self._id_col)
                .all()
            )
            frontier = []
            for child in children:
                child_id = getattr(child, self.id_attr)
                if child_id in seen:
                    raise HierarchyCycleError(self.entity, child_id)
                seen.add(child_id)
                found.append(child)
                frontier.append(child_id)
        return found

    def children(self, node_id: UUID) -> List:
        return (
            self.db.query(self.model)
            .filter(self._parent_col == node_id)
            .order_by(self._id_col)
            .all()
        )

    def check_parent(self, node_id: UUID, new_parent_id: Optional[UUID]):
        """Raise HierarchyCycleError if new_parent_id may not become node_id's parent."""
        if new_parent_id is None:
            return
        if new_parent_id == node_id:
            raise HierarchyCycleError(self.entity, node_id, new_parent_id)
        for ancestor in self.ancestors(new_parent_id):
            if getattr(ancestor, self.id_attr) == node_id:
                raise HierarchyCycleError(self.entity, node_id, new_parent_id)
