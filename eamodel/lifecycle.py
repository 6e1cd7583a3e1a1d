"""
Soft-delete lifecycle manager.

Records are never physically removed. Deleting sets deleted_at/deleted_by, and
deleting a node also deactivates every active relationship that touches it in
the same project. All methods work inside the caller's session; the engine runs
each call in a single transaction so a failure part-way through a cascade
rolls the whole delete back.

Re-deleting a record that is already inactive raises NotFoundError, the same
as deleting one that never existed.
"""
import logging
from datetime import datetime
from typing import List, Sequence, Tuple, Union

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from eamodel.errors import NotFoundError
from eamodel.models import EntityKind
from eamodel.storage.sql_models import NodeBase, RelationshipSQL
from eamodel.validation.kinds import KindSpec, get_kind_spec


class SoftDeleteManager:
    """Marks nodes and relationships inactive and cascades node deletes."""
    _logger = logging.getLogger("SoftDeleteManager")

    def active_node(self, session: Session, spec: KindSpec, node_id: int, project_id: int) -> NodeBase:
        table = spec.table
        row = session.execute(
            select(table).where(
                table.id == node_id,
                table.project_id == project_id,
                table.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if row is None:
            self._logger.error(f"No active {spec.kind.value} {node_id} in project {project_id}")
            raise NotFoundError(spec.kind.value, node_id, project_id)
        return row

    def active_relationship(self, session: Session, relationship_id: int, project_id: int) -> RelationshipSQL:
        row = session.execute(
            select(RelationshipSQL).where(
                RelationshipSQL.id == relationship_id,
                RelationshipSQL.project_id == project_id,
                RelationshipSQL.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if row is None:
            self._logger.error(f"No active relationship {relationship_id} in project {project_id}")
            raise NotFoundError("relationship", relationship_id, project_id)
        return row

    def delete_node(
        self,
        session: Session,
        kind: Union[EntityKind, str],
        node_id: int,
        project_id: int,
        actor: str,
        now: datetime
    ) -> int:
        """
        Soft-delete a node and every active relationship incident to it.

        Returns:
            Number of relationships deactivated by the cascade

        Raises:
            NotFoundError: If the node is missing or already deleted
        """
        return self.delete_nodes(session, kind, [node_id], project_id, actor, now)[1]

    def delete_nodes(
        self,
        session: Session,
        kind: Union[EntityKind, str],
        node_ids: Sequence[int],
        project_id: int,
        actor: str,
        now: datetime
    ) -> Tuple[int, int]:
        """
        Soft-delete several nodes of one kind; every id must be active.

        Returns:
            (nodes deleted, relationships deactivated)
        """
        spec = get_kind_spec(kind)
        unique_ids = list(dict.fromkeys(node_ids))
        rows: List[NodeBase] = [self.active_node(session, spec, node_id, project_id) for node_id in unique_ids]
        for row in rows:
            row.deleted_at = now
            row.deleted_by = actor
        session.flush()

        cascaded = self.cascade_relationships(session, spec.kind, [row.id for row in rows], project_id, actor, now)
        self._logger.info(
            f"Deleted {len(rows)} {spec.kind.value} node(s) {list(node_ids)} in project {project_id}; "
            f"cascaded to {cascaded} relationship(s)"
        )
        return len(rows), cascaded

    def cascade_relationships(
        self,
        session: Session,
        kind: EntityKind,
        node_ids: Sequence[int],
        project_id: int,
        actor: str,
        now: datetime
    ) -> int:
        """Deactivate active relationships that have any of the nodes as source or target."""
        if not node_ids:
            return 0
        result = session.execute(
            update(RelationshipSQL)
            .where(
                RelationshipSQL.project_id == project_id,
                RelationshipSQL.deleted_at.is_(None),
                or_(
                    and_(RelationshipSQL.source_kind == kind.value, RelationshipSQL.source_id.in_(node_ids)),
                    and_(RelationshipSQL.target_kind == kind.value, RelationshipSQL.target_id.in_(node_ids)),
                ),
            )
            .values(deleted_at=now, deleted_by=actor)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def delete_relationship(
        self,
        session: Session,
        relationship_id: int,
        project_id: int,
        actor: str,
        now: datetime
    ) -> None:
        """Soft-delete one relationship; no cascade."""
        self.delete_relationships(session, [relationship_id], project_id, actor, now)

    def delete_relationships(
        self,
        session: Session,
        relationship_ids: Sequence[int],
        project_id: int,
        actor: str,
        now: datetime
    ) -> int:
        unique_ids = list(dict.fromkeys(relationship_ids))
        rows = [self.active_relationship(session, rel_id, project_id) for rel_id in unique_ids]
        for row in rows:
            row.deleted_at = now
            row.deleted_by = actor
        session.flush()
        self._logger.info(f"Deleted relationship(s) {list(relationship_ids)} in project {project_id}")
        return len(rows)
