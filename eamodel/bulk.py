"""
Bulk operations for import pipelines and multi-select actions.

bulk_import is row-wise: every row is its own create request, failures are
reported per row and do not stop the batch. The other operations are
all-or-nothing: everything is validated and written in one transaction.
"""
import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from eamodel.engine import MetaModelEngine, NodeRefLike, as_node_ref, require_actor
from eamodel.errors import InvalidInputError, MetaModelError
from eamodel.models import EntityKind, NodeRef, RelationshipKind
from eamodel.validation.kinds import get_kind_spec

MAX_BULK_IDS = 100
MAX_BULK_TARGETS = 50


class ImportRowError(BaseModel):
    row: int
    name: str
    error: str
    code: str


class ImportReport(BaseModel):
    success: int = 0
    failed: int = 0
    created_ids: List[int] = Field(default_factory=list)
    errors: List[ImportRowError] = Field(default_factory=list)


class BulkResult(BaseModel):
    success: bool = True
    count: int = 0
    cascaded: int = 0
    ids: List[int] = Field(default_factory=list)


def _check_batch(ids: Sequence[int], limit: int, what: str) -> None:
    if not 1 <= len(ids) <= limit:
        raise InvalidInputError(f"{what} must contain between 1 and {limit} ids, got {len(ids)}")


class BulkOperations:
    """
    Batch front-end over a MetaModelEngine.

    Args:
        engine: Engine whose store, matrix and clock are used
    """
    _logger = logging.getLogger("BulkOperations")

    def __init__(self, engine: MetaModelEngine) -> None:
        self.engine = engine

    def bulk_import(
        self,
        project_id: int,
        kind: Union[EntityKind, str],
        rows: Sequence[Mapping[str, Any]],
        actor: str
    ) -> ImportReport:
        """
        Create one node per row, collecting per-row failures.

        Rows carry the node fields without project_id/created_by, which come
        from the call. Row numbers in the report are 1-based.
        """
        spec = get_kind_spec(kind)
        report = ImportReport()

        for index, row in enumerate(rows, start=1):
            payload = {**row, "project_id": project_id, "created_by": actor}
            try:
                created = self.engine.create_node(spec.kind, payload)
            except MetaModelError as e:
                report.failed += 1
                report.errors.append(ImportRowError(
                    row=index,
                    name=str(row.get("name", "")),
                    error=str(e),
                    code=e.code,
                ))
                continue
            report.success += 1
            report.created_ids.append(created.id)

        self._logger.info(
            f"Imported {report.success}/{len(rows)} {spec.kind.value} row(s) into project {project_id}; "
            f"{report.failed} failed"
        )
        return report

    def bulk_delete(
        self,
        project_id: int,
        kind: Union[EntityKind, str],
        node_ids: Sequence[int],
        actor: str
    ) -> BulkResult:
        """Soft-delete several nodes of one kind with their relationships, atomically."""
        _check_batch(node_ids, MAX_BULK_IDS, "node_ids")
        spec = get_kind_spec(kind)
        engine = self.engine
        with engine.store.transaction() as session:
            deleted, cascaded = engine.lifecycle.delete_nodes(
                session, spec.kind, node_ids, project_id, actor, engine.clock()
            )
        return BulkResult(count=deleted, cascaded=cascaded, ids=list(dict.fromkeys(node_ids)))

    def bulk_create_relationships(
        self,
        project_id: int,
        source: NodeRefLike,
        target_kind: Union[EntityKind, str],
        target_ids: Sequence[int],
        kind: Union[RelationshipKind, str],
        actor: str,
        description: Optional[str] = None
    ) -> BulkResult:
        """
        Connect one source to several targets of the same kind with one relationship kind.

        Every triple is validated before anything is written; any failure
        leaves the store untouched.
        """
        _check_batch(target_ids, MAX_BULK_TARGETS, "target_ids")
        require_actor(actor)
        engine = self.engine
        source_ref = as_node_ref(source)
        resolved = [
            engine.resolve_relationship(source_ref, NodeRef(target_kind, target_id), kind)
            for target_id in dict.fromkeys(target_ids)
        ]

        created_ids: List[int] = []
        with engine.store.transaction() as session:
            now = engine.clock()
            for source_node, target_node, relationship_kind in resolved:
                row = engine.insert_relationship(
                    session, project_id, source_node, target_node, relationship_kind, description, actor, now
                )
                created_ids.append(row.id)

        self._logger.info(
            f"Created {len(created_ids)} {resolved[0][2].value} relationship(s) from "
            f"{resolved[0][0].kind.value}/{source_ref.id} in project {project_id}"
        )
        return BulkResult(count=len(created_ids), ids=created_ids)

    def bulk_delete_relationships(self, project_id: int, relationship_ids: Sequence[int], actor: str) -> BulkResult:
        _check_batch(relationship_ids, MAX_BULK_IDS, "relationship_ids")
        engine = self.engine
        with engine.store.transaction() as session:
            count = engine.lifecycle.delete_relationships(
                session, relationship_ids, project_id, actor, engine.clock()
            )
        return BulkResult(count=count, ids=list(dict.fromkeys(relationship_ids)))
