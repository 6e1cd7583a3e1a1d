"""
Meta-model engine facade.

Entry point for presentation and import layers. Every operation is a stateless
request that opens one transaction on the store:

- create/update: registry -> normalizer -> duplicate guard -> write
- relationships: registry -> matrix validator -> endpoint checks -> write
- deletes: lifecycle manager (cascading for nodes), one transaction
- reads: point-in-time scans, never cached
- validation: rule checker over active rows, read-only

Example Usage:
```python
store = MetaModelStore.from_url("sqlite:///ea.db")
store.create_all()
engine = MetaModelEngine(store)

cap = engine.create_node("capability", {"project_id": 1, "name": "Customer Management",
                                         "level": 1, "created_by": "alice"})
app = engine.create_node("application", {"project_id": 1, "name": "CRM", "created_by": "alice"})
engine.create_relationship(1, ("application", app.id), ("capability", cap.id), "SUPPORTS", actor="alice")
engine.delete_node("capability", cap.id, 1, actor="alice")
page = engine.get_audit_history(1)
```
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eamodel.audit import AuditPage, AuditTrail
from eamodel.config import EngineSettings
from eamodel.errors import DuplicateRelationshipError, InvalidInputError
from eamodel.lifecycle import SoftDeleteManager
from eamodel.models import (
    IMMUTABLE_NODE_FIELDS,
    AuditAction,
    CreatedNode,
    CreatedRelationship,
    EntityKind,
    NodeInput,
    NodeRecord,
    NodeRef,
    OperationResult,
    RelationshipKind,
    RelationshipRecord,
)
from eamodel.storage.sql_models import RelationshipSQL
from eamodel.storage.store import MetaModelStore, is_unique_violation
from eamodel.validation.guard import DuplicateGuard
from eamodel.validation.kinds import KindSpec, get_kind_spec, parse_kind
from eamodel.validation.matrix import DEFAULT_MATRIX, RelationshipMatrix
from eamodel.validation.names import escape_like, normalize_name
from eamodel.validation.rules import RuleChecker, ValidationReport, ValidationRule

Clock = Callable[[], datetime]
NodeRefLike = Union[NodeRef, Tuple[Union[EntityKind, str], int]]

_RULE_LIST = TypeAdapter(List[ValidationRule])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_node_ref(value: NodeRefLike) -> NodeRef:
    if isinstance(value, NodeRef):
        return value
    kind, node_id = value
    return NodeRef(kind=kind, id=node_id)


def require_actor(actor: Optional[str]) -> str:
    if not actor or not actor.strip():
        raise InvalidInputError("actor is required")
    return actor


def validation_error(error: ValidationError, context: str) -> InvalidInputError:
    """Wrap a pydantic ValidationError into the engine's error taxonomy."""
    details = [
        {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]
    summary = "; ".join(f"{d['field']}: {d['message']}" for d in details)
    return InvalidInputError(f"Invalid {context}: {summary}", details)


class MetaModelEngine:
    """
    Enforces the meta-model invariants on top of a MetaModelStore.

    Args:
        store: Relational store
        matrix: Relationship matrix; defaults to the standard rules
        clock: Source of timestamps for lifecycle columns
        settings: Paging limits and other settings
    """
    _logger = logging.getLogger("MetaModelEngine")

    def __init__(
        self,
        store: MetaModelStore,
        matrix: Optional[RelationshipMatrix] = None,
        clock: Optional[Clock] = None,
        settings: Optional[EngineSettings] = None
    ) -> None:
        self.store = store
        self.matrix = matrix or DEFAULT_MATRIX
        self.clock = clock or utc_now
        self.settings = settings or EngineSettings()
        self.guard = DuplicateGuard()
        self.lifecycle = SoftDeleteManager()
        self.audit = AuditTrail()
        self.rules = RuleChecker()

    @classmethod
    def from_settings(cls, settings: EngineSettings, create_schema: bool = True) -> "MetaModelEngine":
        store = MetaModelStore.from_settings(settings)
        if create_schema:
            store.create_all()
        return cls(store, settings=settings)

    ##############################
    # Helpers
    ##############################

    def _check_page(self, limit: int, offset: int) -> None:
        if not 1 <= limit <= self.settings.max_page_size:
            raise InvalidInputError(f"limit must be between 1 and {self.settings.max_page_size}, got {limit}")
        if offset < 0:
            raise InvalidInputError(f"offset must be >= 0, got {offset}")

    def validate_input(self, kind: Union[EntityKind, str], data: Union[NodeInput, Mapping[str, Any]]) -> Tuple[KindSpec, Dict[str, Any]]:
        """Validate a creation payload against the kind's input model."""
        spec = get_kind_spec(kind)
        payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        try:
            model = spec.input_model.model_validate(payload)
        except ValidationError as e:
            self._logger.error(f"Rejected {spec.kind.value} input: {e.error_count()} error(s)")
            raise validation_error(e, f"{spec.kind.value} input") from None
        return spec, model.model_dump(mode="json")

    def _flush_node(self, session: Session, spec: KindSpec, project_id: int, normalized_name: str) -> None:
        """Flush pending node writes, mapping unique-index violations to DuplicateNameError."""
        try:
            session.flush()
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise self.guard.translate_integrity_error(e, project_id, spec.kind, normalized_name) from e

    ##############################
    # Nodes
    ##############################

    def create_node(self, kind: Union[EntityKind, str], data: Union[NodeInput, Mapping[str, Any]]) -> CreatedNode:
        """
        Create a node after normalizing its name and checking uniqueness.

        Raises:
            InvalidEntityTypeError: Unknown kind
            InvalidInputError: Payload failed validation
            DuplicateNameError: Name collides within project and kind
        """
        spec, values = self.validate_input(kind, data)
        normalized = normalize_name(values["name"])
        project_id = values["project_id"]

        with self.store.transaction() as session:
            self.guard.check_unique(session, project_id, spec.kind, normalized)
            row = spec.table.from_input(values, normalized, self.clock())
            session.add(row)
            self._flush_node(session, spec, project_id, normalized)
            created = CreatedNode(id=row.id, normalized_name=normalized)

        self._logger.info(f"Created {spec.kind.value} {created.id} {normalized!r} in project {project_id}")
        return created

    def get_node(self, kind: Union[EntityKind, str], node_id: int, project_id: int) -> NodeRecord:
        """Fetch one active node. Raises NotFoundError if missing or deleted."""
        spec = get_kind_spec(kind)
        with self.store.transaction() as session:
            return self.lifecycle.active_node(session, spec, node_id, project_id).to_record()

    def update_node(
        self,
        kind: Union[EntityKind, str],
        node_id: int,
        project_id: int,
        patch: Union[BaseModel, Mapping[str, Any]],
        actor: Optional[str] = None
    ) -> OperationResult:
        """
        Apply a partial update to an active node.

        The name is re-normalized and re-checked (excluding the node itself)
        only when it actually changes. Kind-specific constraints are re-validated
        on the merged result.

        Raises:
            NotFoundError: Node missing or deleted
            InvalidInputError: Unknown or immutable fields, or invalid values
            DuplicateNameError: New name collides with another active node
        """
        spec = get_kind_spec(kind)
        changes = patch.model_dump(exclude_unset=True) if isinstance(patch, BaseModel) else dict(patch)
        if not changes:
            raise InvalidInputError(f"Empty update for {spec.kind.value} {node_id}")
        allowed = {"name", "description", *spec.attributes}
        rejected = sorted(set(changes) - allowed)
        if rejected:
            self._logger.error(f"Rejected update of {spec.kind.value} {node_id}: fields {rejected}")
            immutable = [field for field in rejected if field in IMMUTABLE_NODE_FIELDS]
            reason = "immutable" if immutable else f"not {spec.kind.value} fields"
            raise InvalidInputError(f"Cannot update {', '.join(rejected)}: {reason}")

        with self.store.transaction() as session:
            row = self.lifecycle.active_node(session, spec, node_id, project_id)
            current = {
                "project_id": row.project_id,
                "name": row.name,
                "description": row.description,
                "created_by": row.created_by,
                **{k: v for k, v in row.attribute_values().items() if v is not None},
            }
            try:
                merged = spec.input_model.model_validate({**current, **changes}).model_dump(mode="json")
            except ValidationError as e:
                raise validation_error(e, f"{spec.kind.value} update") from None

            normalized = row.normalized_name
            if "name" in changes and merged["name"] != row.name:
                normalized = normalize_name(merged["name"])
                if normalized != row.normalized_name:
                    self.guard.check_unique(session, project_id, spec.kind, normalized, exclude_id=node_id)
                row.name = merged["name"]
                row.normalized_name = normalized

            if "description" in changes:
                row.description = merged["description"]
            for attribute in spec.attributes:
                if attribute in changes:
                    setattr(row, attribute, merged[attribute])
            row.updated_at = self.clock()
            row.updated_by = actor
            self._flush_node(session, spec, project_id, normalized)

        self._logger.info(f"Updated {spec.kind.value} {node_id} in project {project_id}: {sorted(changes)}")
        return OperationResult(success=True, affected=1)

    def delete_node(self, kind: Union[EntityKind, str], node_id: int, project_id: int, actor: str) -> OperationResult:
        """
        Soft-delete a node and cascade to its relationships, atomically.

        Returns:
            OperationResult whose `affected` is the number of relationships cascaded
        """
        spec = get_kind_spec(kind)
        with self.store.transaction() as session:
            cascaded = self.lifecycle.delete_node(session, spec.kind, node_id, project_id, actor, self.clock())
        return OperationResult(success=True, affected=cascaded)

    def list_nodes(
        self,
        project_id: int,
        kind: Union[EntityKind, str],
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[NodeRecord]:
        """Active nodes of a kind ordered by name; search matches name or description."""
        spec = get_kind_spec(kind)
        limit = self.settings.default_page_size if limit is None else limit
        self._check_page(limit, offset)
        table = spec.table

        query = select(table).where(table.project_id == project_id, table.deleted_at.is_(None))
        if search:
            pattern = f"%{escape_like(search.lower())}%"
            query = query.where(or_(
                func.lower(table.name).like(pattern, escape="\\"),
                func.lower(table.description).like(pattern, escape="\\"),
            ))
        query = query.order_by(table.name, table.id).limit(limit).offset(offset)

        with self.store.transaction() as session:
            rows = session.execute(query).scalars().all()
            records = [row.to_record() for row in rows]
        self._logger.debug(f"Listed {len(records)} {spec.kind.value} node(s) in project {project_id}")
        return records

    ##############################
    # Relationships
    ##############################

    def _check_endpoint(self, session: Session, ref: NodeRef, project_id: int) -> None:
        self.lifecycle.active_node(session, get_kind_spec(ref.kind), ref.id, project_id)

    def _check_not_duplicate(
        self,
        session: Session,
        project_id: int,
        source: NodeRef,
        target: NodeRef,
        relationship_kind: RelationshipKind
    ) -> None:
        existing = session.execute(
            select(RelationshipSQL.id).where(
                RelationshipSQL.project_id == project_id,
                RelationshipSQL.source_kind == source.kind.value,
                RelationshipSQL.source_id == source.id,
                RelationshipSQL.relationship_kind == relationship_kind.value,
                RelationshipSQL.target_kind == target.kind.value,
                RelationshipSQL.target_id == target.id,
                RelationshipSQL.deleted_at.is_(None),
            ).limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            raise self._duplicate_relationship(project_id, source, target, relationship_kind)

    def _duplicate_relationship(
        self,
        project_id: int,
        source: NodeRef,
        target: NodeRef,
        relationship_kind: RelationshipKind
    ) -> DuplicateRelationshipError:
        self._logger.error(
            f"Duplicate relationship {source.kind.value}/{source.id} {relationship_kind.value} "
            f"{target.kind.value}/{target.id} in project {project_id}"
        )
        return DuplicateRelationshipError(
            project_id, source.kind.value, source.id, relationship_kind.value, target.kind.value, target.id
        )

    def resolve_relationship(
        self,
        source: NodeRefLike,
        target: NodeRefLike,
        kind: Union[RelationshipKind, str]
    ) -> Tuple[NodeRef, NodeRef, RelationshipKind]:
        """Validate kinds, self-reference and the matrix without touching the store."""
        source_ref = as_node_ref(source)
        target_ref = as_node_ref(target)
        source_kind, target_kind, relationship_kind = self.matrix.validate_relationship(
            source_ref.kind, source_ref.id, target_ref.kind, target_ref.id, kind
        )
        return NodeRef(source_kind, source_ref.id), NodeRef(target_kind, target_ref.id), relationship_kind

    def insert_relationship(
        self,
        session: Session,
        project_id: int,
        source: NodeRef,
        target: NodeRef,
        relationship_kind: RelationshipKind,
        description: Optional[str],
        actor: str,
        now: datetime
    ) -> RelationshipSQL:
        """Write one already-validated relationship inside an open transaction."""
        self._check_endpoint(session, source, project_id)
        self._check_endpoint(session, target, project_id)
        self._check_not_duplicate(session, project_id, source, target, relationship_kind)

        row = RelationshipSQL(
            project_id=project_id,
            source_kind=source.kind.value,
            source_id=source.id,
            relationship_kind=relationship_kind.value,
            target_kind=target.kind.value,
            target_id=target.id,
            description=description,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                raise self._duplicate_relationship(project_id, source, target, relationship_kind) from e
            raise
        return row

    def create_relationship(
        self,
        project_id: int,
        source: NodeRefLike,
        target: NodeRefLike,
        kind: Union[RelationshipKind, str],
        actor: str,
        description: Optional[str] = None
    ) -> CreatedRelationship:
        """
        Create a directed relationship between two active nodes of a project.

        Raises:
            InvalidEntityTypeError: Unknown source or target kind
            SelfReferenceError: Source and target are the same node
            RelationshipMatrixError: Triple not allowed by the matrix
            NotFoundError: An endpoint is missing or deleted
            DuplicateRelationshipError: Identical active relationship exists
            InvalidInputError: Blank actor
        """
        require_actor(actor)
        source_ref, target_ref, relationship_kind = self.resolve_relationship(source, target, kind)

        with self.store.transaction() as session:
            row = self.insert_relationship(
                session, project_id, source_ref, target_ref, relationship_kind, description, actor, self.clock()
            )
            created = CreatedRelationship(id=row.id)

        self._logger.info(
            f"Created relationship {created.id}: {source_ref.kind.value}/{source_ref.id} "
            f"{relationship_kind.value} {target_ref.kind.value}/{target_ref.id} in project {project_id}"
        )
        return created

    def delete_relationship(self, relationship_id: int, project_id: int, actor: str) -> OperationResult:
        with self.store.transaction() as session:
            self.lifecycle.delete_relationship(session, relationship_id, project_id, actor, self.clock())
        return OperationResult(success=True, affected=1)

    def list_relationships(
        self,
        project_id: int,
        kind: Optional[Union[EntityKind, str]] = None,
        node_id: Optional[int] = None
    ) -> List[RelationshipRecord]:
        """
        Active relationships of a project, oldest first.

        With kind and node_id, only relationships touching that node as source
        or target are returned. Passing only one of them is an error.
        """
        if (kind is None) != (node_id is None):
            raise InvalidInputError("kind and node_id must be given together")

        query = select(RelationshipSQL).where(
            RelationshipSQL.project_id == project_id,
            RelationshipSQL.deleted_at.is_(None),
        )
        if kind is not None:
            tag = parse_kind(kind).value
            query = query.where(or_(
                and_(RelationshipSQL.source_kind == tag, RelationshipSQL.source_id == node_id),
                and_(RelationshipSQL.target_kind == tag, RelationshipSQL.target_id == node_id),
            ))
        query = query.order_by(RelationshipSQL.created_at, RelationshipSQL.id)

        with self.store.transaction() as session:
            return [row.to_record() for row in session.execute(query).scalars().all()]

    ##############################
    # Audit
    ##############################

    def get_audit_history(
        self,
        project_id: int,
        kind_filter: Optional[Union[EntityKind, str]] = None,
        action_filter: Optional[Union[AuditAction, str]] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> AuditPage:
        """Reconstructed change history, newest first, filtered then paginated."""
        limit = self.settings.default_page_size if limit is None else limit
        self._check_page(limit, offset)
        with self.store.transaction() as session:
            return self.audit.history(
                session,
                project_id,
                kind_filter=kind_filter,
                action_filter=action_filter,
                search=search,
                limit=limit,
                offset=offset,
            )

    ##############################
    # Model validation
    ##############################

    def run_validation(
        self,
        project_id: int,
        rules: Sequence[Union[BaseModel, Mapping[str, Any]]]
    ) -> ValidationReport:
        """
        Check the active model of a project against a set of validation rules.

        Args:
            project_id: Project to check
            rules: Rule models or plain mappings tagged with `rule_type`

        Returns:
            ValidationReport with every violation found

        Raises:
            InvalidInputError: Malformed rule, duplicate rule id, or an unknown attribute name
        """
        payload = [rule.model_dump() if isinstance(rule, BaseModel) else dict(rule) for rule in rules]
        try:
            parsed = _RULE_LIST.validate_python(payload)
        except ValidationError as e:
            self._logger.error(f"Rejected validation rules for project {project_id}: {e.error_count()} errors")
            raise validation_error(e, "validation rules") from e

        seen = set()
        for rule in parsed:
            if rule.id in seen:
                raise InvalidInputError(f"Duplicate rule id {rule.id!r}")
            seen.add(rule.id)

        with self.store.transaction() as session:
            report = self.rules.run(session, project_id, parsed, self.clock())
        self._logger.info(
            f"Validated project {project_id}: {report.total_violations} violations across {report.total_rules} rules"
        )
        return report

    def get_registry_status(self) -> Dict[str, Any]:
        return {
            **self.store.get_registry_status(),
            "kinds": [kind.value for kind in EntityKind],
            "relationship_pairs": len(self.matrix.pairs),
        }
