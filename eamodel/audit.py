"""
Audit trail reconstruction.

There is no event log. History is synthesized on read from the lifecycle
columns of every node table and of the relationship table:

- created_at/created_by  -> NodeCreated / RelationshipCreated (always)
- updated_at/updated_by  -> NodeUpdated, only when updated_at != created_at
- deleted_at/deleted_by  -> NodeDeleted / RelationshipDeleted, when set

Per-kind adapters turn rows into events; merging, ordering, filtering and
pagination are kind-agnostic. Events sharing a timestamp are ordered
deterministically: deletes before updates before creates, relationship events
before node events, then by kind tag and record id, all descending.
"""
import logging
from datetime import datetime
from typing import Annotated, ClassVar, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from eamodel.errors import InvalidInputError
from eamodel.models import AuditAction, EntityKind, RelationshipKind
from eamodel.storage.sql_models import NodeBase, RelationshipSQL, as_utc
from eamodel.validation.kinds import KindSpec, all_kind_specs, parse_kind

SYSTEM_ACTOR = "System"
RELATIONSHIP_SUBJECT = "relationship"

NameIndex = Dict[Tuple[EntityKind, int], str]


##############################
# Event variants
##############################

class _AuditEventBase(BaseModel):
    ACTION: ClassVar[AuditAction]
    SUBJECT: ClassVar[str]

    id: str
    project_id: int
    timestamp: datetime
    actor: str = SYSTEM_ACTOR

    @property
    def action(self) -> AuditAction:
        return self.ACTION

    @property
    def subject(self) -> str:
        return self.SUBJECT


class _NodeEvent(_AuditEventBase):
    SUBJECT: ClassVar[str] = "node"

    kind: EntityKind
    node_id: int
    name: str

    @property
    def kind_tag(self) -> str:
        return self.kind.value

    @property
    def record_id(self) -> int:
        return self.node_id

    def matches(self, term: str) -> bool:
        return term in self.name.lower()


class NodeCreated(_NodeEvent):
    ACTION: ClassVar[AuditAction] = AuditAction.CREATE
    event_type: Literal["node_created"] = "node_created"
    description: Optional[str] = None


class NodeUpdated(_NodeEvent):
    ACTION: ClassVar[AuditAction] = AuditAction.UPDATE
    event_type: Literal["node_updated"] = "node_updated"


class NodeDeleted(_NodeEvent):
    ACTION: ClassVar[AuditAction] = AuditAction.DELETE
    event_type: Literal["node_deleted"] = "node_deleted"


class _RelationshipEvent(_AuditEventBase):
    SUBJECT: ClassVar[str] = RELATIONSHIP_SUBJECT

    relationship_id: int
    relationship_kind: RelationshipKind
    source_kind: EntityKind
    source_id: int
    source_name: Optional[str] = None
    target_kind: EntityKind
    target_id: int
    target_name: Optional[str] = None

    @property
    def kind_tag(self) -> str:
        return RELATIONSHIP_SUBJECT

    @property
    def record_id(self) -> int:
        return self.relationship_id

    def matches(self, term: str) -> bool:
        return any(term in name.lower() for name in (self.source_name, self.target_name) if name)


class RelationshipCreated(_RelationshipEvent):
    ACTION: ClassVar[AuditAction] = AuditAction.CREATE
    event_type: Literal["relationship_created"] = "relationship_created"
    description: Optional[str] = None


class RelationshipDeleted(_RelationshipEvent):
    ACTION: ClassVar[AuditAction] = AuditAction.DELETE
    event_type: Literal["relationship_deleted"] = "relationship_deleted"


AuditEvent = Annotated[
    Union[NodeCreated, NodeUpdated, NodeDeleted, RelationshipCreated, RelationshipDeleted],
    Field(discriminator="event_type"),
]


class AuditPage(BaseModel):
    events: List[AuditEvent]
    total: int
    has_more: bool


##############################
# Adapters
##############################

def node_events(row: NodeBase, kind: EntityKind) -> List[AuditEvent]:
    """Events implied by one node row's lifecycle columns."""
    tag = f"{kind.value}-{row.id}"
    created_at = as_utc(row.created_at)
    updated_at = as_utc(row.updated_at)
    common = dict(project_id=row.project_id, kind=kind, node_id=row.id, name=row.name)

    events: List[AuditEvent] = [NodeCreated(
        id=f"{tag}-create",
        timestamp=created_at,
        actor=row.created_by,
        description=row.description,
        **common,
    )]
    if updated_at is not None and updated_at != created_at:
        events.append(NodeUpdated(
            id=f"{tag}-update",
            timestamp=updated_at,
            actor=row.updated_by or row.created_by,
            **common,
        ))
    if row.deleted_at is not None:
        events.append(NodeDeleted(
            id=f"{tag}-delete",
            timestamp=as_utc(row.deleted_at),
            actor=row.deleted_by or SYSTEM_ACTOR,
            **common,
        ))
    return events


def relationship_events(row: RelationshipSQL, names: NameIndex) -> List[AuditEvent]:
    """Events implied by one relationship row; updated_at never yields an event."""
    source_kind = EntityKind(row.source_kind)
    target_kind = EntityKind(row.target_kind)
    common = dict(
        project_id=row.project_id,
        relationship_id=row.id,
        relationship_kind=RelationshipKind(row.relationship_kind),
        source_kind=source_kind,
        source_id=row.source_id,
        source_name=names.get((source_kind, row.source_id)),
        target_kind=target_kind,
        target_id=row.target_id,
        target_name=names.get((target_kind, row.target_id)),
    )
    events: List[AuditEvent] = [RelationshipCreated(
        id=f"relationship-{row.id}-create",
        timestamp=as_utc(row.created_at),
        actor=row.created_by,
        description=row.description,
        **common,
    )]
    if row.deleted_at is not None:
        events.append(RelationshipDeleted(
            id=f"relationship-{row.id}-delete",
            timestamp=as_utc(row.deleted_at),
            actor=row.deleted_by or SYSTEM_ACTOR,
            **common,
        ))
    return events


##############################
# Merge, filter, paginate
##############################

_ACTION_RANK = {AuditAction.CREATE: 0, AuditAction.UPDATE: 1, AuditAction.DELETE: 2}
_SUBJECT_RANK = {"node": 0, RELATIONSHIP_SUBJECT: 1}


def _sort_key(event: AuditEvent) -> tuple:
    return (
        event.timestamp,
        _ACTION_RANK[event.action],
        _SUBJECT_RANK[event.subject],
        event.kind_tag,
        event.record_id,
    )


def merge_events(groups: Iterable[Iterable[AuditEvent]]) -> List[AuditEvent]:
    """Flatten per-table event groups into one newest-first sequence."""
    merged = [event for group in groups for event in group]
    merged.sort(key=_sort_key, reverse=True)
    return merged


def _parse_kind_filter(kind_filter: Optional[Union[EntityKind, str]]) -> Optional[Union[EntityKind, str]]:
    if kind_filter is None or kind_filter == "all":
        return None
    if kind_filter == RELATIONSHIP_SUBJECT:
        return RELATIONSHIP_SUBJECT
    return parse_kind(kind_filter)


def _parse_action_filter(action_filter: Optional[Union[AuditAction, str]]) -> Optional[AuditAction]:
    if action_filter is None or action_filter == "all":
        return None
    try:
        return AuditAction(action_filter)
    except ValueError:
        raise InvalidInputError(
            f"Invalid action filter: {action_filter!r}. Valid filters are: create, update, delete, all"
        ) from None


class AuditTrail:
    """Read-only reconstruction of a project's change history."""
    _logger = logging.getLogger("AuditTrail")

    def collect(self, session: Session, project_id: int) -> List[AuditEvent]:
        """Every event of the project, newest first, unfiltered."""
        groups: List[List[AuditEvent]] = []
        names: NameIndex = {}

        for spec in all_kind_specs():
            rows = self._scan_nodes(session, spec, project_id)
            for row in rows:
                names[(spec.kind, row.id)] = row.name
                groups.append(node_events(row, spec.kind))

        relationships = session.execute(
            select(RelationshipSQL).where(RelationshipSQL.project_id == project_id)
        ).scalars().all()
        for row in relationships:
            groups.append(relationship_events(row, names))

        events = merge_events(groups)
        self._logger.debug(
            f"Reconstructed {len(events)} events for project {project_id} "
            f"from {len(names)} nodes and {len(relationships)} relationships"
        )
        return events

    @staticmethod
    def _scan_nodes(session: Session, spec: KindSpec, project_id: int) -> List[NodeBase]:
        table = spec.table
        return list(session.execute(select(table).where(table.project_id == project_id)).scalars())

    def history(
        self,
        session: Session,
        project_id: int,
        kind_filter: Optional[Union[EntityKind, str]] = None,
        action_filter: Optional[Union[AuditAction, str]] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> AuditPage:
        """
        Filtered, paginated history.

        Args:
            kind_filter: None or "all" for everything, a node kind for that kind's
                node events, or "relationship" for relationship events only
            action_filter: None, "all", "create", "update" or "delete"
            search: Case-insensitive substring of the node name; relationship
                events match on either endpoint's name
            limit: Page size
            offset: Number of events to skip

        Returns:
            AuditPage whose total counts every matching event before pagination
        """
        kind = _parse_kind_filter(kind_filter)
        action = _parse_action_filter(action_filter)
        term = search.strip().lower() if search and search.strip() else None

        events = self.collect(session, project_id)
        if kind == RELATIONSHIP_SUBJECT:
            events = [e for e in events if e.subject == RELATIONSHIP_SUBJECT]
        elif kind is not None:
            events = [e for e in events if e.subject == "node" and e.kind == kind]
        if action is not None:
            events = [e for e in events if e.action is action]
        if term is not None:
            events = [e for e in events if e.matches(term)]

        total = len(events)
        page = events[offset:offset + limit]
        return AuditPage(events=page, total=total, has_more=total > offset + limit)
