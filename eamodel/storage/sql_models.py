"""
SQLAlchemy models for the meta-model store.

One table per node kind plus a single polymorphic relationship table. Every
table carries the lifecycle columns (created/updated/deleted timestamps and
actors) that the audit trail is reconstructed from. Uniqueness of names is
enforced by partial unique indexes over active rows only, so a soft-deleted
name can be reused. Partial indexes are declared for SQLite and PostgreSQL
only; on other dialects they would be created as plain unique indexes, so
those are not supported.
"""
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import declarative_base, declared_attr, mapped_column

from eamodel.models import EntityKind, NodeRecord, RelationshipKind, RelationshipRecord

# Create SQLAlchemy Base
Base = declarative_base()

ACTIVE_ROWS = "deleted_at IS NULL"
SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class NodeBase(Base):
    """Abstract base class for all node tables with the common and lifecycle columns."""
    __abstract__ = True

    KIND: ClassVar[EntityKind]
    # Kind-specific column names, in declaration order
    ATTRIBUTES: ClassVar[Tuple[str, ...]] = ()

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id = mapped_column(Integer, nullable=False, index=True)
    name = mapped_column(String(255), nullable=False)
    normalized_name = mapped_column(String(255), nullable=False)
    description = mapped_column(Text, nullable=True)

    created_by = mapped_column(String(255), nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), nullable=False)
    updated_by = mapped_column(String(255), nullable=True)
    deleted_at = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by = mapped_column(String(255), nullable=True)

    @declared_attr
    def __table_args__(cls):
        table = cls.__tablename__
        return (
            Index(
                f"uq_{table}_active_normalized_name",
                "project_id", "normalized_name",
                unique=True,
                sqlite_where=text(ACTIVE_ROWS),
                postgresql_where=text(ACTIVE_ROWS),
            ),
            Index(f"ix_{table}_project_deleted", "project_id", "deleted_at"),
        )

    @classmethod
    def from_input(cls, data: Dict[str, Any], normalized_name: str, now: datetime) -> "NodeBase":
        """Build a new row from validated input; created_at and updated_at start equal."""
        row = cls(
            project_id=data["project_id"],
            name=data["name"],
            normalized_name=normalized_name,
            description=data.get("description"),
            created_by=data["created_by"],
            created_at=now,
            updated_at=now,
        )
        for attribute in cls.ATTRIBUTES:
            if attribute in data:
                setattr(row, attribute, data[attribute])
        return row

    def attribute_values(self) -> Dict[str, Any]:
        return {attribute: getattr(self, attribute) for attribute in self.ATTRIBUTES}

    def to_record(self) -> NodeRecord:
        return NodeRecord(
            kind=self.KIND,
            id=self.id,
            project_id=self.project_id,
            name=self.name,
            normalized_name=self.normalized_name,
            description=self.description,
            attributes=self.attribute_values(),
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            updated_by=self.updated_by,
            deleted_at=as_utc(self.deleted_at),
            deleted_by=self.deleted_by,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, project_id={self.project_id}, name={self.name!r})"


class CapabilitySQL(NodeBase):
    """Business capability: what the business does, organised in levels L1 to L5."""
    __tablename__ = "capabilities"
    KIND = EntityKind.CAPABILITY
    ATTRIBUTES = ("level", "parent_id", "maturity_level")

    level = mapped_column(Integer, nullable=False)
    parent_id = mapped_column(Integer, nullable=True, index=True)
    maturity_level = mapped_column(String(50), nullable=True)


class ApplicationSQL(NodeBase):
    __tablename__ = "applications"
    KIND = EntityKind.APPLICATION
    ATTRIBUTES = ("vendor", "version", "lifecycle", "category", "criticality")

    vendor = mapped_column(String(255), nullable=True)
    version = mapped_column(String(50), nullable=True)
    lifecycle = mapped_column(String(20), nullable=False, default="run")
    category = mapped_column(String(100), nullable=True)
    criticality = mapped_column(String(20), nullable=True, default="medium")


class ProcessSQL(NodeBase):
    __tablename__ = "processes"
    KIND = EntityKind.PROCESS
    ATTRIBUTES = ("process_type", "automation_level")

    process_type = mapped_column(String(100), nullable=True)
    automation_level = mapped_column(String(50), nullable=True)


class DataEntitySQL(NodeBase):
    __tablename__ = "data_entities"
    KIND = EntityKind.DATA_ENTITY
    ATTRIBUTES = ("classification", "sensitivity")

    classification = mapped_column(String(100), nullable=True)
    sensitivity = mapped_column(String(20), nullable=True, default="internal")


class RequirementSQL(NodeBase):
    __tablename__ = "requirements"
    KIND = EntityKind.REQUIREMENT
    ATTRIBUTES = ("requirement_type", "priority", "status", "source")

    requirement_type = mapped_column(String(50), nullable=False)
    priority = mapped_column(String(20), nullable=True, default="medium")
    status = mapped_column(String(20), nullable=True, default="proposed")
    source = mapped_column(String(255), nullable=True)


class RelationshipSQL(Base):
    """Directed, typed edge between two nodes of the same project."""
    __tablename__ = "relationships"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id = mapped_column(Integer, nullable=False, index=True)

    source_kind = mapped_column(String(50), nullable=False)
    source_id = mapped_column(Integer, nullable=False)
    relationship_kind = mapped_column(String(100), nullable=False)
    target_kind = mapped_column(String(50), nullable=False)
    target_id = mapped_column(Integer, nullable=False)
    description = mapped_column(Text, nullable=True)

    created_by = mapped_column(String(255), nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False)
    # No code path mutates relationships, so this stays equal to created_at
    updated_at = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index(
            "uq_relationships_active_edge",
            "project_id", "source_kind", "source_id",
            "relationship_kind", "target_kind", "target_id",
            unique=True,
            sqlite_where=text(ACTIVE_ROWS),
            postgresql_where=text(ACTIVE_ROWS),
        ),
        Index("ix_relationships_source", "project_id", "source_kind", "source_id"),
        Index("ix_relationships_target", "project_id", "target_kind", "target_id"),
        Index("ix_relationships_project_deleted", "project_id", "deleted_at"),
    )

    def to_record(self) -> RelationshipRecord:
        return RelationshipRecord(
            id=self.id,
            project_id=self.project_id,
            source_kind=EntityKind(self.source_kind),
            source_id=self.source_id,
            target_kind=EntityKind(self.target_kind),
            target_id=self.target_id,
            relationship_kind=RelationshipKind(self.relationship_kind),
            description=self.description,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            deleted_at=as_utc(self.deleted_at),
            deleted_by=self.deleted_by,
        )

    def __repr__(self) -> str:
        return (
            f"RelationshipSQL(id={self.id}, {self.source_kind}/{self.source_id} "
            f"{self.relationship_kind} {self.target_kind}/{self.target_id})"
        )


NODE_TABLES: Tuple[type, ...] = (CapabilitySQL, ApplicationSQL, ProcessSQL, DataEntitySQL, RequirementSQL)
