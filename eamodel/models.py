"""
Domain models for the meta-model engine.

This module provides:
1. The closed enums of entity kinds and relationship kinds
2. Per-kind input models validating node creation payloads
3. Read-side records returned by listings and lookups
4. Small result models returned by mutating operations
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityKind(str, Enum):
    CAPABILITY = "capability"
    APPLICATION = "application"
    PROCESS = "process"
    DATA_ENTITY = "data_entity"
    REQUIREMENT = "requirement"


class RelationshipKind(str, Enum):
    SUPPORTS = "SUPPORTS"
    USES = "USES"
    REALIZES = "REALIZES"
    IMPLEMENTS = "IMPLEMENTS"
    DEPENDS_ON = "DEPENDS_ON"
    TRIGGERS = "TRIGGERS"
    FLOWS_TO = "FLOWS_TO"
    ORIGINATES_FROM = "ORIGINATES_FROM"
    CONTAINS = "CONTAINS"


class ApplicationLifecycle(str, Enum):
    PLAN = "plan"
    BUILD = "build"
    RUN = "run"
    RETIRE = "retire"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Sensitivity(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


class RequirementStatus(str, Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    IMPLEMENTED = "implemented"
    VERIFIED = "verified"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


##############################
# Node inputs
##############################

class NodeInput(BaseModel):
    """
    Fields shared by every node kind on creation.

    Kind-specific subclasses add their attributes; anything not declared is
    rejected so a payload meant for one kind cannot silently drop fields on
    another.
    """
    model_config = ConfigDict(extra="forbid", use_enum_values=True, validate_default=True)

    project_id: int
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    created_by: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name is required")
        return value


class CapabilityInput(NodeInput):
    level: int = Field(ge=1, le=5)
    parent_id: Optional[int] = None
    maturity_level: Optional[str] = Field(default=None, max_length=50)


class ApplicationInput(NodeInput):
    vendor: Optional[str] = Field(default=None, max_length=255)
    version: Optional[str] = Field(default=None, max_length=50)
    lifecycle: ApplicationLifecycle = ApplicationLifecycle.RUN
    category: Optional[str] = Field(default=None, max_length=100)
    criticality: Priority = Priority.MEDIUM


class ProcessInput(NodeInput):
    process_type: Optional[str] = Field(default=None, max_length=100)
    automation_level: Optional[str] = Field(default=None, max_length=50)


class DataEntityInput(NodeInput):
    classification: Optional[str] = Field(default=None, max_length=100)
    sensitivity: Sensitivity = Sensitivity.INTERNAL


class RequirementInput(NodeInput):
    requirement_type: str = Field(min_length=1, max_length=50)
    priority: Priority = Priority.MEDIUM
    status: RequirementStatus = RequirementStatus.PROPOSED
    source: Optional[str] = Field(default=None, max_length=255)


# Fields that an update patch may never touch
IMMUTABLE_NODE_FIELDS = frozenset({"project_id", "created_by"})


##############################
# Records
##############################

class NodeRecord(BaseModel):
    """Read-side view of a stored node."""
    kind: EntityKind
    id: int
    project_id: int
    name: str
    normalized_name: str
    description: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    created_by: str
    created_at: datetime
    updated_at: datetime
    updated_by: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


class RelationshipRecord(BaseModel):
    """Read-side view of a stored relationship."""
    id: int
    project_id: int
    source_kind: EntityKind
    source_id: int
    target_kind: EntityKind
    target_id: int
    relationship_kind: RelationshipKind
    description: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


@dataclass(frozen=True)
class NodeRef:
    """Reference to a node by kind tag and per-kind id."""
    kind: Union[EntityKind, str]
    id: int


##############################
# Results
##############################

class CreatedNode(BaseModel):
    id: int
    normalized_name: str


class CreatedRelationship(BaseModel):
    id: int


class OperationResult(BaseModel):
    success: bool = True
    affected: int = 0
