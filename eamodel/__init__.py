"""
eamodel - meta-model integrity engine for enterprise-architecture documentation.

Main components:
- MetaModelEngine: create/update/delete/list operations enforcing the invariants
- BulkOperations: batch import and batch deletes
- MetaModelStore: SQLAlchemy-backed store with transactional sessions
- RelationshipMatrix: directional table of legal relationship kinds
- AuditTrail: change history reconstructed from lifecycle columns
- RuleChecker: rule-based checks reporting violations in the active model
"""
from eamodel.audit import (
    AuditEvent,
    AuditPage,
    AuditTrail,
    NodeCreated,
    NodeDeleted,
    NodeUpdated,
    RelationshipCreated,
    RelationshipDeleted,
)
from eamodel.bulk import BulkOperations, BulkResult, ImportReport
from eamodel.config import EngineSettings, configure_logging
from eamodel.engine import MetaModelEngine
from eamodel.errors import (
    DuplicateNameError,
    DuplicateRelationshipError,
    InvalidEntityTypeError,
    InvalidInputError,
    MetaModelError,
    NotFoundError,
    RelationshipMatrixError,
    SelfReferenceError,
    StorageUnavailableError,
)
from eamodel.models import (
    AuditAction,
    CreatedNode,
    CreatedRelationship,
    EntityKind,
    NodeRecord,
    NodeRef,
    OperationResult,
    RelationshipKind,
    RelationshipRecord,
)
from eamodel.storage import MetaModelStore
from eamodel.validation import (
    DuplicateGuard,
    RelationshipMatrix,
    RuleChecker,
    RuleSeverity,
    ValidationReport,
    ValidationRule,
    Violation,
    normalize_name,
)

__version__ = "0.1.0"
