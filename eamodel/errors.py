"""
Error taxonomy for the meta-model integrity engine.

Every error raised by the engine derives from MetaModelError and exposes a
structured to_dict() so presentation or import layers can surface actionable
messages (legal relationship kinds, alternative names) without parsing text.
"""
from typing import Any, Dict, List, Optional, Sequence


class MetaModelError(Exception):
    """Base class for all engine errors."""
    code: str = "meta_model_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class DuplicateNameError(MetaModelError):
    """A normalized name already exists for the same project and kind."""
    code = "duplicate_name"

    def __init__(
        self,
        normalized_name: str,
        project_id: int,
        kind: str,
        suggestions: Optional[List[str]] = None
    ) -> None:
        self.normalized_name = normalized_name
        self.project_id = project_id
        self.kind = kind
        self.suggestions = list(suggestions or [])
        message = (
            f'Duplicate {kind} name: "{normalized_name}" already exists in project {project_id}. '
            "Please choose a different name."
        )
        if self.suggestions:
            message += f" Suggestions: {', '.join(self.suggestions)}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "normalized_name": self.normalized_name,
            "project_id": self.project_id,
            "kind": self.kind,
            "suggestions": self.suggestions,
        }


class DuplicateRelationshipError(MetaModelError):
    """An identical active relationship already exists in the project."""
    code = "duplicate_relationship"

    def __init__(
        self,
        project_id: int,
        source_kind: str,
        source_id: int,
        relationship_kind: str,
        target_kind: str,
        target_id: int
    ) -> None:
        self.project_id = project_id
        self.source_kind = source_kind
        self.source_id = source_id
        self.relationship_kind = relationship_kind
        self.target_kind = target_kind
        self.target_id = target_id
        super().__init__(
            f"Relationship {source_kind}/{source_id} {relationship_kind} {target_kind}/{target_id} "
            f"already exists in project {project_id}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "project_id": self.project_id,
            "source_kind": self.source_kind,
            "source_id": self.source_id,
            "relationship_kind": self.relationship_kind,
            "target_kind": self.target_kind,
            "target_id": self.target_id,
        }


class RelationshipMatrixError(MetaModelError):
    """The (source kind, relationship kind, target kind) triple is not legal."""
    code = "relationship_matrix"

    def __init__(
        self,
        source_kind: str,
        target_kind: str,
        relationship_kind: str,
        allowed: Sequence[str]
    ) -> None:
        self.source_kind = source_kind
        self.target_kind = target_kind
        self.relationship_kind = relationship_kind
        self.allowed = list(allowed)
        if self.allowed:
            hint = f"Allowed relationship kinds from {source_kind} to {target_kind}: {', '.join(self.allowed)}"
        else:
            hint = f"No relationship is allowed from {source_kind} to {target_kind}"
        super().__init__(
            f"Invalid relationship: {source_kind} cannot {relationship_kind} {target_kind}. {hint}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "source_kind": self.source_kind,
            "target_kind": self.target_kind,
            "relationship_kind": self.relationship_kind,
            "allowed": self.allowed,
        }


class InvalidEntityTypeError(MetaModelError):
    """The kind tag is not one of the registered entity kinds."""
    code = "invalid_entity_type"

    def __init__(self, invalid_type: Any, valid_types: Sequence[str]) -> None:
        self.invalid_type = invalid_type
        self.valid_types = list(valid_types)
        super().__init__(
            f'Invalid entity type: "{invalid_type}". Valid types are: {", ".join(self.valid_types)}'
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "invalid_type": str(self.invalid_type),
            "valid_types": self.valid_types,
        }


class SelfReferenceError(MetaModelError):
    """A relationship would connect a node to itself."""
    code = "self_reference"

    def __init__(self, kind: str, entity_id: int) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Cannot create relationship from an entity to itself: {kind} {entity_id}")

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "kind": self.kind, "id": self.entity_id}


class NotFoundError(MetaModelError):
    """The record does not exist in the project or is already inactive."""
    code = "not_found"

    def __init__(self, subject: str, entity_id: int, project_id: int) -> None:
        self.subject = subject
        self.entity_id = entity_id
        self.project_id = project_id
        super().__init__(f"{subject} {entity_id} not found in project {project_id}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "subject": self.subject,
            "id": self.entity_id,
            "project_id": self.project_id,
        }


class InvalidInputError(MetaModelError):
    """Input failed validation (field constraints, pagination, patch fields)."""
    code = "invalid_input"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class StorageUnavailableError(MetaModelError):
    """The relational store could not be reached. Fatal for the current operation."""
    code = "storage_unavailable"
