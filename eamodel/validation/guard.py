"""
Duplicate name guard.

The check here is a best-effort fast path that yields a friendly error with
name suggestions. Concurrent writers can race past it; the partial unique index
on each node table is what actually holds the invariant, and its violation is
mapped back to the same DuplicateNameError by translate_integrity_error().
"""
import logging
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eamodel.errors import DuplicateNameError
from eamodel.models import EntityKind
from eamodel.storage.store import is_unique_violation
from eamodel.validation.kinds import get_kind_spec
from eamodel.validation.names import escape_like, suggest_alternative_names


class DuplicateGuard:
    """Per-project, per-kind uniqueness of normalized names among active nodes."""
    _logger = logging.getLogger("DuplicateGuard")

    def __init__(self, suggestion_count: int = 3) -> None:
        self.suggestion_count = suggestion_count

    def check_unique(
        self,
        session: Session,
        project_id: int,
        kind: Union[EntityKind, str],
        normalized_name: str,
        exclude_id: Optional[int] = None
    ) -> None:
        """
        Raise if an active node of `kind` in `project_id` already uses the key.

        Args:
            session: Session of the transaction the write will happen in
            project_id: Project scope
            kind: Node kind
            normalized_name: Key to check
            exclude_id: Id of the node being updated, which may keep its own key

        Raises:
            DuplicateNameError: If another active node holds the key
        """
        spec = get_kind_spec(kind)
        table = spec.table
        query = select(table.id).where(
            table.project_id == project_id,
            table.normalized_name == normalized_name,
            table.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.where(table.id != exclude_id)

        existing = session.execute(query.limit(1)).scalar_one_or_none()
        if existing is None:
            return

        suggestions = self.suggest(session, project_id, spec.kind, normalized_name)
        self._logger.error(
            f"Duplicate {spec.kind.value} name {normalized_name!r} in project {project_id} (held by id {existing})"
        )
        raise DuplicateNameError(normalized_name, project_id, spec.kind.value, suggestions)

    def suggest(
        self,
        session: Session,
        project_id: int,
        kind: Union[EntityKind, str],
        normalized_name: str
    ) -> List[str]:
        """Free alternative keys built by appending a counter to the colliding key."""
        table = get_kind_spec(kind).table
        escaped = escape_like(normalized_name)
        taken = set(session.execute(
            select(table.normalized_name).where(
                table.project_id == project_id,
                table.deleted_at.is_(None),
                table.normalized_name.like(f"{escaped}%", escape="\\"),
            )
        ).scalars())
        return suggest_alternative_names(normalized_name, taken, self.suggestion_count)

    def translate_integrity_error(
        self,
        error: IntegrityError,
        project_id: int,
        kind: Union[EntityKind, str],
        normalized_name: str
    ) -> Exception:
        """
        Map a unique-index violation from the store to DuplicateNameError.

        Other integrity errors are returned unchanged so the caller re-raises them.
        """
        if not is_unique_violation(error):
            return error
        kind_tag = get_kind_spec(kind).kind.value
        self._logger.error(
            f"Storage rejected duplicate {kind_tag} name {normalized_name!r} in project {project_id}"
        )
        return DuplicateNameError(normalized_name, project_id, kind_tag)
