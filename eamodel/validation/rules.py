"""
Rule-based model validation.

Rules are checked against the active nodes and relationships of one project
and report violations rather than raising. Each rule type is a variant of a
pydantic tagged union discriminated by `rule_type`:

- min_relationships / max_relationships: relationship count per node, optionally
  restricted to one relationship kind
- required_relationship: at least one relationship of a given kind
- no_circular_dependencies: node lies on a cycle of outgoing relationships
- no_orphaned_entities: node has no relationship at all
- naming_convention: name must match a regular expression
- attribute_completeness: listed fields must be populated

Example Usage:
```python
report = engine.run_validation(1, [
    {"id": "apps-support-something", "rule_type": "required_relationship",
     "kind": "application", "relationship_kind": "SUPPORTS"},
    {"id": "no-orphans", "rule_type": "no_orphaned_entities"},
])
for violation in report.violations:
    print(violation.message)
```
"""
import logging
import re
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eamodel.errors import InvalidInputError
from eamodel.models import EntityKind, RelationshipKind
from eamodel.storage.sql_models import NodeBase, RelationshipSQL
from eamodel.validation.kinds import get_kind_spec

NodeKey = Tuple[EntityKind, int]


class RuleSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


##############################
# Rule variants
##############################

class _RuleBase(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    severity: RuleSeverity = RuleSeverity.WARNING
    enabled: bool = True


class MinRelationshipsRule(_RuleBase):
    rule_type: Literal["min_relationships"] = "min_relationships"
    kind: EntityKind
    min_count: int = Field(ge=0)
    relationship_kind: Optional[RelationshipKind] = None


class MaxRelationshipsRule(_RuleBase):
    rule_type: Literal["max_relationships"] = "max_relationships"
    kind: EntityKind
    max_count: int = Field(ge=0)
    relationship_kind: Optional[RelationshipKind] = None


class RequiredRelationshipRule(_RuleBase):
    rule_type: Literal["required_relationship"] = "required_relationship"
    kind: EntityKind
    relationship_kind: RelationshipKind


class NoCircularDependenciesRule(_RuleBase):
    """Empty `relationship_kinds` follows every relationship kind."""
    rule_type: Literal["no_circular_dependencies"] = "no_circular_dependencies"
    kinds: List[EntityKind] = Field(default_factory=lambda: list(EntityKind))
    relationship_kinds: List[RelationshipKind] = Field(default_factory=list)


class NoOrphanedEntitiesRule(_RuleBase):
    rule_type: Literal["no_orphaned_entities"] = "no_orphaned_entities"
    kinds: List[EntityKind] = Field(default_factory=lambda: list(EntityKind))


class NamingConventionRule(_RuleBase):
    """`pattern` is searched anywhere in the name; anchor it to match the whole name."""
    rule_type: Literal["naming_convention"] = "naming_convention"
    kind: EntityKind
    pattern: str = Field(min_length=1)
    description: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid regular expression: {e}") from None
        return value


class AttributeCompletenessRule(_RuleBase):
    rule_type: Literal["attribute_completeness"] = "attribute_completeness"
    kind: EntityKind
    required_fields: List[str] = Field(min_length=1)


ValidationRule = Annotated[
    Union[
        MinRelationshipsRule,
        MaxRelationshipsRule,
        RequiredRelationshipRule,
        NoCircularDependenciesRule,
        NoOrphanedEntitiesRule,
        NamingConventionRule,
        AttributeCompletenessRule,
    ],
    Field(discriminator="rule_type"),
]


class Violation(BaseModel):
    rule_id: str
    rule_type: str
    severity: RuleSeverity
    kind: EntityKind
    node_id: int
    node_name: str
    message: str
    expected: str
    actual: str
    suggestions: List[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    project_id: int
    checked_at: datetime
    total_rules: int
    total_violations: int
    violations_by_rule: Dict[str, int] = Field(default_factory=dict)
    violations_by_severity: Dict[str, int] = Field(default_factory=dict)
    violations: List[Violation] = Field(default_factory=list)


##############################
# Graph helpers
##############################

def nodes_on_cycles(edges: Iterable[Tuple[NodeKey, NodeKey]]) -> Set[NodeKey]:
    """Nodes from which some outgoing path leads back to the node itself."""
    graph: Dict[NodeKey, Set[NodeKey]] = defaultdict(set)
    for source, target in edges:
        graph[source].add(target)

    on_cycle: Set[NodeKey] = set()
    for start in list(graph):
        stack = list(graph[start])
        seen: Set[NodeKey] = set()
        while stack:
            node = stack.pop()
            if node == start:
                on_cycle.add(start)
                break
            if node in seen:
                continue
            seen.add(node)
            stack.extend(graph.get(node, ()))
    return on_cycle


def _plural(count: int) -> str:
    return "relationship" if count == 1 else "relationships"


##############################
# Checker
##############################

class RuleChecker:
    """Runs validation rules over one project's active records."""
    _logger = logging.getLogger("RuleChecker")

    def run(
        self,
        session: Session,
        project_id: int,
        rules: Iterable[ValidationRule],
        now: datetime
    ) -> ValidationReport:
        """
        Check every enabled rule and collect the violations.

        Args:
            session: Session to read from
            project_id: Project scope
            rules: Parsed rules; disabled rules are skipped and not counted
            now: Timestamp recorded on the report

        Returns:
            ValidationReport with violations in rule order, then node order
        """
        active = [rule for rule in rules if rule.enabled]
        violations: List[Violation] = []
        by_rule: Dict[str, int] = {}

        for rule in active:
            found = self.check(session, project_id, rule)
            by_rule[rule.id] = len(found)
            violations.extend(found)

        by_severity: Dict[str, int] = {}
        for violation in violations:
            by_severity[violation.severity.value] = by_severity.get(violation.severity.value, 0) + 1

        self._logger.info(
            f"Checked {len(active)} rule(s) on project {project_id}: {len(violations)} violation(s)"
        )
        return ValidationReport(
            project_id=project_id,
            checked_at=now,
            total_rules=len(active),
            total_violations=len(violations),
            violations_by_rule=by_rule,
            violations_by_severity=by_severity,
            violations=violations,
        )

    def check(self, session: Session, project_id: int, rule: ValidationRule) -> List[Violation]:
        if isinstance(rule, MinRelationshipsRule):
            return self._check_min(session, project_id, rule)
        if isinstance(rule, MaxRelationshipsRule):
            return self._check_max(session, project_id, rule)
        if isinstance(rule, RequiredRelationshipRule):
            return self._check_required(session, project_id, rule)
        if isinstance(rule, NoCircularDependenciesRule):
            return self._check_cycles(session, project_id, rule)
        if isinstance(rule, NoOrphanedEntitiesRule):
            return self._check_orphans(session, project_id, rule)
        if isinstance(rule, NamingConventionRule):
            return self._check_naming(session, project_id, rule)
        if isinstance(rule, AttributeCompletenessRule):
            return self._check_attributes(session, project_id, rule)
        raise InvalidInputError(f"Unsupported rule type: {type(rule).__name__}")

    ##############################
    # Queries
    ##############################

    @staticmethod
    def _active_nodes(session: Session, kind: EntityKind, project_id: int) -> List[NodeBase]:
        table = get_kind_spec(kind).table
        return list(session.execute(
            select(table)
            .where(table.project_id == project_id, table.deleted_at.is_(None))
            .order_by(table.id)
        ).scalars())

    @staticmethod
    def _relationship_counts(
        session: Session,
        project_id: int,
        kind: EntityKind,
        relationship_kind: Optional[RelationshipKind] = None
    ) -> Dict[int, int]:
        """Active relationships per node id of `kind`, counting both directions."""
        counts: Dict[int, int] = defaultdict(int)
        for kind_column, id_column in (
            (RelationshipSQL.source_kind, RelationshipSQL.source_id),
            (RelationshipSQL.target_kind, RelationshipSQL.target_id),
        ):
            query = select(id_column, func.count()).where(
                RelationshipSQL.project_id == project_id,
                RelationshipSQL.deleted_at.is_(None),
                kind_column == kind.value,
            )
            if relationship_kind is not None:
                query = query.where(RelationshipSQL.relationship_kind == relationship_kind.value)
            for node_id, count in session.execute(query.group_by(id_column)):
                counts[node_id] += count
        return counts

    ##############################
    # Rules
    ##############################

    @staticmethod
    def _violation(rule: ValidationRule, kind: EntityKind, row: NodeBase, **details) -> Violation:
        return Violation(
            rule_id=rule.id,
            rule_type=rule.rule_type,
            severity=rule.severity,
            kind=kind,
            node_id=row.id,
            node_name=row.name,
            **details,
        )

    def _check_min(self, session: Session, project_id: int, rule: MinRelationshipsRule) -> List[Violation]:
        counts = self._relationship_counts(session, project_id, rule.kind, rule.relationship_kind)
        what = f"{rule.relationship_kind.value} relationship(s)" if rule.relationship_kind else "relationship(s)"
        violations = []
        for row in self._active_nodes(session, rule.kind, project_id):
            count = counts.get(row.id, 0)
            if count < rule.min_count:
                violations.append(self._violation(
                    rule, rule.kind, row,
                    message=f"{row.name} has only {count} {_plural(count)}, expected at least {rule.min_count}",
                    expected=f"At least {rule.min_count} {what}",
                    actual=f"{count} {what}",
                    suggestions=[
                        f"Add {rule.min_count - count} more {what} to meet the minimum",
                        "Review similar entities to identify potential relationships",
                    ],
                ))
        return violations

    def _check_max(self, session: Session, project_id: int, rule: MaxRelationshipsRule) -> List[Violation]:
        counts = self._relationship_counts(session, project_id, rule.kind, rule.relationship_kind)
        what = f"{rule.relationship_kind.value} relationship(s)" if rule.relationship_kind else "relationship(s)"
        violations = []
        for row in self._active_nodes(session, rule.kind, project_id):
            count = counts.get(row.id, 0)
            if count > rule.max_count:
                violations.append(self._violation(
                    rule, rule.kind, row,
                    message=f"{row.name} has {count} {_plural(count)}, exceeds maximum of {rule.max_count}",
                    expected=f"At most {rule.max_count} {what}",
                    actual=f"{count} {what}",
                    suggestions=[
                        f"Remove {count - rule.max_count} {what} to meet the maximum",
                        "Consider splitting this entity into several smaller ones",
                    ],
                ))
        return violations

    def _check_required(self, session: Session, project_id: int, rule: RequiredRelationshipRule) -> List[Violation]:
        counts = self._relationship_counts(session, project_id, rule.kind, rule.relationship_kind)
        tag = rule.relationship_kind.value
        return [
            self._violation(
                rule, rule.kind, row,
                message=f"{row.name} is missing required relationship type: {tag}",
                expected=f"At least one {tag} relationship",
                actual=f"No {tag} relationships",
                suggestions=[f"Add a {tag} relationship to this entity"],
            )
            for row in self._active_nodes(session, rule.kind, project_id)
            if counts.get(row.id, 0) == 0
        ]

    def _check_cycles(self, session: Session, project_id: int, rule: NoCircularDependenciesRule) -> List[Violation]:
        query = select(
            RelationshipSQL.source_kind, RelationshipSQL.source_id,
            RelationshipSQL.target_kind, RelationshipSQL.target_id,
        ).where(RelationshipSQL.project_id == project_id, RelationshipSQL.deleted_at.is_(None))
        if rule.relationship_kinds:
            query = query.where(RelationshipSQL.relationship_kind.in_([k.value for k in rule.relationship_kinds]))

        edges = [
            ((EntityKind(source_kind), source_id), (EntityKind(target_kind), target_id))
            for source_kind, source_id, target_kind, target_id in session.execute(query)
        ]
        on_cycle = nodes_on_cycles(edges)
        self._logger.debug(f"{len(on_cycle)} node(s) on cycles among {len(edges)} edge(s) in project {project_id}")

        violations = []
        for kind in dict.fromkeys(rule.kinds):
            for row in self._active_nodes(session, kind, project_id):
                if (kind, row.id) in on_cycle:
                    violations.append(self._violation(
                        rule, kind, row,
                        message=f"{row.name} is part of a circular dependency chain",
                        expected="No circular dependencies",
                        actual="Circular dependency detected",
                        suggestions=[
                            "Review the relationship chain and remove circular references",
                            "Consider restructuring the architecture to eliminate cycles",
                        ],
                    ))
        return violations

    def _check_orphans(self, session: Session, project_id: int, rule: NoOrphanedEntitiesRule) -> List[Violation]:
        violations = []
        for kind in dict.fromkeys(rule.kinds):
            counts = self._relationship_counts(session, project_id, kind)
            for row in self._active_nodes(session, kind, project_id):
                if counts.get(row.id, 0) == 0:
                    violations.append(self._violation(
                        rule, kind, row,
                        message=f"{row.name} has no relationships (orphaned entity)",
                        expected="At least one relationship",
                        actual="No relationships",
                        suggestions=[
                            "Add relationships to connect this entity to the architecture",
                            "Consider whether this entity is still relevant or should be deleted",
                        ],
                    ))
        return violations

    def _check_naming(self, session: Session, project_id: int, rule: NamingConventionRule) -> List[Violation]:
        regex = re.compile(rule.pattern)
        described = rule.description or rule.pattern
        return [
            self._violation(
                rule, rule.kind, row,
                message=f"{row.name} does not match naming convention: {described}",
                expected=f"Name matching pattern: {rule.pattern}",
                actual=f"Current name: {row.name}",
                suggestions=[f"Rename to follow the convention: {described}"],
            )
            for row in self._active_nodes(session, rule.kind, project_id)
            if not regex.search(row.name)
        ]

    def _check_attributes(self, session: Session, project_id: int, rule: AttributeCompletenessRule) -> List[Violation]:
        spec = get_kind_spec(rule.kind)
        known = ("description", *spec.attributes)
        unknown = [field for field in rule.required_fields if field not in known]
        if unknown:
            self._logger.error(f"Rule {rule.id} names unknown {spec.kind.value} fields {unknown}")
            raise InvalidInputError(
                f"Rule {rule.id}: unknown {spec.kind.value} fields {', '.join(unknown)}. "
                f"Known fields: {', '.join(known)}"
            )

        violations = []
        for row in self._active_nodes(session, rule.kind, project_id):
            missing = [field for field in rule.required_fields if getattr(row, field) in (None, "")]
            if missing:
                violations.append(self._violation(
                    rule, rule.kind, row,
                    message=f"{row.name} is missing required fields: {', '.join(missing)}",
                    expected=f"All required fields populated: {', '.join(rule.required_fields)}",
                    actual=f"Missing: {', '.join(missing)}",
                    suggestions=[f"Fill in the missing fields: {', '.join(missing)}"],
                ))
        return violations
