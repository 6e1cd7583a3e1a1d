"""
Relationship type matrix validation.

Rules are written per relationship kind (allowed sources x allowed targets) and
compiled into a directional lookup keyed by the ordered (source kind, target
kind) pair. Nothing is symmetric: an application may REALIZE a capability, but
a capability may not REALIZE an application unless a rule says so.
"""
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from eamodel.errors import RelationshipMatrixError, SelfReferenceError
from eamodel.models import EntityKind, RelationshipKind
from eamodel.validation.kinds import parse_kind

KindPair = Tuple[EntityKind, EntityKind]


@dataclass(frozen=True)
class RelationshipRule:
    sources: FrozenSet[EntityKind]
    targets: FrozenSet[EntityKind]
    description: str


def _rule(sources: Iterable[EntityKind], targets: Iterable[EntityKind], description: str) -> RelationshipRule:
    return RelationshipRule(frozenset(sources), frozenset(targets), description)


_CAP = EntityKind.CAPABILITY
_APP = EntityKind.APPLICATION
_PROC = EntityKind.PROCESS
_DATA = EntityKind.DATA_ENTITY
_REQ = EntityKind.REQUIREMENT

DEFAULT_RULES: Dict[RelationshipKind, RelationshipRule] = {
    RelationshipKind.SUPPORTS: _rule(
        [_APP, _PROC], [_CAP, _REQ], "Source enables or implements target"),
    RelationshipKind.USES: _rule(
        [_APP, _PROC, _CAP], [_APP, _DATA], "Source uses or consumes target"),
    RelationshipKind.REALIZES: _rule(
        [_APP, _PROC], [_CAP, _REQ], "Source implements or realizes target (logical to physical)"),
    RelationshipKind.IMPLEMENTS: _rule(
        [_APP, _PROC], [_REQ], "Source implements requirement"),
    RelationshipKind.DEPENDS_ON: _rule(
        [_APP, _PROC, _CAP], [_APP, _PROC, _DATA], "Source requires target to function"),
    RelationshipKind.TRIGGERS: _rule(
        [_PROC, _APP], [_PROC], "Source triggers or initiates target"),
    RelationshipKind.FLOWS_TO: _rule(
        [_APP, _PROC], [_APP, _PROC, _DATA], "Data or control flows from source to target"),
    RelationshipKind.ORIGINATES_FROM: _rule(
        [_DATA], [_APP, _PROC], "Data entity is created or owned by source"),
    RelationshipKind.CONTAINS: _rule(
        [_CAP, _PROC], [_CAP, _PROC, _APP], "Hierarchical containment"),
}


def parse_relationship_kind(value: Union[RelationshipKind, str]) -> Optional[RelationshipKind]:
    """Resolve a relationship tag, or None if it is not a known kind."""
    if isinstance(value, RelationshipKind):
        return value
    try:
        return RelationshipKind(str(value).upper())
    except ValueError:
        return None


class RelationshipMatrix:
    """
    Directional table mapping (source kind, target kind) to the set of legal
    relationship kinds.

    Args:
        rules: Per-relationship-kind rules; defaults to DEFAULT_RULES
    """
    _logger = logging.getLogger("RelationshipMatrix")

    def __init__(self, rules: Optional[Mapping[RelationshipKind, RelationshipRule]] = None) -> None:
        self._rules: Dict[RelationshipKind, RelationshipRule] = dict(DEFAULT_RULES if rules is None else rules)
        self._pairs: Dict[KindPair, FrozenSet[RelationshipKind]] = self._compile(self._rules)

    @staticmethod
    def _compile(rules: Mapping[RelationshipKind, RelationshipRule]) -> Dict[KindPair, FrozenSet[RelationshipKind]]:
        pairs: Dict[KindPair, set] = {}
        for relationship_kind, rule in rules.items():
            for source in rule.sources:
                for target in rule.targets:
                    pairs.setdefault((source, target), set()).add(relationship_kind)
        return {pair: frozenset(kinds) for pair, kinds in pairs.items()}

    @property
    def pairs(self) -> Dict[KindPair, FrozenSet[RelationshipKind]]:
        return dict(self._pairs)

    def allowed_relationship_kinds(
        self,
        source_kind: Union[EntityKind, str],
        target_kind: Union[EntityKind, str]
    ) -> List[RelationshipKind]:
        """Legal relationship kinds from source_kind to target_kind, in enum order."""
        allowed = self._pairs.get((parse_kind(source_kind), parse_kind(target_kind)), frozenset())
        return [kind for kind in RelationshipKind if kind in allowed]

    def allowed_target_kinds(
        self,
        source_kind: Union[EntityKind, str],
        relationship_kind: Union[RelationshipKind, str]
    ) -> List[EntityKind]:
        source = parse_kind(source_kind)
        rule = self._rules.get(parse_relationship_kind(relationship_kind))
        if rule is None or source not in rule.sources:
            return []
        return [kind for kind in EntityKind if kind in rule.targets]

    def allowed_source_kinds(
        self,
        target_kind: Union[EntityKind, str],
        relationship_kind: Union[RelationshipKind, str]
    ) -> List[EntityKind]:
        target = parse_kind(target_kind)
        rule = self._rules.get(parse_relationship_kind(relationship_kind))
        if rule is None or target not in rule.targets:
            return []
        return [kind for kind in EntityKind if kind in rule.sources]

    def describe(self, relationship_kind: Union[RelationshipKind, str]) -> Optional[str]:
        rule = self._rules.get(parse_relationship_kind(relationship_kind))
        return rule.description if rule else None

    def is_relationship_allowed(
        self,
        source_kind: Union[EntityKind, str],
        target_kind: Union[EntityKind, str],
        relationship_kind: Union[RelationshipKind, str]
    ) -> bool:
        relationship = parse_relationship_kind(relationship_kind)
        if relationship is None:
            return False
        return relationship in self._pairs.get((parse_kind(source_kind), parse_kind(target_kind)), frozenset())

    def validate_relationship(
        self,
        source_kind: Union[EntityKind, str],
        source_id: int,
        target_kind: Union[EntityKind, str],
        target_id: int,
        relationship_kind: Union[RelationshipKind, str]
    ) -> Tuple[EntityKind, EntityKind, RelationshipKind]:
        """
        Validate a relationship request.

        Returns:
            The resolved (source kind, target kind, relationship kind)

        Raises:
            InvalidEntityTypeError: If either kind is not registered
            SelfReferenceError: If source and target are the same node
            RelationshipMatrixError: If the triple is not in the matrix
        """
        source = parse_kind(source_kind)
        target = parse_kind(target_kind)

        if source is target and source_id == target_id:
            self._logger.error(f"Rejected self-referencing relationship on {source.value} {source_id}")
            raise SelfReferenceError(source.value, source_id)

        allowed = self.allowed_relationship_kinds(source, target)
        relationship = parse_relationship_kind(relationship_kind)
        if relationship is None or relationship not in allowed:
            tag = relationship.value if relationship is not None else str(relationship_kind)
            self._logger.error(
                f"Rejected {source.value} {tag} {target.value}; allowed: {[k.value for k in allowed]}"
            )
            raise RelationshipMatrixError(source.value, target.value, tag, [k.value for k in allowed])

        return source, target, relationship


DEFAULT_MATRIX = RelationshipMatrix()
