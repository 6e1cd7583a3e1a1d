"""
Meta-model validation: kind registry, name normalization, duplicate guard,
the relationship matrix and the rule-based model checks.
"""
from eamodel.validation.kinds import (
    KindSpec,
    VALID_KIND_TAGS,
    all_kind_specs,
    display_name,
    get_kind_spec,
    is_valid_kind,
    kind_description,
    kind_from_table_name,
    parse_kind,
    table_name_for_kind,
)
from eamodel.validation.names import (
    are_names_equivalent,
    extract_base_name,
    generate_unique_normalized_name,
    normalize_name,
    normalize_name_strict,
    suggest_alternative_names,
)
from eamodel.validation.matrix import (
    DEFAULT_MATRIX,
    DEFAULT_RULES,
    RelationshipMatrix,
    RelationshipRule,
    parse_relationship_kind,
)
from eamodel.validation.guard import DuplicateGuard
from eamodel.validation.names import escape_like
from eamodel.validation.rules import (
    AttributeCompletenessRule,
    MaxRelationshipsRule,
    MinRelationshipsRule,
    NamingConventionRule,
    NoCircularDependenciesRule,
    NoOrphanedEntitiesRule,
    RequiredRelationshipRule,
    RuleChecker,
    RuleSeverity,
    ValidationReport,
    ValidationRule,
    Violation,
    nodes_on_cycles,
)
