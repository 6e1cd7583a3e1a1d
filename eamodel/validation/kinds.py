"""
Entity type registry.

Closed lookup from every EntityKind to its backing table, its input model and
its user-facing labels. The table is checked for exhaustiveness at import
time, so adding a kind to the enum without registering it fails immediately
rather than on the first request that uses it.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Type, Union

from eamodel.errors import InvalidEntityTypeError
from eamodel.models import (
    ApplicationInput,
    CapabilityInput,
    DataEntityInput,
    EntityKind,
    NodeInput,
    ProcessInput,
    RequirementInput,
)
from eamodel.storage.sql_models import (
    ApplicationSQL,
    CapabilitySQL,
    DataEntitySQL,
    NodeBase,
    ProcessSQL,
    RequirementSQL,
)


@dataclass(frozen=True)
class KindSpec:
    """Everything the engine needs to know about one entity kind."""
    kind: EntityKind
    table: Type[NodeBase]
    input_model: Type[NodeInput]
    display_name: str
    description: str

    @property
    def table_name(self) -> str:
        return self.table.__tablename__

    @property
    def attributes(self) -> tuple:
        return self.table.ATTRIBUTES


_KIND_SPECS: Dict[EntityKind, KindSpec] = {
    EntityKind.CAPABILITY: KindSpec(
        kind=EntityKind.CAPABILITY,
        table=CapabilitySQL,
        input_model=CapabilityInput,
        display_name="Business Capability",
        description="A particular ability or capacity that a business may possess or exchange",
    ),
    EntityKind.APPLICATION: KindSpec(
        kind=EntityKind.APPLICATION,
        table=ApplicationSQL,
        input_model=ApplicationInput,
        display_name="Application",
        description="A deployed and operational IT system that supports business functions",
    ),
    EntityKind.PROCESS: KindSpec(
        kind=EntityKind.PROCESS,
        table=ProcessSQL,
        input_model=ProcessInput,
        display_name="Business Process",
        description="A collection of related, structured activities that produce a specific service or product",
    ),
    EntityKind.DATA_ENTITY: KindSpec(
        kind=EntityKind.DATA_ENTITY,
        table=DataEntitySQL,
        input_model=DataEntityInput,
        display_name="Data Entity",
        description="An encapsulation of data that is recognized by a business domain expert",
    ),
    EntityKind.REQUIREMENT: KindSpec(
        kind=EntityKind.REQUIREMENT,
        table=RequirementSQL,
        input_model=RequirementInput,
        display_name="Requirement",
        description="A statement of need that must be met by a particular architecture or work package",
    ),
}

_missing = [kind.value for kind in EntityKind if kind not in _KIND_SPECS]
if _missing:
    raise RuntimeError(f"Entity kinds without a registry entry: {', '.join(_missing)}")
for _kind, _spec in _KIND_SPECS.items():
    if _spec.kind is not _kind or _spec.table.KIND is not _kind:
        raise RuntimeError(f"Registry entry for {_kind.value} is wired to the wrong kind")

# Tags used by older import files for the same kinds
_KIND_ALIASES: Dict[str, EntityKind] = {
    "businessCapability": EntityKind.CAPABILITY,
    "businessProcess": EntityKind.PROCESS,
    "dataEntity": EntityKind.DATA_ENTITY,
}

VALID_KIND_TAGS: List[str] = [kind.value for kind in EntityKind]


def is_valid_kind(value: Union[EntityKind, str]) -> bool:
    try:
        parse_kind(value)
    except InvalidEntityTypeError:
        return False
    return True


def parse_kind(value: Union[EntityKind, str]) -> EntityKind:
    """
    Resolve a kind tag to an EntityKind.

    Raises:
        InvalidEntityTypeError: If the tag is not a registered kind
    """
    if isinstance(value, EntityKind):
        return value
    if isinstance(value, str):
        if value in _KIND_ALIASES:
            return _KIND_ALIASES[value]
        try:
            return EntityKind(value)
        except ValueError:
            pass
    raise InvalidEntityTypeError(value, VALID_KIND_TAGS)


def get_kind_spec(value: Union[EntityKind, str]) -> KindSpec:
    return _KIND_SPECS[parse_kind(value)]


def all_kind_specs() -> List[KindSpec]:
    return [_KIND_SPECS[kind] for kind in EntityKind]


def display_name(value: Union[EntityKind, str]) -> str:
    return get_kind_spec(value).display_name


def kind_description(value: Union[EntityKind, str]) -> str:
    return get_kind_spec(value).description


def kind_from_table_name(table_name: str) -> Optional[EntityKind]:
    """Map a table name (e.g. "data_entities") back to its kind, or None."""
    for spec in _KIND_SPECS.values():
        if spec.table_name == table_name:
            return spec.kind
    return None


def table_name_for_kind(value: Union[EntityKind, str]) -> str:
    return get_kind_spec(value).table_name
