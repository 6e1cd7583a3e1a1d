"""
Tests for the entity type registry.
"""
import pytest

from eamodel.errors import InvalidEntityTypeError
from eamodel.models import CapabilityInput, EntityKind
from eamodel.storage.sql_models import CapabilitySQL, NODE_TABLES
from eamodel.validation.kinds import (
    VALID_KIND_TAGS,
    all_kind_specs,
    display_name,
    get_kind_spec,
    is_valid_kind,
    kind_from_table_name,
    parse_kind,
    table_name_for_kind,
)


def test_every_kind_is_registered():
    specs = all_kind_specs()
    assert [spec.kind for spec in specs] == list(EntityKind)
    assert {spec.table for spec in specs} == set(NODE_TABLES)


def test_parse_kind_accepts_tags_enums_and_aliases():
    assert parse_kind("capability") is EntityKind.CAPABILITY
    assert parse_kind(EntityKind.PROCESS) is EntityKind.PROCESS
    assert parse_kind("businessCapability") is EntityKind.CAPABILITY
    assert parse_kind("dataEntity") is EntityKind.DATA_ENTITY


@pytest.mark.parametrize("bad", ["widget", "Capability", "", None, 3])
def test_parse_kind_rejects_unknown(bad):
    with pytest.raises(InvalidEntityTypeError) as exc_info:
        parse_kind(bad)
    assert exc_info.value.valid_types == VALID_KIND_TAGS
    assert exc_info.value.to_dict()["code"] == "invalid_entity_type"


def test_is_valid_kind():
    assert is_valid_kind("requirement")
    assert not is_valid_kind("stakeholder")


def test_kind_spec_lookup():
    spec = get_kind_spec("capability")
    assert spec.table is CapabilitySQL
    assert spec.input_model is CapabilityInput
    assert spec.attributes == ("level", "parent_id", "maturity_level")
    assert display_name("capability") == "Business Capability"


def test_table_names_round_trip():
    assert table_name_for_kind("data_entity") == "data_entities"
    assert kind_from_table_name("processes") is EntityKind.PROCESS
    assert kind_from_table_name("stakeholders") is None
