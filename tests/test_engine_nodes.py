"""
Tests for node operations on the engine: create, get, update, list.
"""
import pytest
from sqlalchemy.exc import IntegrityError

from eamodel.errors import (
    DuplicateNameError,
    InvalidEntityTypeError,
    InvalidInputError,
    NotFoundError,
)
from eamodel.models import CapabilityInput, EntityKind
from eamodel.storage import is_unique_violation

from conftest import OTHER_PROJECT_ID, PROJECT_ID, node_payload


##############################
# Create / get
##############################

def test_create_and_get_node(engine):
    created = engine.create_node("capability", node_payload("capability", "  Customer   Management ", level=2))
    assert created.normalized_name == "customer management"

    record = engine.get_node("capability", created.id, PROJECT_ID)
    assert record.kind is EntityKind.CAPABILITY
    assert record.name == "  Customer   Management "
    assert record.attributes["level"] == 2
    assert record.created_by == "alice"
    assert record.created_at == record.updated_at
    assert record.updated_by is None
    assert record.is_active


def test_create_applies_attribute_defaults(engine):
    created = engine.create_node("application", node_payload("application", "CRM", vendor="Acme"))
    record = engine.get_node("application", created.id, PROJECT_ID)
    assert record.attributes == {
        "vendor": "Acme",
        "version": None,
        "lifecycle": "run",
        "category": None,
        "criticality": "medium",
    }


def test_create_accepts_input_model(engine):
    data = CapabilityInput(project_id=PROJECT_ID, name="Billing", level=3, created_by="bob")
    created = engine.create_node(EntityKind.CAPABILITY, data)
    assert engine.get_node("capability", created.id, PROJECT_ID).attributes["level"] == 3


@pytest.mark.parametrize("kind, payload", [
    ("capability", node_payload("capability", "Billing", level=6)),
    ("capability", node_payload("capability", "   ")),
    ("capability", node_payload("capability", "x" * 256)),
    ("application", node_payload("application", "CRM", owner="bob")),
    ("application", node_payload("application", "CRM", lifecycle="sunset")),
    ("requirement", {"project_id": PROJECT_ID, "name": "GDPR", "created_by": "alice"}),
    ("process", {"project_id": PROJECT_ID, "name": "Onboarding"}),
])
def test_create_rejects_invalid_input(engine, kind, payload):
    with pytest.raises(InvalidInputError) as exc_info:
        engine.create_node(kind, payload)
    assert exc_info.value.errors
    assert engine.list_nodes(PROJECT_ID, kind) == []


def test_create_rejects_unknown_kind(engine):
    with pytest.raises(InvalidEntityTypeError):
        engine.create_node("stakeholder", {"project_id": PROJECT_ID, "name": "CFO", "created_by": "alice"})


def test_duplicate_name_rejected_with_suggestions(engine, make_node):
    make_node("capability", "Customer Management")
    with pytest.raises(DuplicateNameError) as exc_info:
        make_node("capability", " customer   MANAGEMENT")

    error = exc_info.value
    assert error.normalized_name == "customer management"
    assert error.kind == "capability"
    assert error.suggestions == ["customer management 2", "customer management 3", "customer management 4"]
    assert error.to_dict()["code"] == "duplicate_name"
    assert len(engine.list_nodes(PROJECT_ID, "capability")) == 1


def test_non_unique_integrity_error_propagates(engine, make_node, monkeypatch):
    original = engine.validate_input

    def drop_level(kind, data):
        spec, values = original(kind, data)
        return spec, {**values, "level": None}

    monkeypatch.setattr(engine, "validate_input", drop_level)
    with pytest.raises(IntegrityError) as exc_info:
        make_node("capability", "Billing")
    assert not is_unique_violation(exc_info.value)
    assert exc_info.value.__cause__ is not exc_info.value


def test_same_name_allowed_across_kinds_and_projects(make_node):
    make_node("capability", "Payments")
    make_node("process", "Payments")
    make_node("capability", "Payments", project_id=OTHER_PROJECT_ID)


def test_hyphenated_name_is_distinct(make_node):
    make_node("application", "Payment Gateway")
    make_node("application", "Payment-Gateway")


def test_name_reusable_after_delete(engine, make_node):
    first = make_node("application", "CRM")
    engine.delete_node("application", first, PROJECT_ID, actor="alice")
    second = make_node("application", "crm")
    assert second != first


def test_unique_index_backs_up_the_precheck(engine, make_node, monkeypatch):
    make_node("capability", "Billing")
    monkeypatch.setattr(engine.guard, "check_unique", lambda *args, **kwargs: None)

    with pytest.raises(DuplicateNameError) as exc_info:
        make_node("capability", "BILLING")
    assert exc_info.value.normalized_name == "billing"
    assert len(engine.list_nodes(PROJECT_ID, "capability")) == 1


def test_get_node_scoped_to_project(engine, make_node):
    node_id = make_node("process", "Onboarding")
    with pytest.raises(NotFoundError):
        engine.get_node("process", node_id, OTHER_PROJECT_ID)
    with pytest.raises(NotFoundError):
        engine.get_node("process", node_id + 100, PROJECT_ID)


##############################
# Update
##############################

def test_update_renames_and_stamps(engine, make_node, clock):
    node_id = make_node("application", "CRM")
    result = engine.update_node("application", node_id, PROJECT_ID, {"name": "CRM Suite", "vendor": "Acme"}, actor="bob")
    assert result.success and result.affected == 1

    record = engine.get_node("application", node_id, PROJECT_ID)
    assert record.name == "CRM Suite"
    assert record.normalized_name == "crm suite"
    assert record.attributes["vendor"] == "Acme"
    assert record.updated_by == "bob"
    assert record.updated_at > record.created_at
    assert record.updated_at == clock.current


def test_update_case_change_keeps_key(engine, make_node):
    node_id = make_node("capability", "Billing")
    make_node("capability", "Invoicing")
    engine.update_node("capability", node_id, PROJECT_ID, {"name": "BILLING"})
    record = engine.get_node("capability", node_id, PROJECT_ID)
    assert record.name == "BILLING"
    assert record.normalized_name == "billing"


def test_update_to_taken_name_rejected(engine, make_node):
    make_node("capability", "Billing")
    node_id = make_node("capability", "Invoicing")
    with pytest.raises(DuplicateNameError):
        engine.update_node("capability", node_id, PROJECT_ID, {"name": " billing "})
    assert engine.get_node("capability", node_id, PROJECT_ID).name == "Invoicing"


def test_update_to_taken_name_caught_by_index(engine, make_node, monkeypatch):
    make_node("capability", "Billing")
    node_id = make_node("capability", "Invoicing")
    monkeypatch.setattr(engine.guard, "check_unique", lambda *args, **kwargs: None)
    with pytest.raises(DuplicateNameError):
        engine.update_node("capability", node_id, PROJECT_ID, {"name": "Billing"})


@pytest.mark.parametrize("patch, fragment", [
    ({}, "Empty update"),
    ({"project_id": 2}, "immutable"),
    ({"created_by": "mallory"}, "immutable"),
    ({"vendor": "Acme"}, "not capability fields"),
])
def test_update_rejects_bad_patches(engine, make_node, patch, fragment):
    node_id = make_node("capability", "Billing")
    with pytest.raises(InvalidInputError) as exc_info:
        engine.update_node("capability", node_id, PROJECT_ID, patch)
    assert fragment in str(exc_info.value)


def test_update_revalidates_merged_values(engine, make_node):
    node_id = make_node("capability", "Billing", level=2)
    with pytest.raises(InvalidInputError):
        engine.update_node("capability", node_id, PROJECT_ID, {"level": 9})
    assert engine.get_node("capability", node_id, PROJECT_ID).attributes["level"] == 2


def test_update_deleted_node_not_found(engine, make_node):
    node_id = make_node("process", "Onboarding")
    engine.delete_node("process", node_id, PROJECT_ID, actor="alice")
    with pytest.raises(NotFoundError):
        engine.update_node("process", node_id, PROJECT_ID, {"description": "gone"})


##############################
# List
##############################

def test_list_nodes_ordered_and_filtered(engine, make_node):
    make_node("application", "Zendesk", description="Support desk")
    make_node("application", "CRM", description="Customer records")
    make_node("application", "Billing Engine")
    make_node("application", "Other Project App", project_id=OTHER_PROJECT_ID)

    names = [record.name for record in engine.list_nodes(PROJECT_ID, "application")]
    assert names == ["Billing Engine", "CRM", "Zendesk"]

    matches = engine.list_nodes(PROJECT_ID, "application", search="CUSTOMER")
    assert [record.name for record in matches] == ["CRM"]

    matches = engine.list_nodes(PROJECT_ID, "application", search="desk")
    assert [record.name for record in matches] == ["Zendesk"]


def test_list_nodes_search_is_literal(engine, make_node):
    make_node("application", "data_lake")
    make_node("application", "dataXlake")
    make_node("application", "CRM", description="100% customer")

    matches = engine.list_nodes(PROJECT_ID, "application", search="data_lake")
    assert [record.name for record in matches] == ["data_lake"]

    matches = engine.list_nodes(PROJECT_ID, "application", search="%")
    assert [record.name for record in matches] == ["CRM"]

    make_node("capability", "CRM")
    assert engine.list_nodes(PROJECT_ID, "capability", search="%") == []
    assert engine.list_nodes(PROJECT_ID, "capability", search="C_M") == []


def test_list_nodes_excludes_deleted(engine, make_node):
    keep = make_node("data_entity", "Customer")
    drop = make_node("data_entity", "Order")
    engine.delete_node("data_entity", drop, PROJECT_ID, actor="alice")
    assert [record.id for record in engine.list_nodes(PROJECT_ID, "data_entity")] == [keep]


def test_list_nodes_pagination(engine, make_node):
    for name in ["A1", "A2", "A3", "A4", "A5"]:
        make_node("requirement", name)
    first = engine.list_nodes(PROJECT_ID, "requirement", limit=2)
    second = engine.list_nodes(PROJECT_ID, "requirement", limit=2, offset=2)
    third = engine.list_nodes(PROJECT_ID, "requirement", limit=2, offset=4)
    assert [r.name for r in first + second + third] == ["A1", "A2", "A3", "A4", "A5"]


@pytest.mark.parametrize("limit, offset", [(0, 0), (101, 0), (10, -1)])
def test_list_nodes_rejects_bad_paging(engine, limit, offset):
    with pytest.raises(InvalidInputError):
        engine.list_nodes(PROJECT_ID, "application", limit=limit, offset=offset)


def test_registry_status(engine):
    status = engine.get_registry_status()
    assert status["dialect"] == "sqlite"
    assert status["kinds"] == ["capability", "application", "process", "data_entity", "requirement"]
    assert status["relationship_pairs"] > 0
