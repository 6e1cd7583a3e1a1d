"""
Tests for batch import and batch deletes.
"""
import pytest

from eamodel.bulk import MAX_BULK_IDS
from eamodel.errors import (
    DuplicateRelationshipError,
    InvalidInputError,
    NotFoundError,
    RelationshipMatrixError,
)

from conftest import PROJECT_ID


def test_bulk_import_reports_each_row(engine, bulk):
    rows = [
        {"name": "CRM", "vendor": "Acme"},
        {"name": "ERP"},
        {"name": " crm "},
        {"name": ""},
        {"name": "Data Lake", "lifecycle": "build"},
    ]
    report = bulk.bulk_import(PROJECT_ID, "application", rows, actor="importer")

    assert report.success == 3
    assert report.failed == 2
    assert len(report.created_ids) == 3
    assert [(e.row, e.code) for e in report.errors] == [(3, "duplicate_name"), (4, "invalid_input")]
    assert report.errors[0].name == " crm "

    names = [record.name for record in engine.list_nodes(PROJECT_ID, "application")]
    assert names == ["CRM", "Data Lake", "ERP"]
    assert {record.created_by for record in engine.list_nodes(PROJECT_ID, "application")} == {"importer"}


def test_bulk_import_accepts_kind_alias(engine, bulk):
    report = bulk.bulk_import(PROJECT_ID, "businessCapability", [{"name": "Billing", "level": 2}], actor="importer")
    assert report.success == 1
    assert engine.get_node("capability", report.created_ids[0], PROJECT_ID).attributes["level"] == 2


def test_bulk_delete_is_atomic(engine, bulk, make_node):
    ids = [make_node("process", name) for name in ["Onboarding", "Offboarding", "Payroll"]]
    with pytest.raises(NotFoundError):
        bulk.bulk_delete(PROJECT_ID, "process", [ids[0], 999], actor="alice")
    assert len(engine.list_nodes(PROJECT_ID, "process")) == 3

    result = bulk.bulk_delete(PROJECT_ID, "process", [ids[0], ids[1], ids[0]], actor="alice")
    assert result.count == 2
    assert result.ids == [ids[0], ids[1]]
    assert [record.id for record in engine.list_nodes(PROJECT_ID, "process")] == [ids[2]]


def test_bulk_delete_cascades(engine, bulk, make_node):
    cap = make_node("capability", "Billing")
    apps = [make_node("application", name) for name in ["CRM", "ERP"]]
    for app in apps:
        engine.create_relationship(PROJECT_ID, ("application", app), ("capability", cap), "SUPPORTS", actor="alice")

    result = bulk.bulk_delete(PROJECT_ID, "application", apps, actor="alice")
    assert result.cascaded == 2
    assert engine.list_relationships(PROJECT_ID) == []


@pytest.mark.parametrize("ids", [[], list(range(1, MAX_BULK_IDS + 2))])
def test_bulk_delete_batch_limits(bulk, ids):
    with pytest.raises(InvalidInputError):
        bulk.bulk_delete(PROJECT_ID, "process", ids, actor="alice")


def test_bulk_create_relationships(engine, bulk, make_node):
    app = make_node("application", "CRM")
    caps = [make_node("capability", name) for name in ["Billing", "Invoicing", "Collections"]]

    result = bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps, "SUPPORTS", actor="bob")
    assert result.count == 3
    records = engine.list_relationships(PROJECT_ID)
    assert sorted(r.target_id for r in records) == sorted(caps)
    assert {r.created_by for r in records} == {"bob"}


@pytest.mark.parametrize("actor", [None, ""])
def test_bulk_create_relationships_requires_actor(engine, bulk, make_node, actor):
    app = make_node("application", "CRM")
    caps = [make_node("capability", name) for name in ["Billing", "Invoicing"]]
    with pytest.raises(InvalidInputError):
        bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps, "SUPPORTS", actor=actor)
    assert engine.list_relationships(PROJECT_ID) == []


def test_bulk_create_relationships_all_or_nothing(engine, bulk, make_node):
    app = make_node("application", "CRM")
    caps = [make_node("capability", name) for name in ["Billing", "Invoicing"]]

    with pytest.raises(NotFoundError):
        bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps + [999], "SUPPORTS", actor="alice")
    assert engine.list_relationships(PROJECT_ID) == []

    with pytest.raises(RelationshipMatrixError):
        bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps, "TRIGGERS", actor="alice")

    engine.create_relationship(PROJECT_ID, ("application", app), ("capability", caps[1]), "SUPPORTS", actor="alice")
    with pytest.raises(DuplicateRelationshipError):
        bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps, "SUPPORTS", actor="alice")
    assert len(engine.list_relationships(PROJECT_ID)) == 1


def test_bulk_delete_relationships(engine, bulk, make_node):
    app = make_node("application", "CRM")
    caps = [make_node("capability", name) for name in ["Billing", "Invoicing"]]
    created = bulk.bulk_create_relationships(PROJECT_ID, ("application", app), "capability", caps, "SUPPORTS", actor="alice")

    with pytest.raises(NotFoundError):
        bulk.bulk_delete_relationships(PROJECT_ID, created.ids + [999], actor="alice")
    assert len(engine.list_relationships(PROJECT_ID)) == 2

    result = bulk.bulk_delete_relationships(PROJECT_ID, created.ids, actor="alice")
    assert result.count == 2
    assert engine.list_relationships(PROJECT_ID) == []
