"""
Walk through a small application landscape:
 - Creating nodes of several kinds
 - Duplicate name detection with suggestions
 - Relationship matrix validation
 - Cascading soft delete
 - Reading back the reconstructed audit trail
"""
import logging
import os

from eamodel import (
    BulkOperations,
    DuplicateNameError,
    EngineSettings,
    MetaModelEngine,
    RelationshipMatrixError,
    configure_logging,
)

configure_logging(logging.INFO)

PROJECT = 1

# 0) Remove the database file if it exists
db_file = "landscape.db"
if os.path.exists(db_file):
    os.remove(db_file)

# 1) Build the engine; tables are created on the way
settings = EngineSettings(database_url=f"sqlite:///{db_file}")
engine = MetaModelEngine.from_settings(settings)

# 2) A capability and two applications
cap = engine.create_node("capability", {
    "project_id": PROJECT, "name": "Customer Management", "level": 1, "created_by": "alice",
})
crm = engine.create_node("application", {
    "project_id": PROJECT, "name": "CRM", "vendor": "Acme", "created_by": "alice",
})
print(f"Created capability {cap.id} ({cap.normalized_name!r}) and application {crm.id}")

# 3) Same name, different spelling
try:
    engine.create_node("capability", {
        "project_id": PROJECT, "name": "  customer   MANAGEMENT", "level": 1, "created_by": "bob",
    })
except DuplicateNameError as e:
    print(f"Rejected: {e}")
    print(f"Suggestions: {e.suggestions}")

# 4) Relationships: the matrix is directional
engine.create_relationship(PROJECT, ("application", crm.id), ("capability", cap.id), "SUPPORTS", actor="alice")
try:
    engine.create_relationship(PROJECT, ("capability", cap.id), ("application", crm.id), "REALIZES", actor="alice")
except RelationshipMatrixError as e:
    print(f"Rejected: {e}")

# 5) Import a batch of processes, one bad row included
bulk = BulkOperations(engine)
report = bulk.bulk_import(PROJECT, "process", [
    {"name": "Onboarding"},
    {"name": "Offboarding", "automation_level": "manual"},
    {"name": "onboarding"},
], actor="importer")
print(f"Imported {report.success}, failed {report.failed}")
for error in report.errors:
    print(f"  row {error.row} ({error.name!r}): {error.code}")

# 6) Rename, then delete the capability; its relationship goes with it
engine.update_node("application", crm.id, PROJECT, {"name": "CRM Suite", "version": "2.0"}, actor="carol")
result = engine.delete_node("capability", cap.id, PROJECT, actor="dave")
print(f"Deleted capability {cap.id}, cascaded to {result.affected} relationship(s)")

# 7) Audit trail, newest first
page = engine.get_audit_history(PROJECT, limit=20)
print(f"\n{page.total} audit events")
for event in page.events:
    label = getattr(event, "name", None) or f"{event.source_name} -> {event.target_name}"
    print(f"  {event.timestamp:%H:%M:%S.%f}  {event.action.value:<6} {event.subject:<12} {label}  by {event.actor}")

deletes = engine.get_audit_history(PROJECT, action_filter="delete")
print(f"\n{deletes.total} delete events")

# 8) Check the remaining model against a few rules
validation = engine.run_validation(PROJECT, [
    {"id": "no-orphans", "rule_type": "no_orphaned_entities", "severity": "error"},
    {"id": "app-vendor", "rule_type": "attribute_completeness", "kind": "application",
     "required_fields": ["vendor"]},
    {"id": "process-names", "rule_type": "naming_convention", "kind": "process",
     "pattern": "^[A-Z]", "description": "starts with a capital letter"},
])
print(f"\n{validation.total_violations} violations {validation.violations_by_severity}")
for violation in validation.violations:
    print(f"  [{violation.severity.value}] {violation.message}")
