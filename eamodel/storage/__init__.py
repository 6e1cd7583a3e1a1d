from eamodel.storage.sql_models import (
    Base,
    NodeBase,
    CapabilitySQL,
    ApplicationSQL,
    ProcessSQL,
    DataEntitySQL,
    RequirementSQL,
    RelationshipSQL,
    NODE_TABLES,
)
from eamodel.storage.store import MetaModelStore, is_unique_violation

__all__ = [
    "Base",
    "NodeBase",
    "CapabilitySQL",
    "ApplicationSQL",
    "ProcessSQL",
    "DataEntitySQL",
    "RequirementSQL",
    "RelationshipSQL",
    "NODE_TABLES",
    "MetaModelStore",
    "is_unique_violation",
]
