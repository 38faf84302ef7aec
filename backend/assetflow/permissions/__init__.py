# Overview: Approval permission package.
# Re-exports the role groups and the transition table.

from .definitions import (
    EntityKind,
    NEW,
    TRANSITION_PERMISSIONS,
    LOAN_TRANSITIONS,
    REQUEST_TRANSITIONS,
    GUARANTEE_TRANSITIONS,
    INCIDENT_TRANSITIONS,
    AUDIT_TRANSITIONS,
    MAINTENANCE_TRANSITIONS,
    MOVEMENT_TRANSITIONS,
)
from .roles import ALL_ROLES, ASSET_ADMINS, AUDITORS, HOLDING_ADMINS, UNIT_SCOPED_ROLES

__all__ = [
    "EntityKind",
    "NEW",
    "TRANSITION_PERMISSIONS",
    "LOAN_TRANSITIONS",
    "REQUEST_TRANSITIONS",
    "GUARANTEE_TRANSITIONS",
    "INCIDENT_TRANSITIONS",
    "AUDIT_TRANSITIONS",
    "MAINTENANCE_TRANSITIONS",
    "MOVEMENT_TRANSITIONS",
    "ALL_ROLES",
    "ASSET_ADMINS",
    "AUDITORS",
    "HOLDING_ADMINS",
    "UNIT_SCOPED_ROLES",
]
