# Overview: Transition permission table consulted by the approval gate.
# Each row is: (entity_kind, from_status, to_status) -> roles allowed to perform it.
# A transition that has no row is denied.

from ..models import (
    AuditStatus,
    GuaranteeStatus,
    IncidentStatus,
    LoanStatus,
    MaintenanceStatus,
    MovementStatus,
    RequestLoanStatus,
    RequestStatus,
    SettlementStatus,
)
from .roles import ALL_ROLES, ASSET_ADMINS, AUDITORS, HOLDING_ADMINS


class EntityKind:
    """Entity kinds known to the approval gate."""
    ASSET_LOAN = "asset_loan"
    ASSET_REQUEST = "asset_request"
    ASSET_REQUEST_LOAN = "asset_request_loan"
    GUARANTEE = "guarantee"
    GUARANTEE_SETTLEMENT = "guarantee_settlement"
    INCIDENT_DAMAGE = "incident_damage"
    INCIDENT_LOSS = "incident_loss"
    INVENTORY_AUDIT = "inventory_audit"
    MAINTENANCE = "maintenance"
    ASSET_MOVEMENT = "asset_movement"


# Marks a creation transition (no prior status)
NEW = None


# -- ASSET LOANS --

LOAN_TRANSITIONS = {
    (EntityKind.ASSET_LOAN, NEW, LoanStatus.PENDING): ALL_ROLES,
    (EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED): ASSET_ADMINS,
    (EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.REJECTED): ASSET_ADMINS,
    (EntityKind.ASSET_LOAN, LoanStatus.APPROVED, LoanStatus.APPROVED): ALL_ROLES,
    (EntityKind.ASSET_LOAN, LoanStatus.APPROVED, LoanStatus.PENDING_RETURN): ALL_ROLES,
    (EntityKind.ASSET_LOAN, LoanStatus.PENDING_RETURN, LoanStatus.RETURNED): ASSET_ADMINS,
    (EntityKind.ASSET_LOAN, LoanStatus.PENDING_RETURN, LoanStatus.APPROVED): ASSET_ADMINS,
}


# -- INTER-UNIT REQUESTS --

REQUEST_TRANSITIONS = {
    (EntityKind.ASSET_REQUEST, NEW, RequestStatus.PENDING): ALL_ROLES,
    (EntityKind.ASSET_REQUEST, RequestStatus.PENDING, RequestStatus.APPROVED): HOLDING_ADMINS,
    (EntityKind.ASSET_REQUEST, RequestStatus.PENDING, RequestStatus.REJECTED): HOLDING_ADMINS,
    (EntityKind.ASSET_REQUEST_LOAN, RequestLoanStatus.NOT_STARTED, RequestLoanStatus.ACTIVE): HOLDING_ADMINS,
    (EntityKind.ASSET_REQUEST_LOAN, RequestLoanStatus.ACTIVE, RequestLoanStatus.PENDING_RETURN): ALL_ROLES,
    (EntityKind.ASSET_REQUEST_LOAN, RequestLoanStatus.OVERDUE, RequestLoanStatus.PENDING_RETURN): ALL_ROLES,
    (EntityKind.ASSET_REQUEST_LOAN, RequestLoanStatus.PENDING_RETURN, RequestLoanStatus.RETURNED): HOLDING_ADMINS,
    (EntityKind.ASSET_REQUEST_LOAN, RequestLoanStatus.PENDING_RETURN, RequestLoanStatus.ACTIVE): HOLDING_ADMINS,
}


# -- GUARANTEES --

GUARANTEE_TRANSITIONS = {
    (EntityKind.GUARANTEE, NEW, GuaranteeStatus.AVAILABLE): ASSET_ADMINS,
    (EntityKind.GUARANTEE, GuaranteeStatus.AVAILABLE, GuaranteeStatus.ON_LOAN): ASSET_ADMINS,
    (EntityKind.GUARANTEE, GuaranteeStatus.ON_LOAN, GuaranteeStatus.AVAILABLE): ASSET_ADMINS,
    (EntityKind.GUARANTEE_SETTLEMENT, NEW, SettlementStatus.PENDING): ASSET_ADMINS,
    (EntityKind.GUARANTEE_SETTLEMENT, SettlementStatus.REJECTED, SettlementStatus.PENDING): ASSET_ADMINS,
    (EntityKind.GUARANTEE_SETTLEMENT, SettlementStatus.PENDING, SettlementStatus.APPROVED): HOLDING_ADMINS,
    (EntityKind.GUARANTEE_SETTLEMENT, SettlementStatus.PENDING, SettlementStatus.REJECTED): HOLDING_ADMINS,
}


# -- INCIDENTS --
# Loss write-offs are reserved to holding level; unit admins may settle damage.

INCIDENT_TRANSITIONS = {}
for _kind, _resolvers in (
    (EntityKind.INCIDENT_DAMAGE, ASSET_ADMINS),
    (EntityKind.INCIDENT_LOSS, HOLDING_ADMINS),
):
    INCIDENT_TRANSITIONS[(_kind, NEW, IncidentStatus.PENDING)] = ALL_ROLES
    INCIDENT_TRANSITIONS[(_kind, IncidentStatus.PENDING, IncidentStatus.UNDER_REVIEW)] = ASSET_ADMINS
    for _from in (IncidentStatus.PENDING, IncidentStatus.UNDER_REVIEW):
        INCIDENT_TRANSITIONS[(_kind, _from, IncidentStatus.RESOLVED)] = _resolvers
        INCIDENT_TRANSITIONS[(_kind, _from, IncidentStatus.CLOSED)] = _resolvers


# -- INVENTORY AUDITS --

AUDIT_TRANSITIONS = {
    (EntityKind.INVENTORY_AUDIT, NEW, AuditStatus.OPEN): AUDITORS,
    (EntityKind.INVENTORY_AUDIT, AuditStatus.OPEN, AuditStatus.OPEN): AUDITORS,
    (EntityKind.INVENTORY_AUDIT, AuditStatus.OPEN, AuditStatus.COMPLETED): AUDITORS,
}


# -- MAINTENANCE --

MAINTENANCE_TRANSITIONS = {
    (EntityKind.MAINTENANCE, NEW, MaintenanceStatus.PENDING): ASSET_ADMINS,
    (EntityKind.MAINTENANCE, MaintenanceStatus.PENDING, MaintenanceStatus.IN_PROGRESS): ASSET_ADMINS,
    (EntityKind.MAINTENANCE, MaintenanceStatus.PENDING, MaintenanceStatus.CANCELLED): ASSET_ADMINS,
    (EntityKind.MAINTENANCE, MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.COMPLETED): ASSET_ADMINS,
}


# -- ASSET MOVEMENTS --
# Unit admins validate only movements into their own unit; the service checks that.

MOVEMENT_TRANSITIONS = {
    (EntityKind.ASSET_MOVEMENT, NEW, MovementStatus.PENDING): ASSET_ADMINS,
    (EntityKind.ASSET_MOVEMENT, MovementStatus.PENDING, MovementStatus.APPROVED): ASSET_ADMINS,
    (EntityKind.ASSET_MOVEMENT, MovementStatus.PENDING, MovementStatus.REJECTED): ASSET_ADMINS,
    (EntityKind.ASSET_MOVEMENT, MovementStatus.PENDING, MovementStatus.CANCELLED): ASSET_ADMINS,
}


TRANSITION_PERMISSIONS = {
    **LOAN_TRANSITIONS,
    **REQUEST_TRANSITIONS,
    **GUARANTEE_TRANSITIONS,
    **INCIDENT_TRANSITIONS,
    **AUDIT_TRANSITIONS,
    **MAINTENANCE_TRANSITIONS,
    **MOVEMENT_TRANSITIONS,
}
