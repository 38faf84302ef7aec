from .organization import Role, Unit, User
from .assets import Asset, AssetStatus
from .loans import (
    AssetLoan, LoanStatus, ReturnCondition, ACTIVE_LOAN_STATUSES,
    AssetRequest, RequestStatus, RequestLoanStatus, ACTIVE_REQUEST_LOAN_STATUSES,
)
from .guarantees import (
    Guarantee, GuaranteeStatus, GuaranteeType,
    GuaranteeLoan, GuaranteeSettlement, SettlementStatus,
)
from .incidents import IncidentReport, IncidentKind, IncidentStatus, OPEN_INCIDENT_STATUSES
from .audits import InventoryAudit, AuditFinding, AuditStatus, ScanMode, FindingKind
from .maintenance import Maintenance, MaintenanceKind, MaintenanceParty, MaintenanceStatus
from .movements import AssetMovement, MovementStatus
from .ledger import WorkflowEvent

__all__ = [
    'Role', 'Unit', 'User',
    'Asset', 'AssetStatus',
    'AssetLoan', 'LoanStatus', 'ReturnCondition', 'ACTIVE_LOAN_STATUSES',
    'AssetRequest', 'RequestStatus', 'RequestLoanStatus', 'ACTIVE_REQUEST_LOAN_STATUSES',
    'Guarantee', 'GuaranteeStatus', 'GuaranteeType',
    'GuaranteeLoan', 'GuaranteeSettlement', 'SettlementStatus',
    'IncidentReport', 'IncidentKind', 'IncidentStatus', 'OPEN_INCIDENT_STATUSES',
    'InventoryAudit', 'AuditFinding', 'AuditStatus', 'ScanMode', 'FindingKind',
    'Maintenance', 'MaintenanceKind', 'MaintenanceParty', 'MaintenanceStatus',
    'AssetMovement', 'MovementStatus',
    'WorkflowEvent',
]
