# Overview: Read-only statistics over assets, loans, requests, guarantees, incidents,
# maintenance jobs and unit movements.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Asset,
    AssetLoan,
    AssetRequest,
    AssetStatus,
    Guarantee,
    GuaranteeSettlement,
    GuaranteeStatus,
    IncidentKind,
    IncidentReport,
    IncidentStatus,
    AssetMovement,
    LoanStatus,
    Maintenance,
    MaintenanceKind,
    MaintenanceStatus,
    MovementStatus,
    RequestLoanStatus,
    RequestStatus,
    SettlementStatus,
    Unit,
)
from ..errors import NotFoundError
from ..time_utils import today


def _require_unit(unit_id: int | None) -> None:
    if unit_id is not None and not db.session.get(Unit, unit_id):
        raise NotFoundError(f"Unit {unit_id} not found", field="unit_id")


def _zeroed(enum_cls, rows) -> dict:
    """Every status present in the output, even with no rows."""
    counts = {member.value: 0 for member in enum_cls}
    for status, count in rows:
        counts[status.value] = count
    return counts


def asset_status_counts(unit_id: int | None = None) -> dict:
    _require_unit(unit_id)
    q = db.session.query(Asset.status, func.count(Asset.id))
    if unit_id is not None:
        q = q.filter(Asset.unit_id == unit_id)
    return _zeroed(AssetStatus, q.group_by(Asset.status).all())


def loan_statistics(unit_id: int | None = None, as_of: date | None = None) -> dict:
    """Loan counts by status plus overdue (approved past expected return), scoped to the asset's unit."""
    _require_unit(unit_id)
    as_of = as_of or today()

    q = db.session.query(AssetLoan.status, func.count(AssetLoan.id))
    overdue_q = db.session.query(func.count(AssetLoan.id)).filter(
        AssetLoan.status == LoanStatus.APPROVED,
        AssetLoan.expected_return_date < as_of,
    )
    if unit_id is not None:
        q = q.join(Asset, AssetLoan.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
        overdue_q = overdue_q.join(Asset, AssetLoan.asset_id == Asset.id).filter(Asset.unit_id == unit_id)

    by_status = _zeroed(LoanStatus, q.group_by(AssetLoan.status).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "overdue": overdue_q.scalar() or 0,
    }


def request_statistics(requester_unit_id: int | None = None) -> dict:
    _require_unit(requester_unit_id)
    q = db.session.query(AssetRequest.status, func.count(AssetRequest.id))
    loan_q = db.session.query(AssetRequest.loan_status, func.count(AssetRequest.id)).filter(
        AssetRequest.loan_status.isnot(None)
    )
    if requester_unit_id is not None:
        q = q.filter(AssetRequest.requester_unit_id == requester_unit_id)
        loan_q = loan_q.filter(AssetRequest.requester_unit_id == requester_unit_id)

    by_status = _zeroed(RequestStatus, q.group_by(AssetRequest.status).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_loan_status": _zeroed(RequestLoanStatus, loan_q.group_by(AssetRequest.loan_status).all()),
    }


def guarantee_statistics(unit_id: int | None = None) -> dict:
    _require_unit(unit_id)
    q = db.session.query(Guarantee.status, func.count(Guarantee.id))
    settlement_q = db.session.query(
        GuaranteeSettlement.settlement_status, func.count(GuaranteeSettlement.id)
    ).join(Guarantee, GuaranteeSettlement.guarantee_id == Guarantee.id)
    if unit_id is not None:
        q = q.filter(Guarantee.unit_id == unit_id)
        settlement_q = settlement_q.filter(Guarantee.unit_id == unit_id)

    by_status = _zeroed(GuaranteeStatus, q.group_by(Guarantee.status).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "settlements": _zeroed(
            SettlementStatus, settlement_q.group_by(GuaranteeSettlement.settlement_status).all()
        ),
    }


def incident_statistics(unit_id: int | None = None) -> dict:
    _require_unit(unit_id)
    q = db.session.query(IncidentReport.status, func.count(IncidentReport.id))
    kind_q = db.session.query(IncidentReport.type, func.count(IncidentReport.id))
    if unit_id is not None:
        q = q.join(Asset, IncidentReport.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
        kind_q = kind_q.join(Asset, IncidentReport.asset_id == Asset.id).filter(Asset.unit_id == unit_id)

    by_status = _zeroed(IncidentStatus, q.group_by(IncidentReport.status).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": _zeroed(IncidentKind, kind_q.group_by(IncidentReport.type).all()),
    }


def maintenance_statistics(unit_id: int | None = None) -> dict:
    _require_unit(unit_id)
    q = db.session.query(Maintenance.status, func.count(Maintenance.id))
    kind_q = db.session.query(Maintenance.type, func.count(Maintenance.id))
    if unit_id is not None:
        q = q.join(Asset, Maintenance.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
        kind_q = kind_q.join(Asset, Maintenance.asset_id == Asset.id).filter(Asset.unit_id == unit_id)

    by_status = _zeroed(MaintenanceStatus, q.group_by(Maintenance.status).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": _zeroed(MaintenanceKind, kind_q.group_by(Maintenance.type).all()),
    }


def movement_statistics(unit_id: int | None = None) -> dict:
    """Movement counts by status; with a unit, split into incoming and outgoing."""
    _require_unit(unit_id)
    base = db.session.query(AssetMovement.status, func.count(AssetMovement.id))
    if unit_id is None:
        by_status = _zeroed(MovementStatus, base.group_by(AssetMovement.status).all())
        return {"total": sum(by_status.values()), "by_status": by_status}

    incoming = _zeroed(
        MovementStatus,
        base.filter(AssetMovement.to_unit_id == unit_id).group_by(AssetMovement.status).all(),
    )
    outgoing = _zeroed(
        MovementStatus,
        base.filter(AssetMovement.from_unit_id == unit_id).group_by(AssetMovement.status).all(),
    )
    return {
        "total": sum(incoming.values()) + sum(outgoing.values()),
        "incoming": incoming,
        "outgoing": outgoing,
    }


def dashboard_snapshot(unit_id: int | None = None) -> dict:
    """All of the above in one payload for the reporting/export layer."""
    return {
        "assets": asset_status_counts(unit_id),
        "loans": loan_statistics(unit_id),
        "requests": request_statistics(unit_id),
        "guarantees": guarantee_statistics(unit_id),
        "incidents": incident_statistics(unit_id),
        "maintenance": maintenance_statistics(unit_id),
        "movements": movement_statistics(unit_id),
    }
