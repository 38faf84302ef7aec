# Overview: Service-layer operations for damage and loss incident reports.

"""
Incident workflow.

LIFECYCLE:
1. PENDING: Reported with photo evidence
2. UNDER_REVIEW: Optional; an admin picked it up
3. RESOLVED: Accepted; asset status follows the kind
   (Damage -> In Repair, Loss -> Lost), whatever the asset's prior status
4. CLOSED: Dismissed; asset untouched

Loss reports are resolved or closed only by holding-level admins; damage
reports also by the unit admin of the asset's unit.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import (
    Asset,
    AssetStatus,
    IncidentKind,
    IncidentReport,
    IncidentStatus,
    OPEN_INCIDENT_STATUSES,
    Role,
)
from ..permissions import EntityKind, NEW
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    require_choice,
    require_past_or_today,
    require_reference,
    require_text,
)
from .approval_gate import get_actor, require_transition, require_unit_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event
from .status_registry import set_asset_status


# Asset status written when a report is resolved
RESOLUTION_ASSET_STATUS = {
    IncidentKind.DAMAGE: AssetStatus.IN_REPAIR,
    IncidentKind.LOSS: AssetStatus.LOST,
}

MIN_DESCRIPTION_LENGTH = 10


def entity_kind_for(kind: IncidentKind) -> str:
    """Damage and loss reports are separate rows in the approval table."""
    return EntityKind.INCIDENT_LOSS if kind == IncidentKind.LOSS else EntityKind.INCIDENT_DAMAGE


def _load_report(report_id: int) -> IncidentReport:
    report = lock_for_update(db.session.query(IncidentReport).filter_by(id=report_id)).first()
    if not report:
        raise NotFoundError(f"Incident report {report_id} not found", field="report_id")
    return report


def _require_open(report: IncidentReport, action: str) -> None:
    if report.status not in OPEN_INCIDENT_STATUSES:
        raise InvalidStateError(f"Cannot {action} incident report in {report.status.value} status")


def _record(report: IncidentReport, event_type: str, actor_user_id: int, *, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=entity_kind_for(report.type),
        entity_id=report.id,
        actor_user_id=actor_user_id,
        unit_id=report.asset.unit_id if report.asset else None,
        asset_id=report.asset_id,
        note=note,
        payload=payload,
    )


def report_incident(
    asset_id: int,
    actor_user_id: int,
    kind,
    incident_date: date | str,
    description: str,
    evidence_photo_path: str,
) -> IncidentReport:
    """
    File a damage or loss report (status: PENDING).

    Args:
        asset_id: Affected asset
        actor_user_id: Reporter
        kind: "Damage" or "Loss"
        incident_date: When it happened (not in the future)
        description: At least 10 characters
        evidence_photo_path: Stored evidence reference (required)

    Raises:
        ValidationError, NotFoundError
        UnauthorizedError: Plain user reporting on another unit's asset
    """
    incident_kind = require_choice(kind, IncidentKind, "type")
    happened_on = require_past_or_today(incident_date, "date")
    text = require_text(description, "description", min_length=MIN_DESCRIPTION_LENGTH, max_length=1000)
    evidence = require_reference(evidence_photo_path, "evidence_photo_path")

    def _op():
        actor = get_actor(actor_user_id)
        asset = db.session.get(Asset, asset_id)
        if not asset:
            raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
        require_transition(actor, entity_kind_for(incident_kind), NEW, IncidentStatus.PENDING)
        if actor.role == Role.USER and asset.unit_id != actor.unit_id:
            raise UnauthorizedError("You can only report incidents for assets in your unit")

        report = IncidentReport(
            asset_id=asset.id,
            reporter_id=actor.id,
            type=incident_kind,
            description=text,
            date=happened_on,
            evidence_photo_path=evidence,
            status=IncidentStatus.PENDING,
        )
        db.session.add(report)
        db.session.flush()  # Get ID

        _record(report, "incident.reported", actor.id, note=text, payload={"type": incident_kind.value})
        current_app.logger.info(
            "Incident %s (%s) reported on asset %s by user %s",
            report.id, incident_kind.value, asset.id, actor.id,
        )
        return report

    return run_in_transaction(_op)


def start_review(report_id: int, actor_user_id: int) -> IncidentReport:
    """Pick up a pending report (PENDING -> UNDER_REVIEW)."""
    def _op():
        actor = get_actor(actor_user_id)
        report = _load_report(report_id)
        if report.status != IncidentStatus.PENDING:
            raise InvalidStateError(f"Cannot review incident report in {report.status.value} status")
        require_transition(actor, entity_kind_for(report.type), report.status, IncidentStatus.UNDER_REVIEW)
        require_unit_scope(actor, report.asset.unit_id, action="review incidents")

        report.status = IncidentStatus.UNDER_REVIEW
        report.reviewed_by_user_id = actor.id
        report.review_date = utcnow()

        _record(report, "incident.review_started", actor.id)
        current_app.logger.info("Incident %s under review by user %s", report.id, actor.id)
        return report

    return run_in_transaction(_op)


def resolve_incident(
    report_id: int,
    actor_user_id: int,
    resolution_notes: str | None = None,
    responsible_party: str | None = None,
) -> IncidentReport:
    """
    Accept a report (PENDING/UNDER_REVIEW -> RESOLVED).

    SIDE EFFECT: Damage sets the asset In Repair, Loss sets it Lost,
    through the status registry.
    """
    def _op():
        actor = get_actor(actor_user_id)
        report = _load_report(report_id)
        _require_open(report, "resolve")
        require_transition(actor, entity_kind_for(report.type), report.status, IncidentStatus.RESOLVED)
        require_unit_scope(actor, report.asset.unit_id, action="resolve incidents")
        notes = optional_text(resolution_notes, "resolution_notes", max_length=1000)
        party = optional_text(responsible_party, "responsible_party", max_length=255)

        report.status = IncidentStatus.RESOLVED
        report.reviewed_by_user_id = actor.id
        report.review_date = utcnow()
        report.resolution_notes = notes
        report.responsible_party = party

        new_status = RESOLUTION_ASSET_STATUS[report.type]
        set_asset_status(
            report.asset_id,
            new_status,
            (entity_kind_for(report.type), report.id),
            actor_user_id=actor.id,
        )

        _record(report, "incident.resolved", actor.id, note=notes, payload={"asset_status": new_status.value})
        current_app.logger.info(
            "Incident %s resolved by user %s; asset %s -> %s",
            report.id, actor.id, report.asset_id, new_status.value,
        )
        return report

    return run_in_transaction(_op)


def close_incident(
    report_id: int,
    actor_user_id: int,
    resolution_notes: str | None = None,
) -> IncidentReport:
    """Dismiss a report (PENDING/UNDER_REVIEW -> CLOSED); the asset is left alone."""
    def _op():
        actor = get_actor(actor_user_id)
        report = _load_report(report_id)
        _require_open(report, "close")
        require_transition(actor, entity_kind_for(report.type), report.status, IncidentStatus.CLOSED)
        require_unit_scope(actor, report.asset.unit_id, action="close incidents")
        notes = optional_text(resolution_notes, "resolution_notes", max_length=1000)

        report.status = IncidentStatus.CLOSED
        report.reviewed_by_user_id = actor.id
        report.review_date = utcnow()
        report.resolution_notes = notes

        _record(report, "incident.closed", actor.id, note=notes)
        current_app.logger.info("Incident %s closed by user %s", report.id, actor.id)
        return report

    return run_in_transaction(_op)


# -- Queries --

def list_incidents_for_validation(unit_id: int | None = None, kind=None) -> list[IncidentReport]:
    """Open reports (PENDING, UNDER_REVIEW), oldest first."""
    q = db.session.query(IncidentReport).filter(IncidentReport.status.in_(OPEN_INCIDENT_STATUSES))
    if unit_id is not None:
        q = q.join(Asset, IncidentReport.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
    if kind is not None:
        q = q.filter(IncidentReport.type == require_choice(kind, IncidentKind, "type"))
    return q.order_by(IncidentReport.created_at.asc(), IncidentReport.id.asc()).all()


def get_incident_summary(report_id: int) -> dict:
    report = db.session.get(IncidentReport, report_id)
    if not report:
        raise NotFoundError(f"Incident report {report_id} not found", field="report_id")
    return {
        **report.to_dict(),
        "asset": report.asset.to_dict() if report.asset else None,
        "reporter": report.reporter.to_dict() if report.reporter else None,
    }
