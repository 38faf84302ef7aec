# Overview: Service-layer operations for asset repair and upkeep jobs.

"""
Maintenance workflow.

LIFECYCLE:
1. PENDING: An asset admin logged a repair (Perbaikan) or upkeep
   (Pemeliharaan) job with the servicing party's details
2. IN_PROGRESS: Approved; the asset is In Repair
3. COMPLETED: Work finished; the asset goes back to Available
4. CANCELLED: Rejected before work started; asset untouched

Approval takes the asset through the status registry like a loan does: it
must be Available with no open loan or request, or already In Repair (e.g.
after a resolved damage report). Only one job per asset may be IN_PROGRESS.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    Asset,
    AssetStatus,
    Maintenance,
    MaintenanceKind,
    MaintenanceParty,
    MaintenanceStatus,
    Unit,
)
from ..permissions import EntityKind, NEW
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    require_choice,
    require_date,
    require_reason,
    require_text,
)
from .approval_gate import get_actor, require_transition, require_unit_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event
from .status_registry import release_asset, reserve_for_loan


def _load_maintenance(maintenance_id: int) -> Maintenance:
    maintenance = lock_for_update(db.session.query(Maintenance).filter_by(id=maintenance_id)).first()
    if not maintenance:
        raise NotFoundError(f"Maintenance {maintenance_id} not found", field="maintenance_id")
    return maintenance


def _require_status(maintenance: Maintenance, expected: MaintenanceStatus, action: str) -> None:
    if maintenance.status != expected:
        raise InvalidStateError(f"Cannot {action} maintenance in {maintenance.status.value} status")


def _record(maintenance: Maintenance, event_type: str, actor_user_id: int, *, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=EntityKind.MAINTENANCE,
        entity_id=maintenance.id,
        actor_user_id=actor_user_id,
        unit_id=maintenance.asset.unit_id if maintenance.asset else None,
        asset_id=maintenance.asset_id,
        note=note,
        payload=payload,
    )


def report_maintenance(
    asset_id: int,
    actor_user_id: int,
    kind,
    maintenance_date: date | str,
    party_type,
    vendor_name: str,
    phone_number: str,
    photo_proof_path: str | None = None,
    description: str | None = None,
    unit_id: int | None = None,
) -> Maintenance:
    """
    Log a repair or upkeep job on an asset (status: PENDING).

    Args:
        asset_id: Asset to service
        actor_user_id: Asset admin of the asset's unit, or holding admin
        kind: "Perbaikan" (repair) or "Pemeliharaan" (upkeep)
        maintenance_date: Scheduled or actual date of the work
        party_type: "Internal" or "External"
        vendor_name: Workshop, vendor or internal team doing the work
        phone_number: Contact number of the servicing party
        photo_proof_path: Optional stored photo reference
        description: Optional free text
        unit_id: Unit doing the work, when it is not the owning unit

    Raises:
        ValidationError, NotFoundError, UnauthorizedError
    """
    maintenance_kind = require_choice(kind, MaintenanceKind, "type")
    party = require_choice(party_type, MaintenanceParty, "party_type")
    work_date = require_date(maintenance_date, "date")
    vendor = require_text(vendor_name, "vendor_name", max_length=255)
    phone = require_text(phone_number, "phone_number", max_length=20)
    photo = optional_text(photo_proof_path, "photo_proof_path", max_length=512)
    text = optional_text(description, "description", max_length=1000)

    def _op():
        actor = get_actor(actor_user_id)
        asset = db.session.get(Asset, asset_id)
        if not asset:
            raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
        require_transition(actor, EntityKind.MAINTENANCE, NEW, MaintenanceStatus.PENDING)
        require_unit_scope(actor, asset.unit_id, action="log maintenance")
        if unit_id is not None and not db.session.get(Unit, unit_id):
            raise NotFoundError(f"Unit {unit_id} not found", field="unit_id")

        maintenance = Maintenance(
            asset_id=asset.id,
            reported_by_user_id=actor.id,
            type=maintenance_kind,
            date=work_date,
            unit_id=unit_id,
            party_type=party,
            vendor_name=vendor,
            phone_number=phone,
            photo_proof_path=photo,
            description=text,
            status=MaintenanceStatus.PENDING,
        )
        db.session.add(maintenance)
        db.session.flush()  # Get ID

        _record(maintenance, "maintenance.reported", actor.id, note=text, payload={"type": maintenance_kind.value})
        current_app.logger.info(
            "Maintenance %s (%s) logged on asset %s by user %s",
            maintenance.id, maintenance_kind.value, asset.id, actor.id,
        )
        return maintenance

    return run_in_transaction(_op)


def approve_maintenance(maintenance_id: int, actor_user_id: int, validation_notes: str | None = None) -> Maintenance:
    """
    Approve a pending job (PENDING -> IN_PROGRESS).

    SIDE EFFECT: the asset goes In Repair through the status registry.

    Raises:
        NotFoundError, InvalidStateError, UnauthorizedError
        ConflictError: Asset is on loan, reserved, written off, or already
            being worked on by another job
    """
    def _op():
        actor = get_actor(actor_user_id)
        maintenance = _load_maintenance(maintenance_id)
        _require_status(maintenance, MaintenanceStatus.PENDING, "approve")
        require_transition(actor, EntityKind.MAINTENANCE, maintenance.status, MaintenanceStatus.IN_PROGRESS)
        require_unit_scope(actor, maintenance.asset.unit_id, action="approve maintenance")
        notes = optional_text(validation_notes, "validation_notes", max_length=1000)

        running = (
            db.session.query(Maintenance.id)
            .filter(
                Maintenance.asset_id == maintenance.asset_id,
                Maintenance.status == MaintenanceStatus.IN_PROGRESS,
            )
            .first()
        )
        if running:
            raise ConflictError(
                f"Asset {maintenance.asset_id} is already under maintenance {running.id}", field="asset_id"
            )

        asset = lock_for_update(db.session.query(Asset).filter_by(id=maintenance.asset_id)).first()
        if asset.status != AssetStatus.IN_REPAIR:
            reserve_for_loan(
                asset.id,
                (EntityKind.MAINTENANCE, maintenance.id),
                AssetStatus.IN_REPAIR,
                actor_user_id=actor.id,
            )

        maintenance.status = MaintenanceStatus.IN_PROGRESS
        maintenance.validated_by_user_id = actor.id
        maintenance.validation_date = utcnow()
        maintenance.validation_notes = notes
        maintenance.updated_at = utcnow()

        _record(maintenance, "maintenance.approved", actor.id, note=notes)
        current_app.logger.info("Maintenance %s approved by user %s", maintenance.id, actor.id)
        return maintenance

    return run_in_transaction(_op)


def reject_maintenance(maintenance_id: int, actor_user_id: int, validation_notes: str) -> Maintenance:
    """Turn down a pending job (PENDING -> CANCELLED); the asset is left alone."""
    def _op():
        actor = get_actor(actor_user_id)
        maintenance = _load_maintenance(maintenance_id)
        _require_status(maintenance, MaintenanceStatus.PENDING, "reject")
        require_transition(actor, EntityKind.MAINTENANCE, maintenance.status, MaintenanceStatus.CANCELLED)
        require_unit_scope(actor, maintenance.asset.unit_id, action="reject maintenance")
        notes = require_reason(validation_notes, "validation_notes")

        maintenance.status = MaintenanceStatus.CANCELLED
        maintenance.validated_by_user_id = actor.id
        maintenance.validation_date = utcnow()
        maintenance.validation_notes = notes
        maintenance.updated_at = utcnow()

        _record(maintenance, "maintenance.rejected", actor.id, note=notes)
        current_app.logger.info("Maintenance %s rejected by user %s", maintenance.id, actor.id)
        return maintenance

    return run_in_transaction(_op)


def complete_maintenance(maintenance_id: int, actor_user_id: int) -> Maintenance:
    """
    Finish a running job (IN_PROGRESS -> COMPLETED).

    SIDE EFFECT: the asset returns to Available, unless something else
    (a loss report) moved it off In Repair in the meantime.
    """
    def _op():
        actor = get_actor(actor_user_id)
        maintenance = _load_maintenance(maintenance_id)
        _require_status(maintenance, MaintenanceStatus.IN_PROGRESS, "complete")
        require_transition(actor, EntityKind.MAINTENANCE, maintenance.status, MaintenanceStatus.COMPLETED)
        require_unit_scope(actor, maintenance.asset.unit_id, action="complete maintenance")

        maintenance.status = MaintenanceStatus.COMPLETED
        maintenance.completed_by_user_id = actor.id
        maintenance.completion_date = utcnow()
        maintenance.updated_at = utcnow()

        asset = release_asset(
            maintenance.asset_id,
            AssetStatus.IN_REPAIR,
            (EntityKind.MAINTENANCE, maintenance.id),
            actor_user_id=actor.id,
        )

        _record(maintenance, "maintenance.completed", actor.id, payload={"asset_status": asset.status.value})
        current_app.logger.info(
            "Maintenance %s completed by user %s; asset %s is %s",
            maintenance.id, actor.id, asset.id, asset.status.value,
        )
        return maintenance

    return run_in_transaction(_op)


# -- Queries --

def list_maintenances(unit_id: int | None = None, status=None, asset_id: int | None = None) -> list[Maintenance]:
    """Jobs newest first, optionally narrowed to the owning unit, a status or an asset."""
    q = db.session.query(Maintenance)
    if unit_id is not None:
        q = q.join(Asset, Maintenance.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
    if status is not None:
        q = q.filter(Maintenance.status == require_choice(status, MaintenanceStatus, "status"))
    if asset_id is not None:
        q = q.filter(Maintenance.asset_id == asset_id)
    return q.order_by(Maintenance.created_at.desc(), Maintenance.id.desc()).all()


def get_active_maintenance(asset_id: int) -> Maintenance | None:
    return (
        db.session.query(Maintenance)
        .filter(Maintenance.asset_id == asset_id, Maintenance.status == MaintenanceStatus.IN_PROGRESS)
        .first()
    )


def get_maintenance_summary(maintenance_id: int) -> dict:
    maintenance = db.session.get(Maintenance, maintenance_id)
    if not maintenance:
        raise NotFoundError(f"Maintenance {maintenance_id} not found", field="maintenance_id")
    return {
        **maintenance.to_dict(),
        "asset": maintenance.asset.to_dict() if maintenance.asset else None,
        "reported_by": maintenance.reported_by.to_dict() if maintenance.reported_by else None,
    }
