# Overview: Service-layer operations for inventory audits; reconciles scanned assets against a unit's expected set.

"""
Inventory audit reconciliation.

WHY: Physically verify that a unit still holds the assets its records say it
holds, and surface assets sitting in the wrong unit.

LIFECYCLE:
1. in_progress: Opened; expected set snapshotted (unit's non-disposed assets)
2. completed: Closed (terminal). Missing assets are a valid outcome.

RECONCILIATION:
- found      = scanned assets that are in the expected set
- misplaced  = scanned assets that are not (with the unit they belong to)
- missing    = expected - found, always computed on read, never stored

Each scan is idempotent per (audit, asset): a rescan never adds a second
finding. Findings are append-only rows with a unique (audit, asset)
constraint; every scan also bumps the audit's version so concurrent scans
on one session serialize and re-read current findings before appending.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidStateError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import (
    Asset,
    AssetStatus,
    AuditFinding,
    AuditStatus,
    FindingKind,
    InventoryAudit,
    Role,
    ScanMode,
    Unit,
)
from ..permissions import EntityKind, HOLDING_ADMINS, NEW
from ..time_utils import utcnow
from ..validation import optional_text, require_choice, require_text
from .approval_gate import get_actor, in_unit, require_transition
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event


SCAN_SUCCESS = "success"
SCAN_INFO = "info"


@dataclass
class ScanResult:
    """
    Outcome of one scan.

    type is "success" for an expected asset and "info" for a misplaced one.
    already_scanned is True when the scan changed nothing.
    """
    type: str
    asset: Asset
    finding: AuditFinding
    already_scanned: bool = False
    actual_unit_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "asset": self.asset.to_dict(),
            "finding": self.finding.to_dict(),
            "already_scanned": self.already_scanned,
            "actual_unit_id": self.actual_unit_id,
        }


def _load_audit(audit_id: int) -> InventoryAudit:
    audit = lock_for_update(db.session.query(InventoryAudit).filter_by(id=audit_id)).first()
    if not audit:
        raise NotFoundError(f"Audit {audit_id} not found", field="audit_id")
    return audit


def _require_audit_scope(actor, unit_id: int) -> None:
    """Holding admins and auditors audit any unit; unit admins only their own."""
    if actor.role in HOLDING_ADMINS or actor.role == Role.AUDITOR:
        return
    if not in_unit(actor, unit_id):
        current_app.logger.warning("Audit of unit %s denied for user %s", unit_id, actor.id)
        raise UnauthorizedError("Not permitted to audit outside your unit")


def _require_open(audit: InventoryAudit, action: str) -> None:
    if audit.status != AuditStatus.OPEN:
        raise InvalidStateError(f"Cannot {action} audit {audit.audit_code}: audit is {audit.status.value}")


def _next_audit_code(now) -> str:
    """AUD-YYYYMMDD-NNN, numbered per day."""
    prefix = f"{current_app.config.get('AUDIT_CODE_PREFIX', 'AUD')}-{now:%Y%m%d}-"
    latest = (
        db.session.query(InventoryAudit.audit_code)
        .filter(InventoryAudit.audit_code.like(f"{prefix}%"))
        .order_by(InventoryAudit.audit_code.desc())
        .first()
    )
    next_num = int(latest.audit_code[len(prefix):]) + 1 if latest else 1
    return f"{prefix}{next_num:03d}"


def _resolve_asset(identifier: str) -> Asset | None:
    """Numeric identifiers are asset ids; anything else is an asset tag (QR label)."""
    if identifier.isdigit():
        asset = db.session.get(Asset, int(identifier))
        if asset:
            return asset
    return db.session.query(Asset).filter_by(asset_tag=identifier).first()


def _record(audit: InventoryAudit, event_type: str, actor_user_id: int, *, asset_id=None, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=EntityKind.INVENTORY_AUDIT,
        entity_id=audit.id,
        actor_user_id=actor_user_id,
        unit_id=audit.unit_id,
        asset_id=asset_id,
        note=note,
        payload=payload,
    )


def open_audit(
    unit_id: int,
    actor_user_id: int,
    scan_mode=ScanMode.CAMERA,
    notes: str | None = None,
) -> InventoryAudit:
    """
    Open an audit session for a unit (status: in_progress).

    Args:
        unit_id: Unit being audited
        actor_user_id: Auditor
        scan_mode: "camera" (QR) or "manual" (typed identifiers)
        notes: Optional free text

    Returns:
        InventoryAudit with expected_asset_ids snapshotted from the unit's
        non-disposed assets

    Raises:
        NotFoundError: Unit or actor does not exist
        UnauthorizedError: Role may not audit, or unit admin auditing another unit
    """
    mode = require_choice(scan_mode, ScanMode, "scan_mode")
    audit_notes = optional_text(notes, "notes")

    def _op():
        actor = get_actor(actor_user_id)
        unit = db.session.get(Unit, unit_id)
        if not unit:
            raise NotFoundError(f"Unit {unit_id} not found", field="unit_id")
        require_transition(actor, EntityKind.INVENTORY_AUDIT, NEW, AuditStatus.OPEN)
        _require_audit_scope(actor, unit.id)

        expected = [
            row.id
            for row in db.session.query(Asset.id)
            .filter(Asset.unit_id == unit.id, Asset.status != AssetStatus.DISPOSED)
            .order_by(Asset.id.asc())
            .all()
        ]
        now = utcnow()
        audit = InventoryAudit(
            audit_code=_next_audit_code(now),
            unit_id=unit.id,
            auditor_id=actor.id,
            scan_mode=mode,
            status=AuditStatus.OPEN,
            expected_asset_ids=expected,
            started_at=now,
            notes=audit_notes,
        )
        db.session.add(audit)
        db.session.flush()  # Get ID

        _record(audit, "inventory_audit.opened", actor.id, payload={"expected_count": len(expected)})
        current_app.logger.info(
            "Audit %s opened for unit %s by user %s (%d expected)",
            audit.audit_code, unit.id, actor.id, len(expected),
        )
        return audit

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        # Same-day audit code taken by a concurrent open; allocate the next one
        return run_in_transaction(_op)


def scan_asset(audit_id: int, actor_user_id: int, identifier) -> ScanResult:
    """
    Record one scanned identifier against an open audit.

    Args:
        audit_id: Open audit session
        actor_user_id: Scanning operator
        identifier: Decoded QR text or typed value; digits resolve by asset
            id, anything else by asset_tag

    Returns:
        ScanResult "success" when the asset is expected (added to found),
        "info" when it is not (recorded as misplaced with its actual unit)

    Raises:
        NotFoundError: Identifier matches no asset (nothing is recorded)
        InvalidStateError: Audit already completed
    """
    scanned = require_text(None if identifier is None else str(identifier), "identifier", max_length=128)

    def _op():
        actor = get_actor(actor_user_id)
        audit = _load_audit(audit_id)
        _require_open(audit, "scan into")
        require_transition(actor, EntityKind.INVENTORY_AUDIT, audit.status, AuditStatus.OPEN)
        _require_audit_scope(actor, audit.unit_id)

        asset = _resolve_asset(scanned)
        if not asset:
            raise NotFoundError(f"Asset not found for identifier {scanned!r}", field="identifier")

        expected = set(audit.expected_asset_ids or [])
        kind = FindingKind.FOUND if asset.id in expected else FindingKind.MISPLACED
        result_type = SCAN_SUCCESS if kind == FindingKind.FOUND else SCAN_INFO
        actual_unit_id = asset.unit_id if kind == FindingKind.MISPLACED else None

        finding = (
            db.session.query(AuditFinding)
            .filter_by(audit_id=audit.id, asset_id=asset.id)
            .first()
        )
        if finding is not None:
            if kind == FindingKind.MISPLACED and finding.actual_unit_id != actual_unit_id:
                finding.actual_unit_id = actual_unit_id
                audit.last_scanned_at = utcnow()
            return ScanResult(
                type=result_type,
                asset=asset,
                finding=finding,
                already_scanned=True,
                actual_unit_id=actual_unit_id,
            )

        now = utcnow()
        finding = AuditFinding(
            audit_id=audit.id,
            asset_id=asset.id,
            kind=kind,
            actual_unit_id=actual_unit_id,
            scanned_identifier=scanned,
            scanned_by_user_id=actor.id,
            scanned_at=now,
        )
        db.session.add(finding)
        audit.last_scanned_at = now
        db.session.flush()

        _record(
            audit,
            f"inventory_audit.asset_{kind.value}",
            actor.id,
            asset_id=asset.id,
            payload={"identifier": scanned, "actual_unit_id": actual_unit_id},
        )
        if kind == FindingKind.MISPLACED:
            current_app.logger.info(
                "Audit %s: asset %s misplaced (belongs to unit %s)", audit.audit_code, asset.id, actual_unit_id
            )
        else:
            current_app.logger.info("Audit %s: asset %s found", audit.audit_code, asset.id)
        return ScanResult(type=result_type, asset=asset, finding=finding, actual_unit_id=actual_unit_id)

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        # A concurrent scan of the same asset won the insert; re-run to read its finding
        return run_in_transaction(_op)


def complete_audit(audit_id: int, actor_user_id: int, notes: str | None = None) -> InventoryAudit:
    """
    Close an audit (in_progress -> completed).

    Missing assets do not block completion; the gap is the audit's result.
    """
    completion_notes = optional_text(notes, "notes")

    def _op():
        actor = get_actor(actor_user_id)
        audit = _load_audit(audit_id)
        _require_open(audit, "complete")
        require_transition(actor, EntityKind.INVENTORY_AUDIT, audit.status, AuditStatus.COMPLETED)
        _require_audit_scope(actor, audit.unit_id)

        audit.status = AuditStatus.COMPLETED
        audit.completed_at = utcnow()
        if completion_notes:
            audit.notes = f"{audit.notes}\n{completion_notes}" if audit.notes else completion_notes

        missing = get_missing_asset_ids(audit.id)
        _record(
            audit,
            "inventory_audit.completed",
            actor.id,
            note=completion_notes,
            payload={"missing_count": len(missing)},
        )
        current_app.logger.info(
            "Audit %s completed by user %s (%d missing)", audit.audit_code, actor.id, len(missing)
        )
        return audit

    return run_in_transaction(_op)


# -- Queries --

def _findings(audit_id: int, kind: FindingKind) -> list[AuditFinding]:
    return (
        db.session.query(AuditFinding)
        .filter_by(audit_id=audit_id, kind=kind)
        .order_by(AuditFinding.scanned_at.asc(), AuditFinding.id.asc())
        .all()
    )


def _require_audit(audit_id: int) -> InventoryAudit:
    audit = db.session.get(InventoryAudit, audit_id)
    if not audit:
        raise NotFoundError(f"Audit {audit_id} not found", field="audit_id")
    return audit


def get_found_asset_ids(audit_id: int) -> list[int]:
    _require_audit(audit_id)
    return sorted(f.asset_id for f in _findings(audit_id, FindingKind.FOUND))


def get_missing_asset_ids(audit_id: int) -> list[int]:
    """expected - found, computed fresh on every call."""
    audit = _require_audit(audit_id)
    found = {f.asset_id for f in _findings(audit_id, FindingKind.FOUND)}
    return sorted(set(audit.expected_asset_ids or []) - found)


def get_misplaced_assets(audit_id: int) -> list[dict]:
    _require_audit(audit_id)
    misplaced = []
    for finding in _findings(audit_id, FindingKind.MISPLACED):
        misplaced.append({
            "asset_id": finding.asset_id,
            "asset_tag": finding.asset.asset_tag if finding.asset else None,
            "name": finding.asset.name if finding.asset else None,
            "actual_unit_id": finding.actual_unit_id,
            "actual_unit_name": finding.actual_unit.name if finding.actual_unit else None,
            "scanned_at": finding.to_dict()["scanned_at"],
        })
    return misplaced


def get_audit_summary(audit_id: int) -> dict:
    """Audit with found/missing/misplaced breakdown and completion percentage."""
    audit = _require_audit(audit_id)
    expected = list(audit.expected_asset_ids or [])
    found = get_found_asset_ids(audit.id)
    missing = get_missing_asset_ids(audit.id)
    misplaced = get_misplaced_assets(audit.id)
    completion = round(len(found) / len(expected) * 100, 2) if expected else 0
    return {
        **audit.to_dict(),
        "expected_count": len(expected),
        "found_count": len(found),
        "missing_count": len(missing),
        "misplaced_count": len(misplaced),
        "found_asset_ids": found,
        "missing_asset_ids": missing,
        "misplaced_assets": misplaced,
        "completion_percentage": completion,
    }


def list_audits(unit_id: int | None = None, status=None) -> list[InventoryAudit]:
    q = db.session.query(InventoryAudit)
    if unit_id is not None:
        q = q.filter(InventoryAudit.unit_id == unit_id)
    if status is not None:
        q = q.filter(InventoryAudit.status == require_choice(status, AuditStatus, "status"))
    return q.order_by(InventoryAudit.started_at.desc(), InventoryAudit.id.desc()).all()
