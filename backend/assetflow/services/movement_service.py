# Overview: Service-layer operations for moving asset ownership between units.

"""
Asset movement workflow.

LIFECYCLE:
1. PENDING: An admin of the owning unit asked to hand the asset to another unit
2. APPROVED: The receiving unit accepted; Asset.unit_id now points at it
3. REJECTED: The receiving unit refused, with a reason
4. CANCELLED: The requester withdrew it before validation

Only admins of the receiving unit (or holding admins) validate. An asset
has at most one PENDING movement, and the unit write itself goes through the
status registry, which refuses held or written-off assets.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import Asset, AssetMovement, MovementStatus, Unit
from ..permissions import EntityKind, NEW
from ..time_utils import utcnow
from ..validation import optional_text, require_choice, require_reason
from .approval_gate import get_actor, is_holding_level, require_transition, require_unit_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event
from .status_registry import UNMOVABLE_STATUSES, move_asset_to_unit


def _load_movement(movement_id: int) -> AssetMovement:
    movement = lock_for_update(db.session.query(AssetMovement).filter_by(id=movement_id)).first()
    if not movement:
        raise NotFoundError(f"Asset movement {movement_id} not found", field="movement_id")
    return movement


def _require_pending(movement: AssetMovement, action: str) -> None:
    if movement.status != MovementStatus.PENDING:
        raise InvalidStateError(f"Cannot {action} asset movement in {movement.status.value} status")


def _record(movement: AssetMovement, event_type: str, actor_user_id: int, *, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=EntityKind.ASSET_MOVEMENT,
        entity_id=movement.id,
        actor_user_id=actor_user_id,
        unit_id=movement.from_unit_id,
        asset_id=movement.asset_id,
        note=note,
        payload=payload,
    )


def request_movement(
    asset_id: int,
    actor_user_id: int,
    to_unit_id: int,
    notes: str | None = None,
) -> AssetMovement:
    """
    Ask to move an asset to another unit (status: PENDING).

    Raises:
        NotFoundError: Asset or destination unit does not exist
        UnauthorizedError: Actor may not manage the asset's unit
        ValidationError: Destination is the current unit, or inactive
        ConflictError: Asset already has a pending movement, or is written off
    """
    text = optional_text(notes, "notes", max_length=1000)

    def _op():
        actor = get_actor(actor_user_id)
        asset = lock_for_update(db.session.query(Asset).filter_by(id=asset_id)).first()
        if not asset:
            raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
        require_transition(actor, EntityKind.ASSET_MOVEMENT, NEW, MovementStatus.PENDING)
        require_unit_scope(actor, asset.unit_id, action="move assets")

        destination = db.session.get(Unit, to_unit_id)
        if not destination:
            raise NotFoundError(f"Unit {to_unit_id} not found", field="to_unit_id")
        if not destination.is_active:
            raise ValidationError(f"Unit {destination.name} is inactive", field="to_unit_id")
        if destination.id == asset.unit_id:
            raise ValidationError("Asset already belongs to that unit", field="to_unit_id")
        if asset.status in UNMOVABLE_STATUSES:
            raise ConflictError(
                f"Asset {asset.id} cannot be moved (status: {asset.status.value})", field="asset_id"
            )

        pending = (
            db.session.query(AssetMovement.id)
            .filter(AssetMovement.asset_id == asset.id, AssetMovement.status == MovementStatus.PENDING)
            .first()
        )
        if pending:
            raise ConflictError(f"Asset {asset.id} already has pending movement {pending.id}", field="asset_id")

        movement = AssetMovement(
            asset_id=asset.id,
            from_unit_id=asset.unit_id,
            to_unit_id=destination.id,
            requested_by_user_id=actor.id,
            status=MovementStatus.PENDING,
            notes=text,
            requested_at=utcnow(),
        )
        db.session.add(movement)
        db.session.flush()  # Get ID

        _record(
            movement,
            "asset_movement.requested",
            actor.id,
            note=text,
            payload={"from_unit_id": movement.from_unit_id, "to_unit_id": movement.to_unit_id},
        )
        current_app.logger.info(
            "Movement %s requested: asset %s from unit %s to unit %s by user %s",
            movement.id, asset.id, movement.from_unit_id, movement.to_unit_id, actor.id,
        )
        return movement

    return run_in_transaction(_op)


def approve_movement(movement_id: int, actor_user_id: int) -> AssetMovement:
    """
    Accept a pending movement on behalf of the receiving unit (PENDING -> APPROVED).

    SIDE EFFECT: the asset's owning unit becomes the destination.

    Raises:
        NotFoundError, InvalidStateError, UnauthorizedError
        ConflictError: Asset changed unit since the request, is on loan or
            reserved, or was written off
    """
    def _op():
        actor = get_actor(actor_user_id)
        movement = _load_movement(movement_id)
        _require_pending(movement, "approve")
        require_transition(actor, EntityKind.ASSET_MOVEMENT, movement.status, MovementStatus.APPROVED)
        require_unit_scope(actor, movement.to_unit_id, action="accept assets")

        move_asset_to_unit(
            movement.asset_id,
            movement.to_unit_id,
            (EntityKind.ASSET_MOVEMENT, movement.id),
            expected_unit_id=movement.from_unit_id,
            actor_user_id=actor.id,
        )

        movement.status = MovementStatus.APPROVED
        movement.validated_by_user_id = actor.id
        movement.validated_at = utcnow()

        _record(movement, "asset_movement.approved", actor.id)
        current_app.logger.info("Movement %s approved by user %s", movement.id, actor.id)
        return movement

    return run_in_transaction(_op)


def reject_movement(movement_id: int, actor_user_id: int, reason: str) -> AssetMovement:
    """Refuse a pending movement (PENDING -> REJECTED); the asset stays put."""
    def _op():
        actor = get_actor(actor_user_id)
        movement = _load_movement(movement_id)
        _require_pending(movement, "reject")
        require_transition(actor, EntityKind.ASSET_MOVEMENT, movement.status, MovementStatus.REJECTED)
        require_unit_scope(actor, movement.to_unit_id, action="refuse assets")
        rejection_reason = require_reason(reason, "rejection_reason")

        movement.status = MovementStatus.REJECTED
        movement.validated_by_user_id = actor.id
        movement.validated_at = utcnow()
        movement.rejection_reason = rejection_reason

        _record(movement, "asset_movement.rejected", actor.id, note=rejection_reason)
        current_app.logger.info("Movement %s rejected by user %s", movement.id, actor.id)
        return movement

    return run_in_transaction(_op)


def cancel_movement(movement_id: int, actor_user_id: int) -> AssetMovement:
    """Withdraw a pending movement (PENDING -> CANCELLED). Requester or holding admin only."""
    def _op():
        actor = get_actor(actor_user_id)
        movement = _load_movement(movement_id)
        _require_pending(movement, "cancel")
        require_transition(actor, EntityKind.ASSET_MOVEMENT, movement.status, MovementStatus.CANCELLED)
        if movement.requested_by_user_id != actor.id and not is_holding_level(actor):
            raise UnauthorizedError("Only the requester can cancel this asset movement")

        movement.status = MovementStatus.CANCELLED

        _record(movement, "asset_movement.cancelled", actor.id)
        current_app.logger.info("Movement %s cancelled by user %s", movement.id, actor.id)
        return movement

    return run_in_transaction(_op)


# -- Queries --

def list_pending_movements(to_unit_id: int | None = None) -> list[AssetMovement]:
    """Validation queue of the receiving unit, oldest first."""
    q = db.session.query(AssetMovement).filter(AssetMovement.status == MovementStatus.PENDING)
    if to_unit_id is not None:
        q = q.filter(AssetMovement.to_unit_id == to_unit_id)
    return q.order_by(AssetMovement.requested_at.asc(), AssetMovement.id.asc()).all()


def list_movements(unit_id: int | None = None, status=None) -> list[AssetMovement]:
    """Movements into or out of a unit, newest first."""
    q = db.session.query(AssetMovement)
    if unit_id is not None:
        q = q.filter((AssetMovement.from_unit_id == unit_id) | (AssetMovement.to_unit_id == unit_id))
    if status is not None:
        q = q.filter(AssetMovement.status == require_choice(status, MovementStatus, "status"))
    return q.order_by(AssetMovement.requested_at.desc(), AssetMovement.id.desc()).all()


def get_asset_movement_history(asset_id: int) -> list[AssetMovement]:
    if not db.session.get(Asset, asset_id):
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    return (
        db.session.query(AssetMovement)
        .filter_by(asset_id=asset_id)
        .order_by(AssetMovement.requested_at.asc(), AssetMovement.id.asc())
        .all()
    )


def get_movement_summary(movement_id: int) -> dict:
    movement = db.session.get(AssetMovement, movement_id)
    if not movement:
        raise NotFoundError(f"Asset movement {movement_id} not found", field="movement_id")
    return {
        **movement.to_dict(),
        "asset": movement.asset.to_dict() if movement.asset else None,
        "from_unit": movement.from_unit.to_dict() if movement.from_unit else None,
        "to_unit": movement.to_unit.to_dict() if movement.to_unit else None,
    }
