# Overview: Service-layer operations for asset status; the single writer of Asset.status.

"""
Asset Status Registry

Asset.status (and the owning unit) is shared by the loan, inter-unit
request, incident, maintenance and movement workflows. None of them write
it directly: every change goes through this module, which serializes
writers with a compare-and-swap on Asset.lock_version.

WRITES:
- set_asset_status(): unconditional status write (incident resolution,
  damaged or lost returns). A lost CAS race raises StaleDataError so the
  enclosing transaction is retried from the top.
- reserve_for_loan(): check-then-act hold acquisition, also used to
  re-confirm a hold when a loan is approved. Availability is re-checked
  under the row lock and the CAS must succeed, otherwise ConflictError.
  Two approvals of the same asset can never both commit.
- release_asset(): hands a held asset back to Available, but only from the
  status the hold left it in. An asset an incident marked Lost or In Repair
  meanwhile keeps that status.
- move_asset_to_unit(): changes the owning unit of an unheld asset.

None of them commit. They run inside the caller's transaction so
the status write and the workflow write land (or roll back) together.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    ACTIVE_LOAN_STATUSES,
    ACTIVE_REQUEST_LOAN_STATUSES,
    Asset,
    AssetLoan,
    AssetRequest,
    AssetStatus,
    RequestStatus,
    WorkflowEvent,
)
from ..permissions import EntityKind
from ..time_utils import utcnow
from .concurrency import lock_for_update
from .ledger_service import append_workflow_event, list_events_for_asset


STATUS_CHANGED_EVENT = "asset.status_changed"
RESERVED_EVENT = "asset.reserved"
RELEASE_SKIPPED_EVENT = "asset.release_skipped"
UNIT_CHANGED_EVENT = "asset.unit_changed"

# Written off assets stay where the books last put them
UNMOVABLE_STATUSES = (AssetStatus.LOST, AssetStatus.DISPOSED)


def _coerce_status(new_status) -> AssetStatus:
    if isinstance(new_status, AssetStatus):
        return new_status
    try:
        return AssetStatus(new_status)
    except ValueError:
        raise InvalidStateError(f"Unknown asset status: {new_status!r}", field="status")


def _load_asset(asset_id: int) -> Asset:
    asset = lock_for_update(db.session.query(Asset).filter_by(id=asset_id)).first()
    if not asset:
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    return asset


def _compare_and_swap(asset: Asset, values: dict) -> bool:
    """UPDATE assets SET ... WHERE id = :id AND lock_version = :seen."""
    seen = asset.lock_version
    values = {**values, Asset.lock_version: seen + 1, Asset.updated_at: utcnow()}
    rows = (
        db.session.query(Asset)
        .filter(Asset.id == asset.id, Asset.lock_version == seen)
        .update(values, synchronize_session="evaluate")
    )
    return rows == 1


def _has_active_hold(asset_id: int, exclude=None) -> bool:
    """
    Any open loan or bound inter-unit request on the asset.

    exclude is the (entity_type, entity_id) taking the hold; its own row
    does not count against it.
    """
    exclude_type, exclude_id = _causing_fields(exclude)

    loan_q = db.session.query(AssetLoan.id).filter(
        AssetLoan.asset_id == asset_id, AssetLoan.status.in_(ACTIVE_LOAN_STATUSES)
    )
    if exclude_type == EntityKind.ASSET_LOAN:
        loan_q = loan_q.filter(AssetLoan.id != exclude_id)
    if loan_q.first():
        return True

    request_q = db.session.query(AssetRequest.id).filter(
        AssetRequest.asset_id == asset_id,
        AssetRequest.status == RequestStatus.APPROVED,
        AssetRequest.loan_status.in_(ACTIVE_REQUEST_LOAN_STATUSES),
    )
    if exclude_type == EntityKind.ASSET_REQUEST:
        request_q = request_q.filter(AssetRequest.id != exclude_id)
    return request_q.first() is not None


def _causing_fields(causing_entity) -> tuple[str | None, int | None]:
    if causing_entity is None:
        return None, None
    entity_type, entity_id = causing_entity
    return entity_type, entity_id


def is_available_for_loan(asset_id: int) -> bool:
    """
    True iff the asset exists, sits in the Available baseline and no loan or
    approved inter-unit request currently holds it.
    """
    asset = db.session.get(Asset, asset_id)
    if not asset:
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    if asset.status != AssetStatus.AVAILABLE:
        return False
    return not _has_active_hold(asset_id)


def set_asset_status(
    asset_id: int,
    new_status,
    causing_entity: tuple[str, int] | None = None,
    *,
    actor_user_id: int | None = None,
) -> Asset:
    """
    Write an asset's status on behalf of a workflow.

    Args:
        asset_id: Asset to update
        new_status: AssetStatus member or its stored string
        causing_entity: (entity_type, entity_id) of the workflow record
            that caused the change, recorded on the ledger event
        actor_user_id: Actor issuing the workflow command

    Returns:
        The updated Asset

    Raises:
        NotFoundError: Asset does not exist
        InvalidStateError: new_status is not a valid asset status
        StaleDataError: Another writer changed the asset concurrently
    """
    status = _coerce_status(new_status)
    asset = _load_asset(asset_id)
    previous = asset.status

    if not _compare_and_swap(asset, {Asset.status: status}):
        raise StaleDataError(f"Asset {asset_id} was modified concurrently")

    entity_type, entity_id = _causing_fields(causing_entity)
    append_workflow_event(
        event_type=STATUS_CHANGED_EVENT,
        entity_type="asset",
        entity_id=asset.id,
        actor_user_id=actor_user_id,
        unit_id=asset.unit_id,
        asset_id=asset.id,
        payload={
            "from": previous.value if previous else None,
            "to": status.value,
            "caused_by_type": entity_type,
            "caused_by_id": entity_id,
        },
    )
    current_app.logger.info(
        "Asset %s status %s -> %s (caused by %s %s)",
        asset.id, previous.value if previous else None, status.value, entity_type, entity_id,
    )
    return asset


def reserve_for_loan(
    asset_id: int,
    causing_entity: tuple[str, int] | None = None,
    new_status=None,
    *,
    actor_user_id: int | None = None,
) -> Asset:
    """
    Atomically check availability and take a hold on an asset.

    Bumps lock_version (and optionally writes new_status) with a
    compare-and-swap, so a concurrent reservation that read the same
    version fails instead of doubling the hold.

    Raises:
        NotFoundError: Asset does not exist
        ConflictError: Asset is not available, or another writer won the race
    """
    status = _coerce_status(new_status) if new_status is not None else None
    asset = _load_asset(asset_id)

    if asset.status != AssetStatus.AVAILABLE:
        raise ConflictError(
            f"Asset {asset_id} is not available (status: {asset.status.value})",
            field="asset_id",
        )
    if _has_active_hold(asset_id, exclude=causing_entity):
        raise ConflictError(f"Asset {asset_id} is already on loan or reserved", field="asset_id")

    previous = asset.status
    values = {Asset.status: status} if status is not None else {}
    if not _compare_and_swap(asset, values):
        current_app.logger.warning("Reservation race lost on asset %s", asset_id)
        raise ConflictError(f"Asset {asset_id} was reserved concurrently", field="asset_id")

    entity_type, entity_id = _causing_fields(causing_entity)
    payload = {"caused_by_type": entity_type, "caused_by_id": entity_id}
    if status is not None:
        payload.update({"from": previous.value, "to": status.value})
    append_workflow_event(
        event_type=STATUS_CHANGED_EVENT if status is not None else RESERVED_EVENT,
        entity_type="asset",
        entity_id=asset.id,
        actor_user_id=actor_user_id,
        unit_id=asset.unit_id,
        asset_id=asset.id,
        payload=payload,
    )
    current_app.logger.info("Asset %s reserved by %s %s", asset.id, entity_type, entity_id)
    return asset


def release_asset(
    asset_id: int,
    held_status,
    causing_entity: tuple[str, int] | None = None,
    *,
    actor_user_id: int | None = None,
) -> Asset:
    """
    Return a held asset to Available at the end of a loan, request or repair.

    held_status is the status the hold left the asset in (Available for a
    single-unit loan, In Use for an inter-unit request, In Repair for
    maintenance). If another workflow changed it meanwhile, typically an
    incident resolved as Lost or In Repair, that status is kept and the
    skipped release is logged and recorded on the ledger.
    """
    expected = _coerce_status(held_status)
    asset = _load_asset(asset_id)
    if asset.status == expected:
        return set_asset_status(asset.id, AssetStatus.AVAILABLE, causing_entity, actor_user_id=actor_user_id)

    entity_type, entity_id = _causing_fields(causing_entity)
    current_app.logger.warning(
        "Asset %s left %s on release by %s %s (expected %s)",
        asset.id, asset.status.value, entity_type, entity_id, expected.value,
    )
    append_workflow_event(
        event_type=RELEASE_SKIPPED_EVENT,
        entity_type="asset",
        entity_id=asset.id,
        actor_user_id=actor_user_id,
        unit_id=asset.unit_id,
        asset_id=asset.id,
        payload={
            "status": asset.status.value,
            "expected": expected.value,
            "caused_by_type": entity_type,
            "caused_by_id": entity_id,
        },
    )
    return asset


def move_asset_to_unit(
    asset_id: int,
    to_unit_id: int,
    causing_entity: tuple[str, int] | None = None,
    *,
    expected_unit_id: int | None = None,
    actor_user_id: int | None = None,
) -> Asset:
    """
    Change the owning unit of an asset.

    Raises:
        NotFoundError: Asset does not exist
        ConflictError: Asset moved since expected_unit_id was read, is Lost
            or Disposed, is held by a loan or request, or another writer
            won the race
    """
    asset = _load_asset(asset_id)
    if expected_unit_id is not None and asset.unit_id != expected_unit_id:
        raise ConflictError(
            f"Asset {asset_id} no longer belongs to unit {expected_unit_id}", field="asset_id"
        )
    if asset.status in UNMOVABLE_STATUSES:
        raise ConflictError(
            f"Asset {asset_id} cannot be moved (status: {asset.status.value})", field="asset_id"
        )
    if _has_active_hold(asset_id):
        raise ConflictError(f"Asset {asset_id} is on loan or reserved", field="asset_id")

    previous_unit_id = asset.unit_id
    if not _compare_and_swap(asset, {Asset.unit_id: to_unit_id}):
        current_app.logger.warning("Unit move race lost on asset %s", asset_id)
        raise ConflictError(f"Asset {asset_id} was modified concurrently", field="asset_id")

    entity_type, entity_id = _causing_fields(causing_entity)
    append_workflow_event(
        event_type=UNIT_CHANGED_EVENT,
        entity_type="asset",
        entity_id=asset.id,
        actor_user_id=actor_user_id,
        unit_id=to_unit_id,
        asset_id=asset.id,
        payload={
            "from_unit_id": previous_unit_id,
            "to_unit_id": to_unit_id,
            "caused_by_type": entity_type,
            "caused_by_id": entity_id,
        },
    )
    current_app.logger.info(
        "Asset %s moved from unit %s to unit %s (caused by %s %s)",
        asset.id, previous_unit_id, to_unit_id, entity_type, entity_id,
    )
    return asset


def get_asset_status_history(asset_id: int) -> list[WorkflowEvent]:
    """Status-change events for one asset, oldest first."""
    if not db.session.get(Asset, asset_id):
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    return list_events_for_asset(asset_id, event_type=STATUS_CHANGED_EVENT)
