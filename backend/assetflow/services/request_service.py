# Overview: Service-layer operations for inter-unit asset requests.

"""
Inter-unit request workflow.

A unit asks the holding for an asset by name/category. A holding-level admin
reviews it and binds a concrete asset from another unit, either when
approving or later via assign_asset(). Binding reserves the asset and marks
it In Use.

REVIEW LIFECYCLE:
1. PENDING: Request created, no asset bound
2. APPROVED: Reviewed and accepted
3. REJECTED: Reviewed and refused (terminal)

LOAN LIFECYCLE (loan_status, meaningful once APPROVED):
NOT_STARTED -> ACTIVE -> PENDING_RETURN -> RETURNED
- ACTIVE past its expected return date becomes OVERDUE (mark_overdue_requests)
- OVERDUE accepts a return submission like ACTIVE
- A rejected return sends PENDING_RETURN back to ACTIVE
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import (
    Asset,
    AssetRequest,
    AssetStatus,
    RequestLoanStatus,
    RequestStatus,
    Unit,
)
from ..permissions import EntityKind, NEW
from ..time_utils import today, utcnow
from ..validation import (
    optional_text,
    require_choice,
    require_date,
    require_reference,
    require_text,
    require_time_window,
)
from .approval_gate import get_actor, in_unit, is_holding_level, require_transition
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event
from .status_registry import release_asset, reserve_for_loan


# loan_status values from which the requester may hand the asset back
RETURNABLE_LOAN_STATUSES = (RequestLoanStatus.ACTIVE, RequestLoanStatus.OVERDUE)


def _load_request(request_id: int) -> AssetRequest:
    asset_request = lock_for_update(db.session.query(AssetRequest).filter_by(id=request_id)).first()
    if not asset_request:
        raise NotFoundError(f"Request {request_id} not found", field="request_id")
    return asset_request


def _require_review_status(asset_request: AssetRequest, expected: RequestStatus, action: str) -> None:
    if asset_request.status != expected:
        raise InvalidStateError(
            f"Cannot {action} request in {asset_request.status.value} status"
        )


def _require_loan_status(asset_request: AssetRequest, allowed: tuple, action: str) -> None:
    if asset_request.status != RequestStatus.APPROVED or asset_request.loan_status not in allowed:
        current = asset_request.loan_status.value if asset_request.loan_status else asset_request.status.value
        raise InvalidStateError(f"Cannot {action} request in {current} status")


def _record(asset_request: AssetRequest, event_type: str, actor_user_id: int | None, *, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=EntityKind.ASSET_REQUEST,
        entity_id=asset_request.id,
        actor_user_id=actor_user_id,
        unit_id=asset_request.requester_unit_id,
        asset_id=asset_request.asset_id,
        note=note,
        payload=payload,
    )


def _bind_asset(asset_request: AssetRequest, asset_id: int, actor) -> Asset:
    """Reserve an asset for the request and mark it In Use."""
    asset = db.session.get(Asset, asset_id)
    if not asset:
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    if asset.unit_id == asset_request.requester_unit_id:
        raise ValidationError(
            "Asset belongs to the requesting unit; use a regular loan instead",
            field="asset_id",
        )
    return reserve_for_loan(
        asset.id,
        (EntityKind.ASSET_REQUEST, asset_request.id),
        AssetStatus.IN_USE,
        actor_user_id=actor.id,
    )


def create_request(
    actor_user_id: int,
    requester_unit_id: int,
    asset_name: str,
    needed_date: date | str,
    start_time,
    end_time,
    expected_return_date: date | str,
    purpose: str,
    reason: str,
) -> AssetRequest:
    """
    Create a category-level request for an asset from another unit (status: PENDING).

    Args:
        actor_user_id: Requesting user; must belong to requester_unit_id
            unless holding-level
        requester_unit_id: Unit that needs the asset
        asset_name: Asset name or category being asked for
        needed_date: First day of use (today or later)
        start_time / end_time: Daily usage window
        expected_return_date: Strictly after needed_date
        purpose: What the asset is for (max 500 chars)
        reason: Why the unit cannot use its own assets (max 1000 chars)

    Raises:
        ValidationError, NotFoundError, UnauthorizedError
    """
    needed_day = require_date(needed_date, "needed_date")
    if needed_day < today():
        raise ValidationError("needed_date cannot be in the past", field="needed_date")
    return_day = require_date(expected_return_date, "expected_return_date")
    if return_day <= needed_day:
        raise ValidationError("expected_return_date must be after needed_date", field="expected_return_date")
    window_start, window_end = require_time_window(start_time, end_time)
    name = require_text(asset_name, "asset_name", max_length=255)
    purpose_text = require_text(purpose, "purpose", max_length=500)
    reason_text = require_text(reason, "reason", max_length=1000)

    def _op():
        actor = get_actor(actor_user_id)
        unit = db.session.get(Unit, requester_unit_id)
        if not unit:
            raise NotFoundError(f"Unit {requester_unit_id} not found", field="requester_unit_id")
        require_transition(actor, EntityKind.ASSET_REQUEST, NEW, RequestStatus.PENDING)
        if not is_holding_level(actor) and not in_unit(actor, unit.id):
            raise UnauthorizedError("You can only create requests for your own unit")

        asset_request = AssetRequest(
            requester_unit_id=unit.id,
            requester_id=actor.id,
            asset_name=name,
            request_date=today(),
            needed_date=needed_day,
            expected_return_date=return_day,
            start_time=window_start,
            end_time=window_end,
            purpose=purpose_text,
            reason=reason_text,
            status=RequestStatus.PENDING,
        )
        db.session.add(asset_request)
        db.session.flush()  # Get ID

        _record(asset_request, "asset_request.created", actor.id, note=reason_text)
        current_app.logger.info(
            "Request %s created by user %s for unit %s: %s",
            asset_request.id, actor.id, unit.id, name,
        )
        return asset_request

    return run_in_transaction(_op)


def approve_request(
    request_id: int,
    actor_user_id: int,
    asset_id: int | None = None,
    approval_notes: str | None = None,
    loan_photo_path: str | None = None,
) -> AssetRequest:
    """
    Approve a pending request (PENDING -> APPROVED).

    With asset_id the asset is bound immediately: availability is checked
    and the hold taken atomically, the asset becomes In Use and loan_status
    is ACTIVE. Without it loan_status is NOT_STARTED until assign_asset().

    Raises:
        ConflictError: The asset is unavailable or was reserved concurrently
    """
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_review_status(asset_request, RequestStatus.PENDING, "approve")
        require_transition(actor, EntityKind.ASSET_REQUEST, asset_request.status, RequestStatus.APPROVED)
        notes = optional_text(approval_notes, "approval_notes", max_length=500)
        photo = require_reference(loan_photo_path, "loan_photo_path") if loan_photo_path else None

        if asset_id is not None:
            asset = _bind_asset(asset_request, asset_id, actor)
            asset_request.asset_id = asset.id
            asset_request.loan_status = RequestLoanStatus.ACTIVE
            asset_request.actual_loan_date = today()
        else:
            asset_request.loan_status = RequestLoanStatus.NOT_STARTED

        asset_request.status = RequestStatus.APPROVED
        asset_request.reviewed_by_user_id = actor.id
        asset_request.review_date = utcnow()
        asset_request.approval_notes = notes
        asset_request.loan_photo_path = photo
        asset_request.updated_at = utcnow()

        _record(
            asset_request,
            "asset_request.approved",
            actor.id,
            note=notes,
            payload={"loan_status": asset_request.loan_status.value},
        )
        current_app.logger.info(
            "Request %s approved by user %s (asset %s)", asset_request.id, actor.id, asset_request.asset_id
        )
        return asset_request

    return run_in_transaction(_op)


def assign_asset(
    request_id: int,
    actor_user_id: int,
    asset_id: int,
    loan_photo_path: str | None = None,
) -> AssetRequest:
    """Bind an asset to an approved request that has none yet (NOT_STARTED -> ACTIVE)."""
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_loan_status(asset_request, (RequestLoanStatus.NOT_STARTED,), "assign an asset to")
        require_transition(
            actor, EntityKind.ASSET_REQUEST_LOAN, asset_request.loan_status, RequestLoanStatus.ACTIVE
        )
        photo = require_reference(loan_photo_path, "loan_photo_path") if loan_photo_path else None

        asset = _bind_asset(asset_request, asset_id, actor)
        asset_request.asset_id = asset.id
        asset_request.loan_status = RequestLoanStatus.ACTIVE
        asset_request.actual_loan_date = today()
        if photo:
            asset_request.loan_photo_path = photo
        asset_request.updated_at = utcnow()

        _record(asset_request, "asset_request.asset_assigned", actor.id)
        current_app.logger.info("Request %s bound to asset %s by user %s", asset_request.id, asset.id, actor.id)
        return asset_request

    return run_in_transaction(_op)


def reject_request(request_id: int, actor_user_id: int, reason: str) -> AssetRequest:
    """Reject a pending request (PENDING -> REJECTED, terminal)."""
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_review_status(asset_request, RequestStatus.PENDING, "reject")
        require_transition(actor, EntityKind.ASSET_REQUEST, asset_request.status, RequestStatus.REJECTED)
        rejection_reason = require_text(reason, "rejection_reason", max_length=500)

        asset_request.status = RequestStatus.REJECTED
        asset_request.reviewed_by_user_id = actor.id
        asset_request.review_date = utcnow()
        asset_request.rejection_reason = rejection_reason
        asset_request.updated_at = utcnow()

        _record(asset_request, "asset_request.rejected", actor.id, note=rejection_reason)
        current_app.logger.info("Request %s rejected by user %s", asset_request.id, actor.id)
        return asset_request

    return run_in_transaction(_op)


def submit_request_return(
    request_id: int,
    actor_user_id: int,
    return_notes: str | None = None,
    return_proof_photo_path: str | None = None,
) -> AssetRequest:
    """
    Hand the borrowed asset back (ACTIVE/OVERDUE -> PENDING_RETURN).

    Only members of the requesting unit may submit. The proof photo is
    optional here, unlike single-unit loans.
    """
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_loan_status(asset_request, RETURNABLE_LOAN_STATUSES, "return")
        require_transition(
            actor, EntityKind.ASSET_REQUEST_LOAN, asset_request.loan_status, RequestLoanStatus.PENDING_RETURN
        )
        if not in_unit(actor, asset_request.requester_unit_id):
            raise UnauthorizedError("Only the requesting unit may return this asset")
        notes = optional_text(return_notes, "return_notes", max_length=1000)
        photo = (
            require_reference(return_proof_photo_path, "return_proof_photo_path")
            if return_proof_photo_path else None
        )

        previous = asset_request.loan_status
        asset_request.loan_status = RequestLoanStatus.PENDING_RETURN
        asset_request.actual_return_date = today()
        asset_request.return_notes = notes
        asset_request.return_proof_photo_path = photo
        asset_request.return_rejection_reason = None
        asset_request.updated_at = utcnow()

        _record(
            asset_request,
            "asset_request.return_submitted",
            actor.id,
            note=notes,
            payload={"from": previous.value},
        )
        current_app.logger.info("Request %s return submitted by user %s", asset_request.id, actor.id)
        return asset_request

    return run_in_transaction(_op)


def confirm_request_return(request_id: int, actor_user_id: int) -> AssetRequest:
    """
    Confirm the asset came back (PENDING_RETURN -> RETURNED).

    SIDE EFFECT: releases the bound asset to Available through the status
    registry. An asset that is no longer In Use (an incident resolved it as
    Lost or In Repair during the loan) keeps its status.
    """
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_loan_status(asset_request, (RequestLoanStatus.PENDING_RETURN,), "confirm the return of")
        require_transition(
            actor, EntityKind.ASSET_REQUEST_LOAN, asset_request.loan_status, RequestLoanStatus.RETURNED
        )

        asset_request.loan_status = RequestLoanStatus.RETURNED
        asset_request.return_confirmed_by_user_id = actor.id
        asset_request.return_confirmation_date = utcnow()
        asset_request.updated_at = utcnow()

        asset = release_asset(
            asset_request.asset_id,
            AssetStatus.IN_USE,
            (EntityKind.ASSET_REQUEST, asset_request.id),
            actor_user_id=actor.id,
        )

        _record(asset_request, "asset_request.returned", actor.id, payload={"asset_status": asset.status.value})
        current_app.logger.info("Request %s return confirmed by user %s", asset_request.id, actor.id)
        return asset_request

    return run_in_transaction(_op)


def reject_request_return(request_id: int, actor_user_id: int, reason: str) -> AssetRequest:
    """Refuse a submitted return (PENDING_RETURN -> ACTIVE); the asset stays with the requester."""
    def _op():
        actor = get_actor(actor_user_id)
        asset_request = _load_request(request_id)
        _require_loan_status(asset_request, (RequestLoanStatus.PENDING_RETURN,), "reject the return of")
        require_transition(
            actor, EntityKind.ASSET_REQUEST_LOAN, asset_request.loan_status, RequestLoanStatus.ACTIVE
        )
        rejection_reason = require_text(reason, "return_rejection_reason", max_length=500)

        asset_request.loan_status = RequestLoanStatus.ACTIVE
        asset_request.return_rejection_reason = rejection_reason
        asset_request.updated_at = utcnow()

        _record(asset_request, "asset_request.return_rejected", actor.id, note=rejection_reason)
        current_app.logger.info("Request %s return rejected by user %s", asset_request.id, actor.id)
        return asset_request

    return run_in_transaction(_op)


def mark_overdue_requests(as_of: date | str | None = None) -> list[int]:
    """
    Flag ACTIVE requests whose expected return date has passed as OVERDUE.

    System transition (no actor). Returns the ids that were flagged; running
    it twice on the same day flags nothing the second time.
    """
    as_of_day = require_date(as_of, "as_of") if as_of else today()

    def _op():
        overdue = (
            lock_for_update(
                db.session.query(AssetRequest).filter(
                    AssetRequest.status == RequestStatus.APPROVED,
                    AssetRequest.loan_status == RequestLoanStatus.ACTIVE,
                    AssetRequest.expected_return_date < as_of_day,
                )
            )
            .order_by(AssetRequest.id.asc())
            .all()
        )
        flagged = []
        for asset_request in overdue:
            asset_request.loan_status = RequestLoanStatus.OVERDUE
            asset_request.updated_at = utcnow()
            _record(
                asset_request,
                "asset_request.overdue",
                None,
                payload={"as_of": as_of_day.isoformat()},
            )
            flagged.append(asset_request.id)
        if flagged:
            current_app.logger.info("Marked %d request(s) overdue as of %s", len(flagged), as_of_day)
        return flagged

    return run_in_transaction(_op)


# -- Queries --

def get_request_summary(request_id: int) -> dict:
    asset_request = db.session.get(AssetRequest, request_id)
    if not asset_request:
        raise NotFoundError(f"Request {request_id} not found", field="request_id")
    return {
        **asset_request.to_dict(),
        "requester_unit": asset_request.requester_unit.to_dict() if asset_request.requester_unit else None,
        "asset": asset_request.asset.to_dict() if asset_request.asset else None,
    }


def list_requests(
    status=None,
    loan_status=None,
    requester_unit_id: int | None = None,
) -> list[AssetRequest]:
    """List requests, newest first."""
    q = db.session.query(AssetRequest)
    if status is not None:
        q = q.filter(AssetRequest.status == require_choice(status, RequestStatus, "status"))
    if loan_status is not None:
        q = q.filter(AssetRequest.loan_status == require_choice(loan_status, RequestLoanStatus, "loan_status"))
    if requester_unit_id is not None:
        q = q.filter(AssetRequest.requester_unit_id == requester_unit_id)
    return q.order_by(AssetRequest.created_at.desc(), AssetRequest.id.desc()).all()
