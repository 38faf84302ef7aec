# Overview: Service-layer operations for single-unit asset loans.

"""
Asset loan workflow.

LIFECYCLE:
1. PENDING: Borrower requested the asset (asset hold taken)
2. APPROVED: Admin approved with handover proof photo
3. PENDING_RETURN: Borrower submitted the return with proof photo
4. RETURNED: Admin validated the return; asset status follows the assessed
   condition (good -> Available, damaged -> In Repair, lost -> Lost)
5. REJECTED: Request rejected or cancelled by the borrower (terminal)

PENDING_RETURN -> APPROVED when the admin rejects the return; the borrower
resubmits.

HOLDS: the hold is taken at request time through the status registry, so two
borrowers cannot both have an open loan on the same asset. Leaving the
active statuses (RETURNED, REJECTED) releases it.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_LOAN_STATUSES,
    Asset,
    AssetLoan,
    AssetStatus,
    LoanStatus,
    ReturnCondition,
    Role,
)
from ..permissions import ASSET_ADMINS, EntityKind, NEW
from ..time_utils import today, utcnow
from ..validation import (
    optional_text,
    require_choice,
    require_date,
    require_past_or_today,
    require_reason,
    require_reference,
    require_text,
    require_time_window,
)
from .approval_gate import get_actor, require_transition, require_unit_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event
from .status_registry import release_asset, reserve_for_loan, set_asset_status


CANCELLED_BY_BORROWER = "Cancelled by borrower"

# Asset status after a validated return, by assessed condition
RETURN_CONDITION_STATUS = {
    ReturnCondition.GOOD: AssetStatus.AVAILABLE,
    ReturnCondition.DAMAGED: AssetStatus.IN_REPAIR,
    ReturnCondition.LOST: AssetStatus.LOST,
}


def _load_loan(loan_id: int) -> AssetLoan:
    loan = lock_for_update(db.session.query(AssetLoan).filter_by(id=loan_id)).first()
    if not loan:
        raise NotFoundError(f"Loan {loan_id} not found", field="loan_id")
    return loan


def _require_status(loan: AssetLoan, expected: LoanStatus, action: str) -> None:
    if loan.status != expected:
        raise InvalidStateError(
            f"Cannot {action} loan in {loan.status.value} status (expected {expected.value})"
        )


def _require_borrower_or_admin(actor, loan: AssetLoan, action: str) -> None:
    """The borrower may act on their own loan; otherwise an asset admin of the owning unit."""
    if actor.id == loan.borrower_id:
        return
    if actor.role not in ASSET_ADMINS:
        raise UnauthorizedError(f"Only the borrower or an administrator may {action} this loan")
    require_unit_scope(actor, loan.asset.unit_id, action=action)


def _require_return_scope(actor, loan: AssetLoan, action: str) -> None:
    """
    Unit admins validate returns only for loans internal to their unit.

    Both the asset and the borrower must belong to the admin's unit;
    cross-unit returns are reserved to holding-level admins.
    """
    if actor.role != Role.ADMIN_UNIT:
        return
    borrower_unit_id = loan.borrower.unit_id if loan.borrower else None
    if loan.asset.unit_id != actor.unit_id or borrower_unit_id != actor.unit_id:
        current_app.logger.warning(
            "Cross-unit return %s denied for unit admin %s", loan.id, actor.id
        )
        raise UnauthorizedError(
            f"Cross-unit returns may only be {action} by Super Admin or Admin Holding"
        )


def _record(loan: AssetLoan, event_type: str, actor_user_id: int, *, note: str | None = None, payload: dict | None = None):
    append_workflow_event(
        event_type=event_type,
        entity_type=EntityKind.ASSET_LOAN,
        entity_id=loan.id,
        actor_user_id=actor_user_id,
        unit_id=loan.asset.unit_id if loan.asset else None,
        asset_id=loan.asset_id,
        note=note,
        payload=payload,
    )


def request_loan(
    asset_id: int,
    borrower_user_id: int,
    loan_date: date | str,
    start_time,
    end_time,
    expected_return_date: date | str,
    purpose: str,
) -> AssetLoan:
    """
    Request a loan of an asset (status: PENDING).

    Args:
        asset_id: Asset to borrow
        borrower_user_id: Borrowing user (the acting user)
        loan_date: Date the asset is needed
        start_time: Start of the daily usage window (HH:MM)
        end_time: End of the daily usage window, after start_time
        expected_return_date: Planned return date
        purpose: Free-text purpose (max 500 chars)

    Returns:
        AssetLoan: The created loan

    Raises:
        ValidationError: Missing or malformed fields
        NotFoundError: Asset or borrower does not exist
        UnauthorizedError: Plain user borrowing another unit's asset
        ConflictError: Asset not available (checked and reserved atomically)
    """
    loan_day = require_date(loan_date, "loan_date")
    return_day = require_date(expected_return_date, "expected_return_date")
    if return_day < loan_day:
        raise ValidationError("expected_return_date cannot be before loan_date", field="expected_return_date")
    if return_day < today():
        raise ValidationError("expected_return_date cannot be in the past", field="expected_return_date")
    window_start, window_end = require_time_window(start_time, end_time)
    purpose_text = require_text(purpose, "purpose", max_length=500)

    def _op():
        borrower = get_actor(borrower_user_id)
        asset = db.session.get(Asset, asset_id)
        if not asset:
            raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")

        require_transition(borrower, EntityKind.ASSET_LOAN, NEW, LoanStatus.PENDING)
        if borrower.role == Role.USER and asset.unit_id != borrower.unit_id:
            raise UnauthorizedError("You can only borrow assets of your own unit")

        loan = AssetLoan(
            asset_id=asset.id,
            borrower_id=borrower.id,
            status=LoanStatus.PENDING,
            request_date=today(),
            loan_date=loan_day,
            start_time=window_start,
            end_time=window_end,
            expected_return_date=return_day,
            purpose=purpose_text,
        )
        db.session.add(loan)
        db.session.flush()  # Get ID
        reserve_for_loan(asset.id, (EntityKind.ASSET_LOAN, loan.id), actor_user_id=borrower.id)

        _record(loan, "asset_loan.requested", borrower.id, note=purpose_text)
        current_app.logger.info("Loan %s requested: asset %s by user %s", loan.id, asset.id, borrower.id)
        return loan

    return run_in_transaction(_op)


def approve_loan(
    loan_id: int,
    actor_user_id: int,
    approval_date: date | str,
    loan_proof_photo_path: str,
) -> AssetLoan:
    """
    Approve a pending loan (PENDING -> APPROVED).

    Handover proof is mandatory and the approval date cannot be in the future.
    The asset status is left untouched; the loan itself is the hold. The
    hold is re-confirmed under the asset lock first, so an asset that an
    incident marked Lost or In Repair while the loan was pending cannot be
    handed over.

    Raises:
        NotFoundError, InvalidStateError, UnauthorizedError, ValidationError
        ConflictError: Asset is no longer Available, or another hold exists
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.PENDING, "approve")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.APPROVED)
        require_unit_scope(actor, loan.asset.unit_id, action="approve loans")

        approved_on = require_past_or_today(approval_date, "approval_date")
        proof = require_reference(loan_proof_photo_path, "loan_proof_photo_path")
        reserve_for_loan(loan.asset_id, (EntityKind.ASSET_LOAN, loan.id), actor_user_id=actor.id)

        loan.status = LoanStatus.APPROVED
        loan.approved_by_user_id = actor.id
        loan.approval_date = approved_on
        loan.loan_proof_photo_path = proof
        loan.updated_at = utcnow()

        _record(loan, "asset_loan.approved", actor.id)
        current_app.logger.info("Loan %s approved by user %s", loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def reject_loan(loan_id: int, actor_user_id: int, reason: str) -> AssetLoan:
    """
    Reject a pending loan (PENDING -> REJECTED, terminal).

    The reason must be at least MIN_REASON_LENGTH characters.
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.PENDING, "reject")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.REJECTED)
        require_unit_scope(actor, loan.asset.unit_id, action="reject loans")
        rejection_reason = require_reason(reason, "rejection_reason")

        loan.status = LoanStatus.REJECTED
        loan.rejection_reason = rejection_reason
        loan.updated_at = utcnow()

        _record(loan, "asset_loan.rejected", actor.id, note=rejection_reason)
        current_app.logger.info("Loan %s rejected by user %s", loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def cancel_loan(loan_id: int, actor_user_id: int) -> AssetLoan:
    """
    Borrower withdraws their own pending request (PENDING -> REJECTED).

    Only the borrower may cancel; admins reject instead.
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        if loan.borrower_id != actor.id:
            raise UnauthorizedError("Only the borrower may cancel this loan")
        _require_status(loan, LoanStatus.PENDING, "cancel")

        loan.status = LoanStatus.REJECTED
        loan.rejection_reason = CANCELLED_BY_BORROWER
        loan.updated_at = utcnow()

        _record(loan, "asset_loan.cancelled", actor.id, note=CANCELLED_BY_BORROWER)
        current_app.logger.info("Loan %s cancelled by borrower %s", loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def submit_return(
    loan_id: int,
    actor_user_id: int,
    return_date: date | str,
    return_notes: str | None,
    return_proof_photo_path: str,
) -> AssetLoan:
    """
    Submit the return of an approved loan (APPROVED -> PENDING_RETURN).

    The asset stays held until an admin validates the return.

    Raises:
        ValidationError: Missing proof photo, or return date in the future
            or before the loan date
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.APPROVED, "return")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.PENDING_RETURN)
        _require_borrower_or_admin(actor, loan, "return")

        returned_on = require_past_or_today(return_date, "return_date")
        if returned_on < loan.loan_date:
            raise ValidationError("return_date cannot be before loan_date", field="return_date")
        proof = require_reference(return_proof_photo_path, "return_proof_photo_path")
        notes = optional_text(return_notes, "return_notes", max_length=1000)

        loan.status = LoanStatus.PENDING_RETURN
        loan.actual_return_date = returned_on
        loan.return_notes = notes
        loan.return_proof_photo_path = proof
        loan.return_rejection_reason = None
        loan.updated_at = utcnow()

        _record(loan, "asset_loan.return_submitted", actor.id, note=notes)
        current_app.logger.info("Loan %s return submitted by user %s", loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def validate_return(
    loan_id: int,
    actor_user_id: int,
    verification_date: date | str,
    condition,
    assessment_notes: str | None = None,
) -> AssetLoan:
    """
    Validate a submitted return (PENDING_RETURN -> RETURNED).

    Args:
        loan_id: Loan being returned
        actor_user_id: Validating admin
        verification_date: Date of physical inspection (not in the future)
        condition: "good", "damaged" or "lost"
        assessment_notes: Mandatory unless condition is good

    SIDE EFFECT: asset status follows the condition through the status
    registry (good -> Available, damaged -> In Repair, lost -> Lost). A good
    return leaves the asset alone if something else moved it off Available
    during the loan, e.g. a loss incident resolved meanwhile.
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.PENDING_RETURN, "validate the return of")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.RETURNED)
        require_unit_scope(actor, loan.asset.unit_id, action="validate returns")
        _require_return_scope(actor, loan, "validated")

        verified_on = require_past_or_today(verification_date, "verification_date")
        assessed = require_choice(condition, ReturnCondition, "condition")
        if assessed == ReturnCondition.GOOD:
            notes = optional_text(assessment_notes, "assessment_notes", max_length=1000)
        else:
            notes = require_text(assessment_notes, "assessment_notes", max_length=1000)

        loan.status = LoanStatus.RETURNED
        loan.return_condition = assessed
        loan.return_verified_by_user_id = actor.id
        loan.return_verification_date = verified_on
        loan.return_rejection_reason = None
        if notes:
            prefix = f"{loan.return_notes}\n" if loan.return_notes else ""
            loan.return_notes = f"{prefix}[ADMIN ASSESSMENT] {notes}"
        loan.updated_at = utcnow()

        causing = (EntityKind.ASSET_LOAN, loan.id)
        if assessed == ReturnCondition.GOOD:
            asset = release_asset(loan.asset_id, AssetStatus.AVAILABLE, causing, actor_user_id=actor.id)
        else:
            asset = set_asset_status(
                loan.asset_id, RETURN_CONDITION_STATUS[assessed], causing, actor_user_id=actor.id
            )
        new_status = asset.status

        _record(
            loan,
            "asset_loan.returned",
            actor.id,
            note=notes,
            payload={"condition": assessed.value, "asset_status": new_status.value},
        )
        current_app.logger.info(
            "Loan %s return validated by user %s: condition=%s asset_status=%s",
            loan.id, actor.id, assessed.value, new_status.value,
        )
        return loan

    return run_in_transaction(_op)


def reject_return(loan_id: int, actor_user_id: int, reason: str) -> AssetLoan:
    """Send a submitted return back to the borrower (PENDING_RETURN -> APPROVED)."""
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.PENDING_RETURN, "reject the return of")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.APPROVED)
        require_unit_scope(actor, loan.asset.unit_id, action="reject returns")
        _require_return_scope(actor, loan, "rejected")
        rejection_reason = require_reason(reason, "return_rejection_reason")

        loan.status = LoanStatus.APPROVED
        loan.return_rejection_reason = rejection_reason
        loan.updated_at = utcnow()

        _record(loan, "asset_loan.return_rejected", actor.id, note=rejection_reason)
        current_app.logger.info("Loan %s return rejected by user %s", loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def extend_loan(
    loan_id: int,
    actor_user_id: int,
    new_expected_return_date: date | str,
    reason: str,
) -> AssetLoan:
    """
    Push back the expected return date of an approved loan.

    The new date must be strictly after the current one. The extension is
    kept on the ledger with the previous and new dates.
    """
    def _op():
        actor = get_actor(actor_user_id)
        loan = _load_loan(loan_id)
        _require_status(loan, LoanStatus.APPROVED, "extend")
        require_transition(actor, EntityKind.ASSET_LOAN, loan.status, LoanStatus.APPROVED)
        _require_borrower_or_admin(actor, loan, "extend")

        new_date = require_date(new_expected_return_date, "expected_return_date")
        if new_date <= loan.expected_return_date:
            raise ValidationError(
                "New expected_return_date must be after the current one",
                field="expected_return_date",
            )
        extension_reason = require_text(reason, "reason", max_length=500)

        previous = loan.expected_return_date
        loan.expected_return_date = new_date
        loan.updated_at = utcnow()

        _record(
            loan,
            "asset_loan.extended",
            actor.id,
            note=extension_reason,
            payload={"from": previous.isoformat(), "to": new_date.isoformat()},
        )
        current_app.logger.info(
            "Loan %s extended by user %s: %s -> %s", loan.id, actor.id, previous, new_date
        )
        return loan

    return run_in_transaction(_op)


# -- Queries --

def get_loan_summary(loan_id: int) -> dict:
    """Loan with asset/borrower context and overdue flag."""
    loan = db.session.get(AssetLoan, loan_id)
    if not loan:
        raise NotFoundError(f"Loan {loan_id} not found", field="loan_id")
    return {
        **loan.to_dict(),
        "asset": loan.asset.to_dict() if loan.asset else None,
        "borrower": loan.borrower.to_dict() if loan.borrower else None,
        "is_overdue": is_overdue(loan),
    }


def is_overdue(loan: AssetLoan, as_of: date | None = None) -> bool:
    as_of = as_of or today()
    return loan.status == LoanStatus.APPROVED and loan.expected_return_date < as_of


def list_loans(
    status=None,
    unit_id: int | None = None,
    borrower_id: int | None = None,
) -> list[AssetLoan]:
    """List loans, newest first, optionally filtered by status, asset unit and borrower."""
    q = db.session.query(AssetLoan)
    if status is not None:
        q = q.filter(AssetLoan.status == require_choice(status, LoanStatus, "status"))
    if unit_id is not None:
        q = q.join(Asset, AssetLoan.asset_id == Asset.id).filter(Asset.unit_id == unit_id)
    if borrower_id is not None:
        q = q.filter(AssetLoan.borrower_id == borrower_id)
    return q.order_by(AssetLoan.created_at.desc(), AssetLoan.id.desc()).all()


def list_overdue_loans(as_of: date | str | None = None) -> list[AssetLoan]:
    """Approved loans whose expected return date has passed."""
    as_of_day = require_date(as_of, "as_of") if as_of else today()
    return (
        db.session.query(AssetLoan)
        .filter(
            AssetLoan.status == LoanStatus.APPROVED,
            AssetLoan.expected_return_date < as_of_day,
        )
        .order_by(AssetLoan.expected_return_date.asc(), AssetLoan.id.asc())
        .all()
    )


def get_asset_loan_history(asset_id: int) -> list[AssetLoan]:
    if not db.session.get(Asset, asset_id):
        raise NotFoundError(f"Asset {asset_id} not found", field="asset_id")
    return (
        db.session.query(AssetLoan)
        .filter_by(asset_id=asset_id)
        .order_by(AssetLoan.created_at.asc(), AssetLoan.id.asc())
        .all()
    )


def get_active_loan(asset_id: int) -> AssetLoan | None:
    """The loan currently holding an asset, if any."""
    return (
        db.session.query(AssetLoan)
        .filter(AssetLoan.asset_id == asset_id, AssetLoan.status.in_(ACTIVE_LOAN_STATUSES))
        .first()
    )
