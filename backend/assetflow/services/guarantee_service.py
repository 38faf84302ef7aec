# Overview: Service-layer operations for guarantee collateral; loans out of the vault and settlements.

"""
Guarantee (collateral document) workflow.

Guarantees are a separate resource from assets: nothing here touches
Asset.status.

GUARANTEE STATUS:
    available <-> dipinjam (on loan)
    available  -> lunas (settled, terminal)

LOAN SUB-FLOW: loan_out() takes an available guarantee out of the vault;
return_guarantee() closes the loan and puts it back to available.

SETTLEMENT SUB-FLOW:
1. pending: requested on an available guarantee (guarantee unchanged)
2. approved: guarantee becomes lunas
3. rejected: guarantee unchanged; revise_settlement() opens a new pending
   record linked to the rejected one

INVARIANT: a guarantee is lunas iff exactly one of its settlements is
approved. approve_settlement() re-reads the guarantee under lock in the same
transaction, so a loan_out that slipped in after the request turns the
approval into a ConflictError.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import (
    ConflictError,
    GuaranteeOnLoanError,
    GuaranteeSettledError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    Guarantee,
    GuaranteeLoan,
    GuaranteeSettlement,
    GuaranteeStatus,
    GuaranteeType,
    SettlementStatus,
    Unit,
)
from ..permissions import EntityKind, NEW
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    require_choice,
    require_date,
    require_past_or_today,
    require_text,
)
from .approval_gate import get_actor, require_transition, require_unit_scope
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_workflow_event


def _load_guarantee(guarantee_id: int) -> Guarantee:
    guarantee = lock_for_update(db.session.query(Guarantee).filter_by(id=guarantee_id)).first()
    if not guarantee:
        raise NotFoundError(f"Guarantee {guarantee_id} not found", field="guarantee_id")
    return guarantee


def _load_settlement(settlement_id: int) -> GuaranteeSettlement:
    settlement = lock_for_update(
        db.session.query(GuaranteeSettlement).filter_by(id=settlement_id)
    ).first()
    if not settlement:
        raise NotFoundError(f"Settlement {settlement_id} not found", field="settlement_id")
    return settlement


def _require_available(guarantee: Guarantee, action: str) -> None:
    """Distinguish 'on loan' from 'settled' so callers can tell the borrower why."""
    if guarantee.status == GuaranteeStatus.SETTLED:
        raise GuaranteeSettledError(
            f"Guarantee {guarantee.id} is settled (lunas) and cannot be {action}"
        )
    if guarantee.status == GuaranteeStatus.ON_LOAN:
        raise GuaranteeOnLoanError(
            f"Guarantee {guarantee.id} is on loan; return it before it can be {action}"
        )


def _require_no_pending_settlement(guarantee: Guarantee) -> None:
    pending = (
        db.session.query(GuaranteeSettlement.id)
        .filter_by(guarantee_id=guarantee.id, settlement_status=SettlementStatus.PENDING)
        .first()
    )
    if pending:
        raise ConflictError(
            f"Guarantee {guarantee.id} already has pending settlement {pending.id}",
            field="guarantee_id",
        )


def _record(event_type: str, entity_type: str, entity_id: int, guarantee: Guarantee, actor_user_id: int, *, note=None, payload=None):
    append_workflow_event(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        unit_id=guarantee.unit_id,
        note=note,
        payload={"guarantee_id": guarantee.id, **(payload or {})},
    )


def register_guarantee(
    actor_user_id: int,
    spk_number: str,
    cif_number: str,
    spk_name: str,
    guarantee_name: str,
    guarantee_type,
    input_date: date | str,
    guarantee_number: str | None = None,
    file_location: str | None = None,
    unit_id: int | None = None,
    credit_period: str | None = None,
) -> Guarantee:
    """
    Register a collateral document into the vault (status: available).

    Args:
        actor_user_id: Registering admin
        spk_number: Credit agreement number
        cif_number: Customer identification number
        spk_name: Owner name on the agreement
        guarantee_name: Document description
        guarantee_type: BPKB, SHM, SHGB or E-SHM
        input_date: Date the document entered the vault
        guarantee_number: Document number, if any
        file_location: Physical filing location
        unit_id: Holding unit (None for the holding vault)
        credit_period: Free-text credit tenor

    Returns:
        Guarantee: The registered guarantee
    """
    spk = require_text(spk_number, "spk_number", max_length=255)
    cif = require_text(cif_number, "cif_number", max_length=255)
    owner = require_text(spk_name, "spk_name", max_length=255)
    name = require_text(guarantee_name, "guarantee_name", max_length=255)
    kind = require_choice(guarantee_type, GuaranteeType, "guarantee_type")
    input_day = require_past_or_today(input_date, "input_date")

    def _op():
        actor = get_actor(actor_user_id)
        require_transition(actor, EntityKind.GUARANTEE, NEW, GuaranteeStatus.AVAILABLE)
        if unit_id is not None:
            if not db.session.get(Unit, unit_id):
                raise NotFoundError(f"Unit {unit_id} not found", field="unit_id")
            require_unit_scope(actor, unit_id, action="register guarantees")

        guarantee = Guarantee(
            spk_number=spk,
            cif_number=cif,
            spk_name=owner,
            credit_period=optional_text(credit_period, "credit_period", max_length=64),
            guarantee_name=name,
            guarantee_type=kind,
            guarantee_number=optional_text(guarantee_number, "guarantee_number", max_length=255),
            file_location=optional_text(file_location, "file_location", max_length=255),
            input_date=input_day,
            unit_id=unit_id,
            status=GuaranteeStatus.AVAILABLE,
        )
        db.session.add(guarantee)
        db.session.flush()  # Get ID

        _record("guarantee.registered", EntityKind.GUARANTEE, guarantee.id, guarantee, actor.id)
        current_app.logger.info("Guarantee %s registered by user %s (%s)", guarantee.id, actor.id, spk)
        return guarantee

    return run_in_transaction(_op)


def loan_out(
    guarantee_id: int,
    actor_user_id: int,
    borrower_name: str,
    borrower_contact: str | None,
    reason: str,
    loan_date: date | str,
    expected_return_date: date | str | None = None,
) -> GuaranteeLoan:
    """
    Take a guarantee out of the vault (available -> dipinjam).

    Raises:
        GuaranteeOnLoanError: Guarantee is already on loan
        GuaranteeSettledError: Guarantee is settled
        ValidationError: Missing borrower/reason, or return before loan date
    """
    borrower = require_text(borrower_name, "borrower_name", max_length=255)
    contact = optional_text(borrower_contact, "borrower_contact", max_length=255)
    loan_reason = require_text(reason, "reason")
    loan_day = require_date(loan_date, "loan_date")
    return_day = require_date(expected_return_date, "expected_return_date") if expected_return_date else None
    if return_day is not None and return_day < loan_day:
        raise ValidationError("expected_return_date cannot be before loan_date", field="expected_return_date")

    def _op():
        actor = get_actor(actor_user_id)
        guarantee = _load_guarantee(guarantee_id)
        _require_available(guarantee, "loaned out")
        require_transition(actor, EntityKind.GUARANTEE, guarantee.status, GuaranteeStatus.ON_LOAN)
        if guarantee.unit_id is not None:
            require_unit_scope(actor, guarantee.unit_id, action="loan out guarantees")

        loan = GuaranteeLoan(
            guarantee_id=guarantee.id,
            borrower_name=borrower,
            borrower_contact=contact,
            reason=loan_reason,
            loan_date=loan_day,
            expected_return_date=return_day,
            returned=False,
            created_by_user_id=actor.id,
        )
        db.session.add(loan)
        guarantee.status = GuaranteeStatus.ON_LOAN
        guarantee.updated_at = utcnow()
        db.session.flush()  # Get ID; version check on the guarantee row

        _record("guarantee.loaned_out", "guarantee_loan", loan.id, guarantee, actor.id, note=loan_reason)
        current_app.logger.info("Guarantee %s loaned out (loan %s) by user %s", guarantee.id, loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def return_guarantee(
    loan_id: int,
    actor_user_id: int,
    actual_return_date: date | str,
) -> GuaranteeLoan:
    """Close an open guarantee loan (dipinjam -> available)."""
    def _op():
        actor = get_actor(actor_user_id)
        loan = lock_for_update(db.session.query(GuaranteeLoan).filter_by(id=loan_id)).first()
        if not loan:
            raise NotFoundError(f"Guarantee loan {loan_id} not found", field="loan_id")
        if loan.returned:
            raise InvalidStateError(f"Guarantee loan {loan.id} was already returned")

        guarantee = _load_guarantee(loan.guarantee_id)
        if guarantee.status != GuaranteeStatus.ON_LOAN:
            raise InvalidStateError(
                f"Guarantee {guarantee.id} is {guarantee.status.value}, not on loan"
            )
        require_transition(actor, EntityKind.GUARANTEE, guarantee.status, GuaranteeStatus.AVAILABLE)
        if guarantee.unit_id is not None:
            require_unit_scope(actor, guarantee.unit_id, action="return guarantees")

        returned_on = require_past_or_today(actual_return_date, "actual_return_date")
        if returned_on < loan.loan_date:
            raise ValidationError("actual_return_date cannot be before loan_date", field="actual_return_date")

        loan.returned = True
        loan.actual_return_date = returned_on
        loan.returned_by_user_id = actor.id
        guarantee.status = GuaranteeStatus.AVAILABLE
        guarantee.updated_at = utcnow()

        _record("guarantee.returned", "guarantee_loan", loan.id, guarantee, actor.id)
        current_app.logger.info("Guarantee %s returned (loan %s) by user %s", guarantee.id, loan.id, actor.id)
        return loan

    return run_in_transaction(_op)


def _create_settlement(guarantee: Guarantee, actor, settlement_day: date, notes: str | None, previous=None):
    settlement = GuaranteeSettlement(
        guarantee_id=guarantee.id,
        previous_settlement_id=previous.id if previous is not None else None,
        settlement_date=settlement_day,
        settlement_notes=notes,
        settlement_status=SettlementStatus.PENDING,
        created_by_user_id=actor.id,
    )
    db.session.add(settlement)
    db.session.flush()  # Get ID
    return settlement


def request_settlement(
    guarantee_id: int,
    actor_user_id: int,
    settlement_date: date | str,
    settlement_notes: str | None = None,
) -> GuaranteeSettlement:
    """
    Ask for a guarantee to be settled (new settlement: pending).

    The guarantee keeps its status until the settlement is approved.

    Raises:
        GuaranteeOnLoanError / GuaranteeSettledError: Guarantee not available
        ConflictError: Another settlement is already pending
    """
    settlement_day = require_date(settlement_date, "settlement_date")
    notes = optional_text(settlement_notes, "settlement_notes")

    def _op():
        actor = get_actor(actor_user_id)
        guarantee = _load_guarantee(guarantee_id)
        _require_available(guarantee, "settled")
        require_transition(actor, EntityKind.GUARANTEE_SETTLEMENT, NEW, SettlementStatus.PENDING)
        if guarantee.unit_id is not None:
            require_unit_scope(actor, guarantee.unit_id, action="request settlements")
        _require_no_pending_settlement(guarantee)

        settlement = _create_settlement(guarantee, actor, settlement_day, notes)

        _record("guarantee_settlement.requested", EntityKind.GUARANTEE_SETTLEMENT, settlement.id, guarantee, actor.id, note=notes)
        current_app.logger.info(
            "Settlement %s requested for guarantee %s by user %s", settlement.id, guarantee.id, actor.id
        )
        return settlement

    return run_in_transaction(_op)


def approve_settlement(
    settlement_id: int,
    actor_user_id: int,
    validator_name: str,
    remarks: str | None = None,
) -> GuaranteeSettlement:
    """
    Approve a pending settlement (settlement -> approved, guarantee -> lunas).

    The guarantee is re-read under lock here, not trusted from request time.

    Raises:
        ConflictError: Guarantee is no longer available (loaned out or
            settled since the request)
    """
    settled_by = require_text(validator_name, "settled_by", max_length=255)
    settlement_remarks = optional_text(remarks, "settlement_remarks")

    def _op():
        actor = get_actor(actor_user_id)
        settlement = _load_settlement(settlement_id)
        if settlement.settlement_status != SettlementStatus.PENDING:
            raise InvalidStateError(
                f"Cannot approve settlement in {settlement.settlement_status.value} status"
            )
        require_transition(
            actor, EntityKind.GUARANTEE_SETTLEMENT, settlement.settlement_status, SettlementStatus.APPROVED
        )

        guarantee = _load_guarantee(settlement.guarantee_id)
        if guarantee.status != GuaranteeStatus.AVAILABLE:
            current_app.logger.warning(
                "Settlement %s approval conflicts: guarantee %s is %s",
                settlement.id, guarantee.id, guarantee.status.value,
            )
            raise ConflictError(
                f"Guarantee {guarantee.id} is {guarantee.status.value}; settlement cannot be approved",
                field="guarantee_id",
            )

        settlement.settlement_status = SettlementStatus.APPROVED
        settlement.settled_by = settled_by
        settlement.settlement_remarks = settlement_remarks
        settlement.reviewed_by_user_id = actor.id
        settlement.reviewed_at = utcnow()
        guarantee.status = GuaranteeStatus.SETTLED
        guarantee.updated_at = utcnow()

        _record(
            "guarantee_settlement.approved",
            EntityKind.GUARANTEE_SETTLEMENT,
            settlement.id,
            guarantee,
            actor.id,
            note=settlement_remarks,
            payload={"settled_by": settled_by},
        )
        current_app.logger.info(
            "Settlement %s approved by user %s; guarantee %s settled", settlement.id, actor.id, guarantee.id
        )
        return settlement

    return run_in_transaction(_op)


def reject_settlement(settlement_id: int, actor_user_id: int, remarks: str) -> GuaranteeSettlement:
    """Reject a pending settlement; the guarantee is left as it is."""
    settlement_remarks = require_text(remarks, "settlement_remarks")

    def _op():
        actor = get_actor(actor_user_id)
        settlement = _load_settlement(settlement_id)
        if settlement.settlement_status != SettlementStatus.PENDING:
            raise InvalidStateError(
                f"Cannot reject settlement in {settlement.settlement_status.value} status"
            )
        require_transition(
            actor, EntityKind.GUARANTEE_SETTLEMENT, settlement.settlement_status, SettlementStatus.REJECTED
        )

        settlement.settlement_status = SettlementStatus.REJECTED
        settlement.settlement_remarks = settlement_remarks
        settlement.reviewed_by_user_id = actor.id
        settlement.reviewed_at = utcnow()

        _record(
            "guarantee_settlement.rejected",
            EntityKind.GUARANTEE_SETTLEMENT,
            settlement.id,
            settlement.guarantee,
            actor.id,
            note=settlement_remarks,
        )
        current_app.logger.info("Settlement %s rejected by user %s", settlement.id, actor.id)
        return settlement

    return run_in_transaction(_op)


def revise_settlement(
    previous_settlement_id: int,
    actor_user_id: int,
    settlement_date: date | str,
    settlement_notes: str | None = None,
) -> GuaranteeSettlement:
    """
    Resubmit a rejected settlement as a new pending record linked to it.

    Raises:
        InvalidStateError: Referenced settlement is not rejected
        GuaranteeSettledError / GuaranteeOnLoanError: Guarantee not available
    """
    settlement_day = require_date(settlement_date, "settlement_date")
    notes = optional_text(settlement_notes, "settlement_notes")

    def _op():
        actor = get_actor(actor_user_id)
        previous = _load_settlement(previous_settlement_id)
        if previous.settlement_status != SettlementStatus.REJECTED:
            raise InvalidStateError(
                f"Only rejected settlements can be revised (settlement {previous.id} is "
                f"{previous.settlement_status.value})"
            )
        guarantee = _load_guarantee(previous.guarantee_id)
        _require_available(guarantee, "settled")
        require_transition(
            actor, EntityKind.GUARANTEE_SETTLEMENT, previous.settlement_status, SettlementStatus.PENDING
        )
        if guarantee.unit_id is not None:
            require_unit_scope(actor, guarantee.unit_id, action="revise settlements")
        _require_no_pending_settlement(guarantee)

        settlement = _create_settlement(guarantee, actor, settlement_day, notes, previous=previous)

        _record(
            "guarantee_settlement.revised",
            EntityKind.GUARANTEE_SETTLEMENT,
            settlement.id,
            guarantee,
            actor.id,
            note=notes,
            payload={"previous_settlement_id": previous.id},
        )
        current_app.logger.info(
            "Settlement %s revised as %s by user %s", previous.id, settlement.id, actor.id
        )
        return settlement

    return run_in_transaction(_op)


# -- Queries --

def get_active_guarantee_loan(guarantee_id: int) -> GuaranteeLoan | None:
    return (
        db.session.query(GuaranteeLoan)
        .filter_by(guarantee_id=guarantee_id, returned=False)
        .order_by(GuaranteeLoan.id.desc())
        .first()
    )


def get_guarantee_summary(guarantee_id: int) -> dict:
    """Guarantee with its open loan and settlement history."""
    guarantee = db.session.get(Guarantee, guarantee_id)
    if not guarantee:
        raise NotFoundError(f"Guarantee {guarantee_id} not found", field="guarantee_id")
    active_loan = get_active_guarantee_loan(guarantee.id)
    settlements = list_settlements_for_guarantee(guarantee.id)
    return {
        **guarantee.to_dict(),
        "active_loan": active_loan.to_dict() if active_loan else None,
        "loan_count": len(guarantee.loans),
        "settlements": [s.to_dict() for s in settlements],
    }


def list_guarantees(status=None, unit_id: int | None = None, guarantee_type=None) -> list[Guarantee]:
    q = db.session.query(Guarantee)
    if status is not None:
        q = q.filter(Guarantee.status == require_choice(status, GuaranteeStatus, "status"))
    if unit_id is not None:
        q = q.filter(Guarantee.unit_id == unit_id)
    if guarantee_type is not None:
        q = q.filter(Guarantee.guarantee_type == require_choice(guarantee_type, GuaranteeType, "guarantee_type"))
    return q.order_by(Guarantee.input_date.desc(), Guarantee.id.desc()).all()


def list_settlements_for_guarantee(guarantee_id: int) -> list[GuaranteeSettlement]:
    """Settlement records for one guarantee, oldest first (revision order)."""
    return (
        db.session.query(GuaranteeSettlement)
        .filter_by(guarantee_id=guarantee_id)
        .order_by(GuaranteeSettlement.created_at.asc(), GuaranteeSettlement.id.asc())
        .all()
    )
