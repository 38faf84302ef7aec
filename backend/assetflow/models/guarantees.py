from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .types import enum_column_type, enum_value


class GuaranteeStatus(str, Enum):
    """Stored values are the collateral desk's own terms."""
    AVAILABLE = "available"
    ON_LOAN = "dipinjam"
    SETTLED = "lunas"


class GuaranteeType(str, Enum):
    BPKB = "BPKB"
    SHM = "SHM"
    SHGB = "SHGB"
    E_SHM = "E-SHM"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Guarantee(db.Model):
    """
    Physical collateral document held against a credit agreement.

    LIFECYCLE:
        available <-> dipinjam (loaned out to a borrower and back)
        available  -> lunas    (settlement approved; terminal)

    A settled guarantee has left the vault for good: no further loan or
    settlement is permitted.
    """
    __tablename__ = "guarantees"
    __table_args__ = (
        db.Index("ix_guarantees_spk_number", "spk_number"),
        db.Index("ix_guarantees_cif_number", "cif_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Credit agreement / customer identifiers (opaque strings)
    spk_number = db.Column(db.String(255), nullable=False)
    cif_number = db.Column(db.String(255), nullable=False)
    spk_name = db.Column(db.String(255), nullable=False)  # owner name
    credit_period = db.Column(db.String(64), nullable=True)

    guarantee_name = db.Column(db.String(255), nullable=False)
    guarantee_type = db.Column(enum_column_type(GuaranteeType, length=8), nullable=False)
    guarantee_number = db.Column(db.String(255), nullable=True)
    file_location = db.Column(db.String(255), nullable=True)
    input_date = db.Column(db.Date, nullable=False)

    # Unit whose credit desk holds the document (None = holding vault)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)

    status = db.Column(
        enum_column_type(GuaranteeStatus, length=16),
        nullable=False,
        default=GuaranteeStatus.AVAILABLE,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    unit = db.relationship("Unit")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spk_number": self.spk_number,
            "cif_number": self.cif_number,
            "spk_name": self.spk_name,
            "credit_period": self.credit_period,
            "guarantee_name": self.guarantee_name,
            "guarantee_type": enum_value(self.guarantee_type),
            "guarantee_number": self.guarantee_number,
            "file_location": self.file_location,
            "input_date": to_iso_date(self.input_date),
            "unit_id": self.unit_id,
            "status": enum_value(self.status),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class GuaranteeLoan(db.Model):
    """A guarantee document lent out of the vault. `returned` closes it."""
    __tablename__ = "guarantee_loans"
    __table_args__ = (
        db.Index("ix_guarantee_loans_guarantee_returned", "guarantee_id", "returned"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    guarantee_id = db.Column(db.Integer, db.ForeignKey("guarantees.id"), nullable=False, index=True)

    borrower_name = db.Column(db.String(255), nullable=False)
    borrower_contact = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.Text, nullable=False)

    loan_date = db.Column(db.Date, nullable=False)
    expected_return_date = db.Column(db.Date, nullable=True)
    actual_return_date = db.Column(db.Date, nullable=True)
    returned = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    returned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    guarantee = db.relationship("Guarantee", backref=db.backref("loans", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "guarantee_id": self.guarantee_id,
            "borrower_name": self.borrower_name,
            "borrower_contact": self.borrower_contact,
            "reason": self.reason,
            "loan_date": to_iso_date(self.loan_date),
            "expected_return_date": to_iso_date(self.expected_return_date),
            "actual_return_date": to_iso_date(self.actual_return_date),
            "returned": self.returned,
            "created_by_user_id": self.created_by_user_id,
            "returned_by_user_id": self.returned_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class GuaranteeSettlement(db.Model):
    """
    Settlement (pelunasan) of a guarantee.

    LIFECYCLE:
    1. pending: Requested, guarantee still available
    2. approved: Validated; guarantee becomes lunas (terminal for the guarantee)
    3. rejected: Refused; a revision may be filed as a new pending record
       pointing back through previous_settlement_id
    """
    __tablename__ = "guarantee_settlements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    guarantee_id = db.Column(db.Integer, db.ForeignKey("guarantees.id"), nullable=False, index=True)

    # Revision chain: a resubmission references the rejected record
    previous_settlement_id = db.Column(
        db.Integer, db.ForeignKey("guarantee_settlements.id"), nullable=True, index=True
    )

    settlement_date = db.Column(db.Date, nullable=False)
    settlement_notes = db.Column(db.Text, nullable=True)
    settlement_status = db.Column(
        enum_column_type(SettlementStatus, length=16),
        nullable=False,
        default=SettlementStatus.PENDING,
        index=True,
    )

    # Validation
    settled_by = db.Column(db.String(255), nullable=True)  # validator name as written on the record
    settlement_remarks = db.Column(db.Text, nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    guarantee = db.relationship("Guarantee", backref=db.backref("settlements", lazy=True))
    previous_settlement = db.relationship("GuaranteeSettlement", remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "guarantee_id": self.guarantee_id,
            "previous_settlement_id": self.previous_settlement_id,
            "settlement_date": to_iso_date(self.settlement_date),
            "settlement_notes": self.settlement_notes,
            "settlement_status": enum_value(self.settlement_status),
            "settled_by": self.settled_by,
            "settlement_remarks": self.settlement_remarks,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
