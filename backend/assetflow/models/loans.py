from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .types import enum_column_type, enum_value


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PENDING_RETURN = "PENDING_RETURN"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"


# Statuses in which a loan holds its asset
ACTIVE_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.APPROVED, LoanStatus.PENDING_RETURN)


class ReturnCondition(str, Enum):
    """Validator's assessment of a returned asset."""
    GOOD = "good"
    DAMAGED = "damaged"
    LOST = "lost"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RequestLoanStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"
    PENDING_RETURN = "PENDING_RETURN"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


# Embedded loan states in which an approved request holds its bound asset
ACTIVE_REQUEST_LOAN_STATUSES = (
    RequestLoanStatus.NOT_STARTED,
    RequestLoanStatus.ACTIVE,
    RequestLoanStatus.PENDING_RETURN,
    RequestLoanStatus.OVERDUE,
)


class AssetLoan(db.Model):
    """
    Single-unit asset loan.

    LIFECYCLE:
    1. PENDING: Borrower requested the asset
    2. APPROVED: Admin approved with proof photo, asset handed over
    3. PENDING_RETURN: Borrower submitted the return with proof photo
    4. RETURNED: Admin validated the return and assessed the condition
    5. REJECTED: Request rejected or cancelled (terminal)

    A rejected return sends PENDING_RETURN back to APPROVED so the borrower
    can resubmit.
    """
    __tablename__ = "asset_loans"
    __table_args__ = (
        db.Index("ix_asset_loans_asset_status", "asset_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    borrower_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(enum_column_type(LoanStatus), nullable=False, default=LoanStatus.PENDING, index=True)

    # Requested window
    request_date = db.Column(db.Date, nullable=False)
    loan_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    expected_return_date = db.Column(db.Date, nullable=False)
    purpose = db.Column(db.Text, nullable=False)

    # Approval
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approval_date = db.Column(db.Date, nullable=True)
    loan_proof_photo_path = db.Column(db.String(512), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Return submission
    actual_return_date = db.Column(db.Date, nullable=True)
    return_notes = db.Column(db.Text, nullable=True)
    return_proof_photo_path = db.Column(db.String(512), nullable=True)

    # Return validation
    return_condition = db.Column(enum_column_type(ReturnCondition, length=16), nullable=True)
    return_verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    return_verification_date = db.Column(db.Date, nullable=True)
    return_rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    asset = db.relationship("Asset", backref=db.backref("loans", lazy=True))
    borrower = db.relationship("User", foreign_keys=[borrower_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    return_verified_by = db.relationship("User", foreign_keys=[return_verified_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "borrower_id": self.borrower_id,
            "status": enum_value(self.status),
            "request_date": to_iso_date(self.request_date),
            "loan_date": to_iso_date(self.loan_date),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "expected_return_date": to_iso_date(self.expected_return_date),
            "purpose": self.purpose,
            "approved_by_user_id": self.approved_by_user_id,
            "approval_date": to_iso_date(self.approval_date),
            "loan_proof_photo_path": self.loan_proof_photo_path,
            "rejection_reason": self.rejection_reason,
            "actual_return_date": to_iso_date(self.actual_return_date),
            "return_notes": self.return_notes,
            "return_proof_photo_path": self.return_proof_photo_path,
            "return_condition": enum_value(self.return_condition),
            "return_verified_by_user_id": self.return_verified_by_user_id,
            "return_verification_date": to_iso_date(self.return_verification_date),
            "return_rejection_reason": self.return_rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class AssetRequest(db.Model):
    """
    Cross-unit borrow request.

    The requesting unit asks for an asset by name/category; a holding-level
    admin binds a concrete asset when approving (or later), which marks the
    asset In Use. The embedded loan_status then tracks the physical loan:
    NOT_STARTED -> ACTIVE -> PENDING_RETURN -> RETURNED, with OVERDUE for
    ACTIVE loans past their expected return date.
    """
    __tablename__ = "asset_requests"
    __table_args__ = (
        db.Index("ix_asset_requests_asset_loan_status", "asset_id", "loan_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    requester_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # What was asked for, and what was eventually bound
    asset_name = db.Column(db.String(255), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=True, index=True)

    request_date = db.Column(db.Date, nullable=False)
    needed_date = db.Column(db.Date, nullable=False)
    expected_return_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    purpose = db.Column(db.Text, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    status = db.Column(enum_column_type(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)

    # Review
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    loan_photo_path = db.Column(db.String(512), nullable=True)

    # Embedded loan tracking (meaningful once APPROVED)
    loan_status = db.Column(enum_column_type(RequestLoanStatus), nullable=True, index=True)
    actual_loan_date = db.Column(db.Date, nullable=True)
    actual_return_date = db.Column(db.Date, nullable=True)
    return_notes = db.Column(db.Text, nullable=True)
    return_proof_photo_path = db.Column(db.String(512), nullable=True)
    return_confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    return_confirmation_date = db.Column(db.DateTime(timezone=True), nullable=True)
    return_rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    requester_unit = db.relationship("Unit", backref=db.backref("asset_requests", lazy=True))
    requester = db.relationship("User", foreign_keys=[requester_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_user_id])
    return_confirmed_by = db.relationship("User", foreign_keys=[return_confirmed_by_user_id])
    asset = db.relationship("Asset", backref=db.backref("requests", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requester_unit_id": self.requester_unit_id,
            "requester_id": self.requester_id,
            "asset_name": self.asset_name,
            "asset_id": self.asset_id,
            "request_date": to_iso_date(self.request_date),
            "needed_date": to_iso_date(self.needed_date),
            "expected_return_date": to_iso_date(self.expected_return_date),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "purpose": self.purpose,
            "reason": self.reason,
            "status": enum_value(self.status),
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "review_date": to_utc_z(self.review_date),
            "rejection_reason": self.rejection_reason,
            "approval_notes": self.approval_notes,
            "loan_photo_path": self.loan_photo_path,
            "loan_status": enum_value(self.loan_status),
            "actual_loan_date": to_iso_date(self.actual_loan_date),
            "actual_return_date": to_iso_date(self.actual_return_date),
            "return_notes": self.return_notes,
            "return_proof_photo_path": self.return_proof_photo_path,
            "return_confirmed_by_user_id": self.return_confirmed_by_user_id,
            "return_confirmation_date": to_utc_z(self.return_confirmation_date),
            "return_rejection_reason": self.return_rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
