from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z
from .types import enum_column_type, enum_value


class MovementStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class AssetMovement(db.Model):
    """
    Transfer of an asset's ownership from one unit to another.

    The receiving unit validates it. APPROVED rewrites Asset.unit_id;
    REJECTED and CANCELLED leave the asset where it was. At most one
    PENDING movement per asset.
    """
    __tablename__ = "asset_movements"
    __table_args__ = (
        db.Index("ix_asset_movements_asset_status", "asset_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    from_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    to_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(
        enum_column_type(MovementStatus),
        nullable=False,
        default=MovementStatus.PENDING,
        index=True,
    )
    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    asset = db.relationship("Asset", backref=db.backref("movements", lazy=True))
    from_unit = db.relationship("Unit", foreign_keys=[from_unit_id])
    to_unit = db.relationship("Unit", foreign_keys=[to_unit_id])
    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])
    validated_by = db.relationship("User", foreign_keys=[validated_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "from_unit_id": self.from_unit_id,
            "to_unit_id": self.to_unit_id,
            "requested_by_user_id": self.requested_by_user_id,
            "validated_by_user_id": self.validated_by_user_id,
            "status": enum_value(self.status),
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "requested_at": to_utc_z(self.requested_at),
            "validated_at": to_utc_z(self.validated_at),
            "version_id": self.version_id,
        }
