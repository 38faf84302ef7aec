from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .types import enum_column_type, enum_value


class MaintenanceKind(str, Enum):
    REPAIR = "Perbaikan"
    UPKEEP = "Pemeliharaan"


class MaintenanceParty(str, Enum):
    INTERNAL = "Internal"
    EXTERNAL = "External"


class MaintenanceStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Maintenance(db.Model):
    """
    Repair or upkeep job on an asset.

    Approval puts the asset In Repair and the job IN_PROGRESS; completion
    hands the asset back as Available. A rejected job is CANCELLED without
    touching the asset.
    """
    __tablename__ = "maintenances"
    __table_args__ = (
        db.Index("ix_maintenances_asset_status", "asset_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    reported_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(enum_column_type(MaintenanceKind, length=16), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    # Unit doing the work, if it is not the owner
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)
    party_type = db.Column(enum_column_type(MaintenanceParty, length=16), nullable=False)
    vendor_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(20), nullable=False)
    photo_proof_path = db.Column(db.String(512), nullable=True)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(
        enum_column_type(MaintenanceStatus),
        nullable=False,
        default=MaintenanceStatus.PENDING,
        index=True,
    )

    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    validation_date = db.Column(db.DateTime(timezone=True), nullable=True)
    validation_notes = db.Column(db.Text, nullable=True)

    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    asset = db.relationship("Asset", backref=db.backref("maintenances", lazy=True))
    unit = db.relationship("Unit")
    reported_by = db.relationship("User", foreign_keys=[reported_by_user_id])
    validated_by = db.relationship("User", foreign_keys=[validated_by_user_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "reported_by_user_id": self.reported_by_user_id,
            "type": enum_value(self.type),
            "date": to_iso_date(self.date),
            "unit_id": self.unit_id,
            "party_type": enum_value(self.party_type),
            "vendor_name": self.vendor_name,
            "phone_number": self.phone_number,
            "photo_proof_path": self.photo_proof_path,
            "description": self.description,
            "status": enum_value(self.status),
            "validated_by_user_id": self.validated_by_user_id,
            "validation_date": to_utc_z(self.validation_date),
            "validation_notes": self.validation_notes,
            "completed_by_user_id": self.completed_by_user_id,
            "completion_date": to_utc_z(self.completion_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
