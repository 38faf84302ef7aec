from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .types import enum_column_type, enum_value


class AssetStatus(str, Enum):
    """
    Asset status values (wire contract).

    AVAILABLE is the baseline that loan checks require. IN_USE doubles as
    the "loaned to another unit" state.
    """
    AVAILABLE = "Available"
    IN_USE = "In Use"
    IN_REPAIR = "In Repair"
    DISPOSED = "Disposed"
    LOST = "Lost"


class Asset(db.Model):
    """
    Physical company asset (equipment, vehicle, ...).

    Master data is maintained elsewhere; the workflow engine only reads it
    and writes `status` through the status registry.

    CONCURRENCY: `lock_version` is a compare-and-swap counter. Every write
    made by the status registry is `UPDATE ... WHERE lock_version = :seen`,
    so two workflows that read the same version cannot both commit a hold.
    """
    __tablename__ = "assets"
    __table_args__ = (
        db.Index("ix_assets_unit_status", "unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Printed on the QR label; scans that are not numeric resolve by tag
    asset_tag = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Owning unit
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)

    value = db.Column(db.Numeric(14, 2), nullable=True)
    purchase_date = db.Column(db.Date, nullable=True)
    useful_life = db.Column(db.Integer, nullable=True)  # months

    status = db.Column(enum_column_type(AssetStatus), nullable=False, default=AssetStatus.AVAILABLE, index=True)

    lock_version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    unit = db.relationship("Unit", backref=db.backref("assets", lazy=True))

    def __repr__(self) -> str:
        return f"<Asset id={self.id} tag={self.asset_tag!r} status={enum_value(self.status)!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_tag": self.asset_tag,
            "name": self.name,
            "category": self.category,
            "unit_id": self.unit_id,
            "value": str(self.value) if self.value is not None else None,
            "purchase_date": to_iso_date(self.purchase_date),
            "useful_life": self.useful_life,
            "status": enum_value(self.status),
            "lock_version": self.lock_version,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
