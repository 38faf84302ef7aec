from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z
from .types import enum_column_type, enum_value


class AuditStatus(str, Enum):
    OPEN = "in_progress"
    COMPLETED = "completed"


class ScanMode(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"


class FindingKind(str, Enum):
    FOUND = "found"
    MISPLACED = "misplaced"


class InventoryAudit(db.Model):
    """
    Physical inventory audit session for one unit.

    The expected asset set is snapshotted when the session opens; scans
    append AuditFinding rows. "Missing" is never stored: it is always
    expected minus found, computed on read.

    LIFECYCLE: in_progress -> completed (terminal, no further scans).
    Completing with assets still missing is a valid outcome.
    """
    __tablename__ = "inventory_audits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    audit_code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    auditor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    scan_mode = db.Column(enum_column_type(ScanMode, length=16), nullable=False, default=ScanMode.CAMERA)
    status = db.Column(enum_column_type(AuditStatus, length=16), nullable=False, default=AuditStatus.OPEN, index=True)

    # Snapshot of asset ids owned by the unit at session start
    expected_asset_ids = db.Column(db.JSON, nullable=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    unit = db.relationship("Unit")
    auditor = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_code": self.audit_code,
            "unit_id": self.unit_id,
            "auditor_id": self.auditor_id,
            "scan_mode": enum_value(self.scan_mode),
            "status": enum_value(self.status),
            "expected_asset_ids": list(self.expected_asset_ids or []),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "last_scanned_at": to_utc_z(self.last_scanned_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class AuditFinding(db.Model):
    """
    One scanned asset within an audit session.

    Append-only and unique per (audit, asset): rescanning never creates a
    second row. For misplaced assets `actual_unit_id` records the unit the
    asset belongs to according to master data.
    """
    __tablename__ = "audit_findings"
    __table_args__ = (
        db.UniqueConstraint("audit_id", "asset_id", name="uq_audit_findings_audit_asset"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audit_id = db.Column(db.Integer, db.ForeignKey("inventory_audits.id"), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)

    kind = db.Column(enum_column_type(FindingKind, length=16), nullable=False, index=True)
    actual_unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True)

    scanned_identifier = db.Column(db.String(128), nullable=False)
    scanned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False)

    audit = db.relationship("InventoryAudit", backref=db.backref("findings", lazy=True))
    asset = db.relationship("Asset")
    actual_unit = db.relationship("Unit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_id": self.audit_id,
            "asset_id": self.asset_id,
            "kind": enum_value(self.kind),
            "actual_unit_id": self.actual_unit_id,
            "scanned_identifier": self.scanned_identifier,
            "scanned_by_user_id": self.scanned_by_user_id,
            "scanned_at": to_utc_z(self.scanned_at),
        }
