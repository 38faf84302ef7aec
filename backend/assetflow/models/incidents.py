from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .types import enum_column_type, enum_value


class IncidentKind(str, Enum):
    DAMAGE = "Damage"
    LOSS = "Loss"


class IncidentStatus(str, Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


OPEN_INCIDENT_STATUSES = (IncidentStatus.PENDING, IncidentStatus.UNDER_REVIEW)


class IncidentReport(db.Model):
    """
    Damage or loss report against an asset.

    RESOLVED applies the consequence to the asset (Damage -> In Repair,
    Loss -> Lost). CLOSED dismisses the report and leaves the asset alone.
    UNDER_REVIEW is an optional intermediate step.
    """
    __tablename__ = "incident_reports"
    __table_args__ = (
        db.Index("ix_incident_reports_asset_status", "asset_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(enum_column_type(IncidentKind, length=16), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.Date, nullable=False)
    evidence_photo_path = db.Column(db.String(512), nullable=True)

    status = db.Column(
        enum_column_type(IncidentStatus),
        nullable=False,
        default=IncidentStatus.PENDING,
        index=True,
    )

    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)
    responsible_party = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    asset = db.relationship("Asset", backref=db.backref("incident_reports", lazy=True))
    reporter = db.relationship("User", foreign_keys=[reporter_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "reporter_id": self.reporter_id,
            "type": enum_value(self.type),
            "description": self.description,
            "date": to_iso_date(self.date),
            "evidence_photo_path": self.evidence_photo_path,
            "status": enum_value(self.status),
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "review_date": to_utc_z(self.review_date),
            "resolution_notes": self.resolution_notes,
            "responsible_party": self.responsible_party,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
