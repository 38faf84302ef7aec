from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class WorkflowEvent(db.Model):
    """
    Append-only audit trail of workflow transitions.

    IMMUTABLE: Never update or delete. Events are written inside the same
    transaction as the transition they record, so a rolled-back command
    leaves no event behind.
    """
    __tablename__ = "workflow_events"
    __table_args__ = (
        db.Index("ix_workflow_events_entity", "entity_type", "entity_id"),
        db.Index("ix_workflow_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "asset_loan.approved", "asset.status_changed"
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "unit_id": self.unit_id,
            "asset_id": self.asset_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
