# Overview: Service-layer operations for the workflow ledger; append-only transition history.

"""
Workflow ledger.

Every transition of a workflow entity (loan, request, guarantee, incident,
audit, maintenance job or movement) and every asset write appends one
WorkflowEvent inside the transaction that performs it. Rolled-back commands therefore leave no event behind. Events
are never updated or deleted.
"""
from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import WorkflowEvent
from ..time_utils import utcnow


def append_workflow_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    unit_id: int | None = None,
    asset_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> WorkflowEvent:
    """
    Record one transition against its workflow entity.

    event_type is "<entity>.<verb>" (e.g. "asset_loan.approved"). unit_id and
    asset_id are denormalized so a unit's or an asset's history reads without
    joins. Flushes only; the caller commits.
    """
    event = WorkflowEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        unit_id=unit_id,
        asset_id=asset_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=payload,
    )
    db.session.add(event)
    db.session.flush()
    return event


def list_events_for_entity(entity_type: str, entity_id: int) -> list[WorkflowEvent]:
    return (
        db.session.query(WorkflowEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(WorkflowEvent.occurred_at.asc(), WorkflowEvent.id.asc())
        .all()
    )


def list_events_for_asset(asset_id: int, *, event_type: str | None = None) -> list[WorkflowEvent]:
    """Everything that happened to one asset across all workflows, oldest first."""
    q = db.session.query(WorkflowEvent).filter_by(asset_id=asset_id)
    if event_type is not None:
        q = q.filter_by(event_type=event_type)
    return q.order_by(WorkflowEvent.occurred_at.asc(), WorkflowEvent.id.asc()).all()
