# Overview: Service-layer operations for the approval gate; role checks for every workflow transition.

"""
Approval Gate

One table-driven authorization predicate shared by every workflow. The table
lives in permissions/definitions.py and is keyed by
(entity_kind, from_status, to_status) -> allowed roles.

DESIGN PRINCIPLES:
- Fail closed: a transition with no table row is denied
- Pure lookup: can_transition() never touches the database
- Log denials only: grants are not logged
- Unit scoping is layered on top of the role table by the helpers below
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import Role, User
from ..permissions import HOLDING_ADMINS, TRANSITION_PERMISSIONS


def _coerce_role(role) -> Role | None:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def _status_label(status) -> str:
    if status is None:
        return "NEW"
    return getattr(status, "value", str(status))


def can_transition(role, entity_kind: str, from_status, to_status) -> bool:
    """
    Check whether a role may move an entity between two statuses.

    Args:
        role: Role member or its stored string ("Admin Unit", ...)
        entity_kind: One of permissions.EntityKind
        from_status: Current status (None for creation)
        to_status: Target status

    Returns:
        True if the role appears in the table row, False otherwise
        (including unknown roles and unknown transitions)
    """
    role = _coerce_role(role)
    if role is None:
        return False
    allowed = TRANSITION_PERMISSIONS.get((entity_kind, from_status, to_status))
    if not allowed:
        return False
    return role in allowed


def require_transition(actor: User, entity_kind: str, from_status, to_status) -> None:
    """
    Raise UnauthorizedError unless the actor's role may perform the transition.

    Inactive actors are always denied.
    """
    if actor is not None and actor.is_active and can_transition(actor.role, entity_kind, from_status, to_status):
        return

    current_app.logger.warning(
        "Transition denied: actor=%s role=%s %s %s -> %s",
        getattr(actor, "id", None),
        getattr(getattr(actor, "role", None), "value", None),
        entity_kind,
        _status_label(from_status),
        _status_label(to_status),
    )
    raise UnauthorizedError(
        f"Role not permitted to move {entity_kind} from "
        f"{_status_label(from_status)} to {_status_label(to_status)}"
    )


def is_holding_level(actor: User) -> bool:
    """Holding-level admins act across every unit."""
    return _coerce_role(actor.role) in HOLDING_ADMINS


def in_unit(actor: User, unit_id: int | None) -> bool:
    return actor.unit_id is not None and actor.unit_id == unit_id


def require_unit_scope(actor: User, unit_id: int | None, *, action: str) -> None:
    """
    Unit-scoped actors may only act on their own unit's records.

    Holding-level actors (Super Admin, Admin Holding) pass unconditionally.
    Auditors without a unit are treated as holding-wide observers.
    """
    if is_holding_level(actor):
        return
    if _coerce_role(actor.role) == Role.AUDITOR and actor.unit_id is None:
        return
    if in_unit(actor, unit_id):
        return
    current_app.logger.warning(
        "Unit scope denied: actor=%s unit=%s target_unit=%s action=%s",
        actor.id, actor.unit_id, unit_id, action,
    )
    raise UnauthorizedError(f"Not permitted to {action} outside your unit")


def get_actor(actor_user_id: int) -> User:
    """Load the acting user; unknown ids are NotFoundError."""
    actor = db.session.get(User, actor_user_id)
    if not actor:
        raise NotFoundError(f"User {actor_user_id} not found", field="actor_user_id")
    return actor
