"""
Approval gate tests.

The transition table is a pure lookup: unknown roles and unlisted
transitions are denied.
"""

import pytest

from assetflow.errors import NotFoundError, UnauthorizedError
from assetflow.models import (
    AuditStatus,
    GuaranteeStatus,
    IncidentStatus,
    LoanStatus,
    MaintenanceStatus,
    MovementStatus,
    RequestStatus,
    Role,
    SettlementStatus,
)
from assetflow.permissions import NEW, EntityKind
from assetflow.services import approval_gate


class TestCanTransition:
    """Table lookups without touching the database."""

    @pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.ADMIN_HOLDING, Role.ADMIN_UNIT])
    def test_admins_approve_loans(self, role):
        assert approval_gate.can_transition(role, EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED)

    @pytest.mark.parametrize("role", [Role.USER, Role.AUDITOR])
    def test_non_admins_cannot_approve_loans(self, role):
        assert not approval_gate.can_transition(role, EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED)

    def test_everyone_may_request_a_loan(self):
        for role in Role:
            assert approval_gate.can_transition(role, EntityKind.ASSET_LOAN, NEW, LoanStatus.PENDING)

    def test_inter_unit_approval_is_holding_only(self):
        args = (EntityKind.ASSET_REQUEST, RequestStatus.PENDING, RequestStatus.APPROVED)
        assert approval_gate.can_transition(Role.ADMIN_HOLDING, *args)
        assert approval_gate.can_transition(Role.SUPER_ADMIN, *args)
        assert not approval_gate.can_transition(Role.ADMIN_UNIT, *args)

    def test_settlement_approval_is_holding_only(self):
        args = (EntityKind.GUARANTEE_SETTLEMENT, SettlementStatus.PENDING, SettlementStatus.APPROVED)
        assert approval_gate.can_transition(Role.ADMIN_HOLDING, *args)
        assert not approval_gate.can_transition(Role.ADMIN_UNIT, *args)

    def test_loss_resolution_is_holding_only(self):
        loss = (EntityKind.INCIDENT_LOSS, IncidentStatus.PENDING, IncidentStatus.RESOLVED)
        damage = (EntityKind.INCIDENT_DAMAGE, IncidentStatus.PENDING, IncidentStatus.RESOLVED)
        assert not approval_gate.can_transition(Role.ADMIN_UNIT, *loss)
        assert approval_gate.can_transition(Role.ADMIN_UNIT, *damage)
        assert approval_gate.can_transition(Role.ADMIN_HOLDING, *loss)

    def test_auditor_opens_audits(self):
        assert approval_gate.can_transition(Role.AUDITOR, EntityKind.INVENTORY_AUDIT, NEW, AuditStatus.OPEN)
        assert not approval_gate.can_transition(Role.USER, EntityKind.INVENTORY_AUDIT, NEW, AuditStatus.OPEN)

    def test_maintenance_is_for_asset_admins(self):
        args = (EntityKind.MAINTENANCE, MaintenanceStatus.PENDING, MaintenanceStatus.IN_PROGRESS)
        assert approval_gate.can_transition(Role.ADMIN_UNIT, *args)
        assert not approval_gate.can_transition(Role.USER, *args)
        assert not approval_gate.can_transition(Role.AUDITOR, EntityKind.MAINTENANCE, NEW, MaintenanceStatus.PENDING)
        # COMPLETED is terminal
        assert not approval_gate.can_transition(
            Role.SUPER_ADMIN, EntityKind.MAINTENANCE, MaintenanceStatus.COMPLETED, MaintenanceStatus.IN_PROGRESS
        )

    def test_movement_validation_is_for_asset_admins(self):
        args = (EntityKind.ASSET_MOVEMENT, MovementStatus.PENDING, MovementStatus.APPROVED)
        assert approval_gate.can_transition(Role.ADMIN_UNIT, *args)
        assert approval_gate.can_transition(Role.ADMIN_HOLDING, *args)
        assert not approval_gate.can_transition(Role.USER, *args)

    def test_role_given_as_stored_string(self):
        assert approval_gate.can_transition(
            "Admin Unit", EntityKind.GUARANTEE, GuaranteeStatus.AVAILABLE, GuaranteeStatus.ON_LOAN
        )

    def test_unknown_role_denied(self):
        assert not approval_gate.can_transition(
            "Janitor", EntityKind.ASSET_LOAN, NEW, LoanStatus.PENDING
        )

    def test_unlisted_transition_denied(self):
        # RETURNED is terminal: no row leads anywhere from it
        assert not approval_gate.can_transition(
            Role.SUPER_ADMIN, EntityKind.ASSET_LOAN, LoanStatus.RETURNED, LoanStatus.APPROVED
        )
        assert not approval_gate.can_transition(
            Role.SUPER_ADMIN, EntityKind.GUARANTEE, GuaranteeStatus.SETTLED, GuaranteeStatus.AVAILABLE
        )

    def test_unknown_entity_kind_denied(self):
        assert not approval_gate.can_transition(Role.SUPER_ADMIN, "spaceship", NEW, LoanStatus.PENDING)


class TestRequireTransition:

    def test_allowed_actor_passes(self, finance_admin):
        approval_gate.require_transition(
            finance_admin, EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED
        )

    def test_denied_actor_raises(self, finance_user):
        with pytest.raises(UnauthorizedError) as exc:
            approval_gate.require_transition(
                finance_user, EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED
            )
        assert exc.value.kind == "UNAUTHORIZED"
        assert "PENDING" in exc.value.message

    def test_inactive_actor_denied(self, make_user):
        retired = make_user("retired_admin", Role.SUPER_ADMIN, is_active=False)
        with pytest.raises(UnauthorizedError):
            approval_gate.require_transition(
                retired, EntityKind.ASSET_LOAN, LoanStatus.PENDING, LoanStatus.APPROVED
            )


class TestUnitScope:

    def test_holding_admin_passes_any_unit(self, holding_admin, finance, hr):
        approval_gate.require_unit_scope(holding_admin, finance.id, action="approve loans")
        approval_gate.require_unit_scope(holding_admin, hr.id, action="approve loans")

    def test_unit_admin_limited_to_own_unit(self, finance_admin, finance, hr):
        approval_gate.require_unit_scope(finance_admin, finance.id, action="approve loans")
        with pytest.raises(UnauthorizedError):
            approval_gate.require_unit_scope(finance_admin, hr.id, action="approve loans")

    def test_unitless_auditor_passes(self, auditor, hr):
        approval_gate.require_unit_scope(auditor, hr.id, action="review")


def test_get_actor_unknown_id(db_session):
    with pytest.raises(NotFoundError) as exc:
        approval_gate.get_actor(424242)
    assert exc.value.field == "actor_user_id"
