from datetime import timedelta

import pytest

from assetflow.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from assetflow.extensions import db
from assetflow.models import Asset, AssetRequest, AssetStatus, RequestLoanStatus, RequestStatus, Role, Unit
from assetflow.services import incident_service, ledger_service, loan_service, request_service, status_registry
from assetflow.time_utils import today


def _create(actor, unit, *, needed_in=0, days=3, asset_name="Projector"):
    needed = today() + timedelta(days=needed_in)
    return request_service.create_request(
        actor.id,
        unit.id,
        asset_name,
        needed,
        "08:00",
        "16:00",
        needed + timedelta(days=days),
        "Quarterly town hall",
        "Our own projector is in repair",
    )


class TestCreateRequest:

    def test_created_pending_without_asset(self, db_session, finance, finance_user):
        asset_request = _create(finance_user, finance)
        assert asset_request.status == RequestStatus.PENDING
        assert asset_request.loan_status is None
        assert asset_request.asset_id is None
        assert asset_request.requester_unit_id == finance.id

    def test_needed_date_cannot_be_past(self, db_session, finance, finance_user):
        with pytest.raises(ValidationError) as exc:
            _create(finance_user, finance, needed_in=-1)
        assert exc.value.field == "needed_date"

    def test_return_must_follow_needed_date(self, db_session, finance, finance_user):
        with pytest.raises(ValidationError) as exc:
            _create(finance_user, finance, days=0)
        assert exc.value.field == "expected_return_date"

    def test_cannot_request_for_another_unit(self, db_session, finance, hr_user):
        with pytest.raises(UnauthorizedError):
            _create(hr_user, finance)

    def test_holding_admin_requests_for_any_unit(self, db_session, finance, holding_admin):
        assert _create(holding_admin, finance).status == RequestStatus.PENDING

    def test_unknown_unit(self, db_session, finance_user):
        with pytest.raises(NotFoundError):
            request_service.create_request(
                finance_user.id, 99999, "Projector", today(), "08:00", "16:00",
                today() + timedelta(days=1), "Town hall", "Need one",
            )


class TestReview:

    def test_approve_binds_asset_and_marks_in_use(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr, name="Projector")
        asset_request = _create(finance_user, finance)

        asset_request = request_service.approve_request(
            asset_request.id, holding_admin.id, asset_id=projector.id,
            approval_notes="Pick up at HR", loan_photo_path="uploads/requests/handover.jpg",
        )
        assert asset_request.status == RequestStatus.APPROVED
        assert asset_request.loan_status == RequestLoanStatus.ACTIVE
        assert asset_request.asset_id == projector.id
        assert asset_request.actual_loan_date == today()
        assert db.session.get(Asset, projector.id).status == AssetStatus.IN_USE

    def test_approve_without_asset_then_assign(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr, name="Projector")
        asset_request = _create(finance_user, finance)

        asset_request = request_service.approve_request(asset_request.id, holding_admin.id)
        assert asset_request.loan_status == RequestLoanStatus.NOT_STARTED
        assert db.session.get(Asset, projector.id).status == AssetStatus.AVAILABLE

        asset_request = request_service.assign_asset(asset_request.id, holding_admin.id, projector.id)
        assert asset_request.loan_status == RequestLoanStatus.ACTIVE
        assert db.session.get(Asset, projector.id).status == AssetStatus.IN_USE

    def test_cannot_bind_requesting_units_own_asset(self, db_session, finance, make_asset, finance_user, holding_admin):
        own = make_asset(finance)
        asset_request = _create(finance_user, finance)
        with pytest.raises(ValidationError):
            request_service.approve_request(asset_request.id, holding_admin.id, asset_id=own.id)
        assert db.session.get(AssetRequest, asset_request.id).status == RequestStatus.PENDING

    def test_unit_admin_cannot_approve(self, db_session, finance, hr, make_asset, finance_user, hr_admin):
        projector = make_asset(hr)
        asset_request = _create(finance_user, finance)
        with pytest.raises(UnauthorizedError):
            request_service.approve_request(asset_request.id, hr_admin.id, asset_id=projector.id)
        assert db.session.get(Asset, projector.id).status == AssetStatus.AVAILABLE

    def test_second_approval_on_same_asset_conflicts(
        self, db_session, finance, hr, make_asset, finance_user, holding_admin, make_user
    ):
        legal = Unit(name="Legal", code="LEG")
        db.session.add(legal)
        db.session.commit()
        legal_user = make_user("legal_user", Role.USER, legal)

        projector = make_asset(hr, name="Projector")
        first = _create(finance_user, finance)
        second = _create(legal_user, legal)

        request_service.approve_request(first.id, holding_admin.id, asset_id=projector.id)
        with pytest.raises(ConflictError):
            request_service.approve_request(second.id, holding_admin.id, asset_id=projector.id)

        assert db.session.get(AssetRequest, second.id).status == RequestStatus.PENDING
        assert db.session.get(AssetRequest, second.id).asset_id is None

    def test_asset_on_single_unit_loan_conflicts(
        self, db_session, finance, hr, make_asset, finance_user, hr_user, holding_admin
    ):
        projector = make_asset(hr)
        loan_service.request_loan(
            projector.id, hr_user.id, today(), "09:00", "12:00", today() + timedelta(days=1), "Training"
        )
        asset_request = _create(finance_user, finance)
        with pytest.raises(ConflictError):
            request_service.approve_request(asset_request.id, holding_admin.id, asset_id=projector.id)

    def test_reject(self, db_session, finance, finance_user, holding_admin):
        asset_request = _create(finance_user, finance)
        asset_request = request_service.reject_request(asset_request.id, holding_admin.id, "No spare projectors")
        assert asset_request.status == RequestStatus.REJECTED
        assert asset_request.rejection_reason == "No spare projectors"

        with pytest.raises(InvalidStateError):
            request_service.approve_request(asset_request.id, holding_admin.id)

    def test_assign_requires_not_started(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr)
        asset_request = _create(finance_user, finance)
        with pytest.raises(InvalidStateError):
            request_service.assign_asset(asset_request.id, holding_admin.id, projector.id)


class TestRequestReturn:

    def _active(self, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr, name="Projector")
        asset_request = _create(finance_user, finance)
        request_service.approve_request(asset_request.id, holding_admin.id, asset_id=projector.id)
        return asset_request, projector

    def test_return_round_trip_releases_asset(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        asset_request, projector = self._active(finance, hr, make_asset, finance_user, holding_admin)

        asset_request = request_service.submit_request_return(asset_request.id, finance_user.id, "Returned to HR desk")
        assert asset_request.loan_status == RequestLoanStatus.PENDING_RETURN
        assert db.session.get(Asset, projector.id).status == AssetStatus.IN_USE

        asset_request = request_service.confirm_request_return(asset_request.id, holding_admin.id)
        assert asset_request.loan_status == RequestLoanStatus.RETURNED
        assert asset_request.return_confirmed_by_user_id == holding_admin.id
        assert db.session.get(Asset, projector.id).status == AssetStatus.AVAILABLE
        assert status_registry.is_available_for_loan(projector.id)

    def test_confirm_keeps_asset_lost_during_loan(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        asset_request, projector = self._active(finance, hr, make_asset, finance_user, holding_admin)
        report = incident_service.report_incident(
            projector.id, holding_admin.id, "Loss", today(), "Not found after the town hall", "uploads/incidents/hall.jpg"
        )
        incident_service.resolve_incident(report.id, holding_admin.id, "Written off")
        request_service.submit_request_return(asset_request.id, finance_user.id, "Only the bag came back")

        asset_request = request_service.confirm_request_return(asset_request.id, holding_admin.id)
        assert asset_request.loan_status == RequestLoanStatus.RETURNED
        assert db.session.get(Asset, projector.id).status == AssetStatus.LOST
        assert not status_registry.is_available_for_loan(projector.id)

        skipped = ledger_service.list_events_for_asset(projector.id, event_type="asset.release_skipped")
        assert len(skipped) == 1
        assert skipped[0].payload["status"] == AssetStatus.LOST.value
        assert skipped[0].payload["expected"] == AssetStatus.IN_USE.value

    def test_only_requesting_unit_returns(self, db_session, finance, hr, make_asset, finance_user, hr_user, holding_admin):
        asset_request, _ = self._active(finance, hr, make_asset, finance_user, holding_admin)
        with pytest.raises(UnauthorizedError):
            request_service.submit_request_return(asset_request.id, hr_user.id)

    def test_rejected_return_goes_back_to_active(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        asset_request, projector = self._active(finance, hr, make_asset, finance_user, holding_admin)
        request_service.submit_request_return(asset_request.id, finance_user.id)

        asset_request = request_service.reject_request_return(asset_request.id, holding_admin.id, "Remote control missing")
        assert asset_request.loan_status == RequestLoanStatus.ACTIVE
        assert asset_request.return_rejection_reason == "Remote control missing"
        assert db.session.get(Asset, projector.id).status == AssetStatus.IN_USE

    def test_unit_admin_cannot_confirm(self, db_session, finance, hr, make_asset, finance_user, hr_admin, holding_admin):
        asset_request, _ = self._active(finance, hr, make_asset, finance_user, holding_admin)
        request_service.submit_request_return(asset_request.id, finance_user.id)
        with pytest.raises(UnauthorizedError):
            request_service.confirm_request_return(asset_request.id, hr_admin.id)

    def test_cannot_confirm_before_submission(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        asset_request, _ = self._active(finance, hr, make_asset, finance_user, holding_admin)
        with pytest.raises(InvalidStateError):
            request_service.confirm_request_return(asset_request.id, holding_admin.id)


class TestOverdue:

    def test_mark_overdue_is_idempotent(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr)
        asset_request = _create(finance_user, finance, days=2)
        request_service.approve_request(asset_request.id, holding_admin.id, asset_id=projector.id)

        assert request_service.mark_overdue_requests() == []

        later = today() + timedelta(days=10)
        assert request_service.mark_overdue_requests(later) == [asset_request.id]
        assert db.session.get(AssetRequest, asset_request.id).loan_status == RequestLoanStatus.OVERDUE
        assert request_service.mark_overdue_requests(later) == []

    def test_overdue_request_can_still_be_returned(self, db_session, finance, hr, make_asset, finance_user, holding_admin):
        projector = make_asset(hr)
        asset_request = _create(finance_user, finance, days=1)
        request_service.approve_request(asset_request.id, holding_admin.id, asset_id=projector.id)
        request_service.mark_overdue_requests(today() + timedelta(days=5))

        asset_request = request_service.submit_request_return(asset_request.id, finance_user.id)
        assert asset_request.loan_status == RequestLoanStatus.PENDING_RETURN

    def test_not_started_requests_are_not_flagged(self, db_session, finance, finance_user, holding_admin):
        asset_request = _create(finance_user, finance, days=1)
        request_service.approve_request(asset_request.id, holding_admin.id)
        assert request_service.mark_overdue_requests(today() + timedelta(days=5)) == []


def test_summary_and_listing(db_session, finance, hr, make_asset, finance_user, hr_user, holding_admin):
    projector = make_asset(hr, name="Projector")
    finance_request = _create(finance_user, finance)
    _create(hr_user, hr, asset_name="Camera")
    request_service.approve_request(finance_request.id, holding_admin.id, asset_id=projector.id)

    summary = request_service.get_request_summary(finance_request.id)
    assert summary["status"] == "APPROVED"
    assert summary["loan_status"] == "ACTIVE"
    assert summary["asset"]["id"] == projector.id
    assert summary["requester_unit"]["name"] == "Finance"

    assert [r.id for r in request_service.list_requests(requester_unit_id=finance.id)] == [finance_request.id]
    assert len(request_service.list_requests(status="PENDING")) == 1
    assert [r.id for r in request_service.list_requests(loan_status=RequestLoanStatus.ACTIVE)] == [finance_request.id]
    with pytest.raises(ValidationError):
        request_service.list_requests(status="WAITING")
