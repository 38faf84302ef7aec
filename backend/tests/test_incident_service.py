from datetime import timedelta

import pytest

from assetflow.errors import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from assetflow.extensions import db
from assetflow.models import Asset, AssetStatus, IncidentKind, IncidentStatus
from assetflow.permissions import EntityKind
from assetflow.services import incident_service, status_registry
from assetflow.time_utils import today


def _report(asset, reporter, kind="Damage", description="Screen cracked after a fall"):
    return incident_service.report_incident(
        asset.id, reporter.id, kind, today(), description, "uploads/incidents/evidence.jpg"
    )


class TestReport:

    def test_report_is_pending(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        report = _report(asset, finance_user)
        assert report.status == IncidentStatus.PENDING
        assert report.type == IncidentKind.DAMAGE
        # Filing a report does not touch the asset
        assert db.session.get(Asset, asset.id).status == AssetStatus.AVAILABLE

    def test_description_minimum_length(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        with pytest.raises(ValidationError) as exc:
            _report(asset, finance_user, description="broken")
        assert exc.value.field == "description"

    def test_evidence_required(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        with pytest.raises(ValidationError):
            incident_service.report_incident(
                asset.id, finance_user.id, "Loss", today(), "Left in a taxi on Monday", None
            )

    def test_date_cannot_be_future(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        with pytest.raises(ValidationError):
            incident_service.report_incident(
                asset.id, finance_user.id, "Damage", today() + timedelta(days=1),
                "Screen cracked after a fall", "uploads/e.jpg",
            )

    def test_unknown_kind(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        with pytest.raises(ValidationError):
            _report(asset, finance_user, kind="Theft")

    def test_user_limited_to_own_unit(self, db_session, finance, make_asset, hr_user):
        asset = make_asset(finance)
        with pytest.raises(UnauthorizedError):
            _report(asset, hr_user)

    def test_unknown_asset(self, db_session, finance_user):
        with pytest.raises(NotFoundError):
            incident_service.report_incident(
                424242, finance_user.id, "Damage", today(), "Screen cracked after a fall", "uploads/e.jpg"
            )


class TestResolve:

    def test_loss_resolution_marks_asset_lost_whatever_its_status(
        self, db_session, finance, make_asset, finance_user, holding_admin
    ):
        asset = make_asset(finance, status=AssetStatus.IN_USE)
        report = _report(asset, finance_user, kind="Loss", description="Left in a taxi on Monday")

        report = incident_service.resolve_incident(report.id, holding_admin.id, "Written off", "Borrower")
        assert report.status == IncidentStatus.RESOLVED
        assert report.responsible_party == "Borrower"
        assert db.session.get(Asset, asset.id).status == AssetStatus.LOST

    def test_damage_resolution_sends_asset_to_repair(self, db_session, finance, make_asset, finance_user, finance_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user)
        incident_service.resolve_incident(report.id, finance_admin.id, "Sent to vendor")
        assert db.session.get(Asset, asset.id).status == AssetStatus.IN_REPAIR

        history = status_registry.get_asset_status_history(asset.id)
        assert history[-1].payload["caused_by_type"] == EntityKind.INCIDENT_DAMAGE
        assert history[-1].payload["caused_by_id"] == report.id

    def test_unit_admin_cannot_resolve_loss(self, db_session, finance, make_asset, finance_user, finance_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user, kind="Loss", description="Left in a taxi on Monday")
        with pytest.raises(UnauthorizedError):
            incident_service.resolve_incident(report.id, finance_admin.id)
        assert db.session.get(Asset, asset.id).status == AssetStatus.AVAILABLE

    def test_other_unit_admin_cannot_resolve_damage(self, db_session, finance, make_asset, finance_user, hr_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user)
        with pytest.raises(UnauthorizedError):
            incident_service.resolve_incident(report.id, hr_admin.id)

    def test_resolve_after_review(self, db_session, finance, make_asset, finance_user, finance_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user)

        report = incident_service.start_review(report.id, finance_admin.id)
        assert report.status == IncidentStatus.UNDER_REVIEW
        with pytest.raises(InvalidStateError):
            incident_service.start_review(report.id, finance_admin.id)

        report = incident_service.resolve_incident(report.id, finance_admin.id)
        assert report.status == IncidentStatus.RESOLVED

    def test_close_leaves_asset_alone(self, db_session, finance, make_asset, finance_user, finance_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user)
        report = incident_service.close_incident(report.id, finance_admin.id, "Cosmetic only")
        assert report.status == IncidentStatus.CLOSED
        assert db.session.get(Asset, asset.id).status == AssetStatus.AVAILABLE

    def test_terminal_reports_stay_terminal(self, db_session, finance, make_asset, finance_user, finance_admin):
        asset = make_asset(finance)
        report = _report(asset, finance_user)
        incident_service.close_incident(report.id, finance_admin.id)
        with pytest.raises(InvalidStateError):
            incident_service.resolve_incident(report.id, finance_admin.id)


def test_validation_queue(db_session, finance, hr, make_asset, finance_user, hr_user, finance_admin):
    finance_asset = make_asset(finance)
    hr_asset = make_asset(hr)
    open_damage = _report(finance_asset, finance_user)
    open_loss = _report(finance_asset, finance_user, kind="Loss", description="Left in a taxi on Monday")
    hr_damage = _report(hr_asset, hr_user)
    closed = _report(finance_asset, finance_user, description="Keyboard keys missing")
    incident_service.close_incident(closed.id, finance_admin.id)

    queue = incident_service.list_incidents_for_validation()
    assert [r.id for r in queue] == [open_damage.id, open_loss.id, hr_damage.id]

    finance_queue = incident_service.list_incidents_for_validation(unit_id=finance.id)
    assert [r.id for r in finance_queue] == [open_damage.id, open_loss.id]

    losses = incident_service.list_incidents_for_validation(kind="Loss")
    assert [r.id for r in losses] == [open_loss.id]


def test_summary(db_session, finance, make_asset, finance_user):
    asset = make_asset(finance)
    report = _report(asset, finance_user)
    summary = incident_service.get_incident_summary(report.id)
    assert summary["type"] == "Damage"
    assert summary["status"] == "PENDING"
    assert summary["asset"]["id"] == asset.id
    assert summary["reporter"]["id"] == finance_user.id
