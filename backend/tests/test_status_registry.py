from datetime import timedelta

import pytest
from sqlalchemy import text

from assetflow.errors import ConflictError, InvalidStateError, NotFoundError
from assetflow.extensions import db
from assetflow.models import Asset, AssetStatus
from assetflow.permissions import EntityKind
from assetflow.services import ledger_service, loan_service, status_registry
from assetflow.time_utils import today


class TestSetAssetStatus:

    def test_writes_status_and_bumps_version(self, db_session, finance, make_asset, finance_admin):
        asset = make_asset(finance)
        asset_id = asset.id

        status_registry.set_asset_status(
            asset_id, AssetStatus.IN_REPAIR, (EntityKind.INCIDENT_DAMAGE, 1), actor_user_id=finance_admin.id
        )
        db.session.commit()

        stored = db.session.get(Asset, asset_id)
        assert stored.status == AssetStatus.IN_REPAIR
        assert stored.lock_version == 2

    def test_accepts_stored_string(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        status_registry.set_asset_status(asset.id, "Lost")
        db.session.commit()
        assert db.session.get(Asset, asset.id).status == AssetStatus.LOST

    def test_unknown_status_rejected(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        with pytest.raises(InvalidStateError):
            status_registry.set_asset_status(asset.id, "Borrowed")
        db.session.rollback()
        assert db.session.get(Asset, asset.id).status == AssetStatus.AVAILABLE

    def test_unknown_asset(self, db_session):
        with pytest.raises(NotFoundError):
            status_registry.set_asset_status(999999, AssetStatus.AVAILABLE)

    def test_history_records_cause(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        status_registry.set_asset_status(asset.id, AssetStatus.IN_USE, (EntityKind.ASSET_REQUEST, 12))
        status_registry.set_asset_status(asset.id, AssetStatus.AVAILABLE, (EntityKind.ASSET_REQUEST, 12))
        db.session.commit()

        history = status_registry.get_asset_status_history(asset.id)
        assert [(e.payload["from"], e.payload["to"]) for e in history] == [
            ("Available", "In Use"),
            ("In Use", "Available"),
        ]
        assert history[0].payload["caused_by_type"] == EntityKind.ASSET_REQUEST
        assert history[0].payload["caused_by_id"] == 12


class TestReserveForLoan:

    def test_reserve_available_asset(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        status_registry.reserve_for_loan(asset.id, (EntityKind.ASSET_REQUEST, 1), AssetStatus.IN_USE)
        db.session.commit()

        stored = db.session.get(Asset, asset.id)
        assert stored.status == AssetStatus.IN_USE
        assert stored.lock_version == 2

    @pytest.mark.parametrize("status", [
        AssetStatus.IN_USE,
        AssetStatus.IN_REPAIR,
        AssetStatus.DISPOSED,
        AssetStatus.LOST,
    ])
    def test_non_available_asset_conflicts(self, db_session, finance, make_asset, status):
        asset = make_asset(finance, status=status)
        with pytest.raises(ConflictError):
            status_registry.reserve_for_loan(asset.id)

    def test_held_asset_conflicts(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        loan_service.request_loan(
            asset.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Training"
        )
        with pytest.raises(ConflictError):
            status_registry.reserve_for_loan(asset.id)

    def test_own_loan_is_not_counted_against_itself(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        loan = loan_service.request_loan(
            asset.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Training"
        )
        status_registry.reserve_for_loan(asset.id, (EntityKind.ASSET_LOAN, loan.id))
        db.session.commit()
        assert db.session.get(Asset, asset.id).lock_version == 3


    def test_stale_version_loses_compare_and_swap(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        assert asset.lock_version == 1

        # Another writer bumps the row behind this session's back
        db.session.execute(text("UPDATE assets SET lock_version = 5 WHERE id = :id"), {"id": asset.id})

        assert status_registry._compare_and_swap(asset, {Asset.status: AssetStatus.IN_USE}) is False
        db.session.rollback()


class TestIsAvailableForLoan:

    def test_available_without_hold(self, db_session, finance, make_asset):
        asset = make_asset(finance)
        assert status_registry.is_available_for_loan(asset.id) is True

    def test_pending_loan_is_a_hold(self, db_session, finance, make_asset, finance_user):
        asset = make_asset(finance)
        loan_service.request_loan(
            asset.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=1), "Audit fieldwork"
        )
        assert status_registry.is_available_for_loan(asset.id) is False

    def test_in_repair_not_available(self, db_session, finance, make_asset):
        asset = make_asset(finance, status=AssetStatus.IN_REPAIR)
        assert status_registry.is_available_for_loan(asset.id) is False

    def test_unknown_asset(self, db_session):
        with pytest.raises(NotFoundError):
            status_registry.is_available_for_loan(123456)


class TestReleaseAsset:

    def test_release_from_held_status(self, db_session, finance, make_asset):
        asset = make_asset(finance, status=AssetStatus.IN_USE)
        status_registry.release_asset(asset.id, AssetStatus.IN_USE, (EntityKind.ASSET_REQUEST, 3))
        db.session.commit()
        assert db.session.get(Asset, asset.id).status == AssetStatus.AVAILABLE

    @pytest.mark.parametrize("status", [AssetStatus.LOST, AssetStatus.IN_REPAIR])
    def test_status_changed_elsewhere_is_kept(self, db_session, finance, make_asset, status):
        asset = make_asset(finance, status=status)
        released = status_registry.release_asset(asset.id, AssetStatus.IN_USE, (EntityKind.ASSET_REQUEST, 3))
        db.session.commit()

        assert released.status == status
        assert status_registry.get_asset_status_history(asset.id) == []
        skipped = ledger_service.list_events_for_asset(asset.id, event_type="asset.release_skipped")
        assert skipped[0].payload["caused_by_id"] == 3


class TestMoveAssetToUnit:

    def test_moves_and_records_units(self, db_session, finance, hr, make_asset):
        asset = make_asset(finance)
        status_registry.move_asset_to_unit(asset.id, hr.id, (EntityKind.ASSET_MOVEMENT, 8), expected_unit_id=finance.id)
        db.session.commit()

        assert db.session.get(Asset, asset.id).unit_id == hr.id
        moved = ledger_service.list_events_for_asset(asset.id, event_type="asset.unit_changed")
        assert moved[0].payload["from_unit_id"] == finance.id
        assert moved[0].payload["to_unit_id"] == hr.id

    def test_unit_changed_since_read_conflicts(self, db_session, finance, hr, make_asset):
        asset = make_asset(finance)
        with pytest.raises(ConflictError):
            status_registry.move_asset_to_unit(asset.id, finance.id, expected_unit_id=hr.id)

    @pytest.mark.parametrize("status", [AssetStatus.LOST, AssetStatus.DISPOSED])
    def test_written_off_asset_stays_put(self, db_session, finance, hr, make_asset, status):
        asset = make_asset(finance, status=status)
        with pytest.raises(ConflictError):
            status_registry.move_asset_to_unit(asset.id, hr.id)

    def test_held_asset_stays_put(self, db_session, finance, hr, make_asset, finance_user):
        asset = make_asset(finance)
        loan_service.request_loan(
            asset.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Training"
        )
        with pytest.raises(ConflictError):
            status_registry.move_asset_to_unit(asset.id, hr.id)
