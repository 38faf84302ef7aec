from datetime import timedelta

import pytest

from assetflow.errors import NotFoundError
from assetflow.models import AssetStatus
from assetflow.services import (
    guarantee_service,
    incident_service,
    loan_service,
    maintenance_service,
    movement_service,
    reporting_service,
    request_service,
)
from assetflow.time_utils import today


def test_asset_counts_cover_every_status(db_session, finance, hr, make_asset):
    make_asset(finance)
    make_asset(finance)
    make_asset(finance, status=AssetStatus.IN_REPAIR)
    make_asset(hr, status=AssetStatus.LOST)

    counts = reporting_service.asset_status_counts(finance.id)
    assert counts == {"Available": 2, "In Use": 0, "In Repair": 1, "Disposed": 0, "Lost": 0}
    assert reporting_service.asset_status_counts()["Lost"] == 1


def test_loan_statistics(db_session, finance, hr, make_asset, finance_user, hr_user, finance_admin):
    laptop = make_asset(finance)
    camera = make_asset(finance, name="Camera")
    projector = make_asset(hr, name="Projector")

    approved = loan_service.request_loan(
        laptop.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Site visit"
    )
    loan_service.approve_loan(approved.id, finance_admin.id, today(), "uploads/loans/handover.jpg")
    loan_service.request_loan(
        camera.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Photo shoot"
    )
    loan_service.request_loan(
        projector.id, hr_user.id, today(), "09:00", "17:00", today() + timedelta(days=2), "Training"
    )

    stats = reporting_service.loan_statistics(finance.id)
    assert stats["total"] == 2
    assert stats["by_status"]["PENDING"] == 1
    assert stats["by_status"]["APPROVED"] == 1
    assert stats["by_status"]["RETURNED"] == 0
    assert stats["overdue"] == 0

    later = reporting_service.loan_statistics(finance.id, as_of=today() + timedelta(days=5))
    assert later["overdue"] == 1
    assert reporting_service.loan_statistics()["total"] == 3


def test_request_statistics(db_session, finance, hr, make_asset, finance_user, holding_admin):
    projector = make_asset(hr, name="Projector")
    needed = today()
    approved = request_service.create_request(
        finance_user.id, finance.id, "Projector", needed, "08:00", "16:00",
        needed + timedelta(days=2), "Town hall", "Ours is broken",
    )
    request_service.create_request(
        finance_user.id, finance.id, "Camera", needed, "08:00", "16:00",
        needed + timedelta(days=2), "Product photos", "We have none",
    )
    request_service.approve_request(approved.id, holding_admin.id, asset_id=projector.id)

    stats = reporting_service.request_statistics(finance.id)
    assert stats["total"] == 2
    assert stats["by_status"] == {"PENDING": 1, "APPROVED": 1, "REJECTED": 0}
    assert stats["by_loan_status"]["ACTIVE"] == 1
    assert stats["by_loan_status"]["OVERDUE"] == 0
    assert reporting_service.request_statistics(hr.id)["total"] == 0


def test_guarantee_and_incident_statistics(db_session, finance, make_asset, finance_admin, finance_user, holding_admin):
    first = guarantee_service.register_guarantee(
        finance_admin.id, "SPK-1", "CIF-1", "Budi", "Car ownership book", "BPKB", today(), unit_id=finance.id
    )
    guarantee_service.register_guarantee(
        finance_admin.id, "SPK-2", "CIF-2", "Sari", "Land certificate", "SHM", today(), unit_id=finance.id
    )
    settlement = guarantee_service.request_settlement(first.id, finance_admin.id, today())
    guarantee_service.approve_settlement(settlement.id, holding_admin.id, "Dewi Lestari")

    guarantees = reporting_service.guarantee_statistics(finance.id)
    assert guarantees["total"] == 2
    assert guarantees["by_status"] == {"available": 1, "dipinjam": 0, "lunas": 1}
    assert guarantees["settlements"]["approved"] == 1

    asset = make_asset(finance)
    incident_service.report_incident(
        asset.id, finance_user.id, "Damage", today(), "Screen cracked after a fall", "uploads/e.jpg"
    )
    incidents = reporting_service.incident_statistics(finance.id)
    assert incidents["total"] == 1
    assert incidents["by_type"] == {"Damage": 1, "Loss": 0}
    assert incidents["by_status"]["PENDING"] == 1


def test_maintenance_and_movement_statistics(db_session, finance, hr, make_asset, finance_admin, hr_admin):
    laptop = make_asset(finance)
    printer = make_asset(finance, name="Printer")
    job = maintenance_service.report_maintenance(
        laptop.id, finance_admin.id, "Perbaikan", today(), "External", "Bengkel Sinar Jaya", "0812-5555-0101"
    )
    maintenance_service.approve_maintenance(job.id, finance_admin.id)

    maintenance = reporting_service.maintenance_statistics(finance.id)
    assert maintenance["total"] == 1
    assert maintenance["by_status"]["IN_PROGRESS"] == 1
    assert maintenance["by_type"] == {"Perbaikan": 1, "Pemeliharaan": 0}
    assert reporting_service.maintenance_statistics(hr.id)["total"] == 0

    movement = movement_service.request_movement(printer.id, finance_admin.id, hr.id)
    movement_service.approve_movement(movement.id, hr_admin.id)

    assert reporting_service.movement_statistics(finance.id)["outgoing"]["APPROVED"] == 1
    assert reporting_service.movement_statistics(hr.id)["incoming"]["APPROVED"] == 1
    assert reporting_service.movement_statistics()["by_status"] == {
        "PENDING": 0, "APPROVED": 1, "REJECTED": 0, "CANCELLED": 0,
    }


def test_dashboard_snapshot(db_session, finance, make_asset):
    make_asset(finance)
    snapshot = reporting_service.dashboard_snapshot(finance.id)
    assert set(snapshot) == {"assets", "loans", "requests", "guarantees", "incidents", "maintenance", "movements"}
    assert snapshot["assets"]["Available"] == 1
    assert snapshot["loans"]["total"] == 0


def test_unknown_unit(db_session):
    with pytest.raises(NotFoundError):
        reporting_service.dashboard_snapshot(31337)
