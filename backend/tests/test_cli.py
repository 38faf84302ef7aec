from datetime import timedelta

from assetflow.models import AssetRequest, RequestLoanStatus, Role, Unit, User
from assetflow.services import audit_service, loan_service, movement_service, request_service
from assetflow.time_utils import today


def _invoke(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


def test_system_init_is_idempotent(app, db_session):
    result = _invoke(app, "system", "init", "--unit", "Head Office", "--unit-code", "HO")
    assert result.exit_code == 0, result.output
    assert "PASS Created default unit: Head Office" in result.output

    users = {u.username: u for u in db_session.query(User).all()}
    assert set(users) == {"superadmin", "holding", "auditor", "unitadmin", "staff"}
    assert users["auditor"].role == Role.AUDITOR
    assert users["auditor"].unit_id is None
    assert users["staff"].unit_id is not None

    again = _invoke(app, "system", "init")
    assert again.exit_code == 0
    assert "Using existing unit" in again.output
    assert "already exists, skipping" in again.output
    assert db_session.query(User).count() == 5


def test_units_create_and_list(app, db_session):
    result = _invoke(app, "units", "create", "--name", "Treasury", "--code", "TRS")
    assert result.exit_code == 0, result.output
    assert db_session.query(Unit).filter_by(code="TRS").count() == 1

    duplicate = _invoke(app, "units", "create", "--name", "Treasury")
    assert duplicate.exit_code != 0
    assert "already exists" in duplicate.output

    listing = _invoke(app, "units", "list")
    assert "Treasury" in listing.output


def test_users_create_requires_unit_for_unit_roles(app, db_session, finance):
    missing = _invoke(app, "users", "create", "--username", "budi", "--role", "User")
    assert missing.exit_code != 0
    assert "--unit-id is required" in missing.output

    created = _invoke(
        app, "users", "create", "--username", "budi", "--role", "User",
        "--unit-id", str(finance.id), "--full-name", "Budi S",
    )
    assert created.exit_code == 0, created.output
    assert db_session.query(User).filter_by(username="budi").one().unit_id == finance.id

    listing = _invoke(app, "users", "list", "--unit-id", str(finance.id))
    assert "budi" in listing.output


def test_loans_overdue(app, db_session, finance, make_asset, finance_user, finance_admin):
    assert "No overdue loans." in _invoke(app, "loans", "overdue").output

    laptop = make_asset(finance)
    loan = loan_service.request_loan(
        laptop.id, finance_user.id, today(), "09:00", "17:00", today() + timedelta(days=1), "Site visit"
    )
    loan_service.approve_loan(loan.id, finance_admin.id, today(), "uploads/loans/handover.jpg")

    as_of = (today() + timedelta(days=3)).isoformat()
    result = _invoke(app, "loans", "overdue", "--as-of", as_of)
    assert result.exit_code == 0, result.output
    assert "TOTAL 1 overdue loan(s)" in result.output

    bad = _invoke(app, "loans", "overdue", "--as-of", "not-a-date")
    assert bad.exit_code != 0


def test_requests_mark_overdue(app, db_session, finance, hr, make_asset, finance_user, holding_admin):
    projector = make_asset(hr, name="Projector")
    asset_request = request_service.create_request(
        finance_user.id, finance.id, "Projector", today(), "08:00", "16:00",
        today() + timedelta(days=1), "Town hall", "Ours is broken",
    )
    request_service.approve_request(asset_request.id, holding_admin.id, asset_id=projector.id)

    as_of = (today() + timedelta(days=4)).isoformat()
    result = _invoke(app, "requests", "mark-overdue", "--as-of", as_of)
    assert result.exit_code == 0, result.output
    assert "PASS Marked 1 request(s) overdue" in result.output

    db_session.expire_all()
    assert db_session.get(AssetRequest, asset_request.id).loan_status == RequestLoanStatus.OVERDUE


def test_audit_summary(app, db_session, finance, make_asset, auditor):
    asset = make_asset(finance)
    make_asset(finance)
    audit = audit_service.open_audit(finance.id, auditor.id)
    audit_service.scan_asset(audit.id, auditor.id, asset.asset_tag)

    result = _invoke(app, "audits", "summary", str(audit.id))
    assert result.exit_code == 0, result.output
    assert audit.audit_code in result.output
    assert "completion: 50.0%" in result.output

    missing = _invoke(app, "audits", "summary", "9999")
    assert missing.exit_code == 1
    assert "not found" in missing.output


def test_movements_pending(app, db_session, finance, hr, make_asset, finance_admin):
    assert "No pending movements." in _invoke(app, "movements", "pending").output

    asset = make_asset(finance)
    movement = movement_service.request_movement(asset.id, finance_admin.id, hr.id)

    result = _invoke(app, "movements", "pending", "--to-unit-id", str(hr.id))
    assert result.exit_code == 0, result.output
    assert "TOTAL 1 pending movement(s)" in result.output
    assert str(movement.id) in result.output
    assert "No pending movements." in _invoke(app, "movements", "pending", "--to-unit-id", str(finance.id)).output
