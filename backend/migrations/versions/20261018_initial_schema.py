"""Initial AssetFlow schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Units and users (actors with roles)
2. Assets (status + lock_version compare-and-swap counter)
3. Asset loans and inter-unit asset requests
4. Guarantees, guarantee loans, guarantee settlements
5. Incident reports
6. Inventory audits and audit findings
7. Workflow events (append-only ledger)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. UNITS / USERS
    # ==========================================================================
    op.create_table('units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('units', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_units_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_units_is_active'), ['is_active'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_unit_id'), ['unit_id'], unique=False)

    # ==========================================================================
    # 2. ASSETS
    # ==========================================================================
    op.create_table('assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_tag', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('useful_life', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Available'),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('assets', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_assets_asset_tag'), ['asset_tag'], unique=True)
        batch_op.create_index(batch_op.f('ix_assets_category'), ['category'], unique=False)
        batch_op.create_index(batch_op.f('ix_assets_unit_id'), ['unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_assets_status'), ['status'], unique=False)
        batch_op.create_index('ix_assets_unit_status', ['unit_id', 'status'], unique=False)

    # ==========================================================================
    # 3. LOANS / INTER-UNIT REQUESTS
    # ==========================================================================
    op.create_table('asset_loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('borrower_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('request_date', sa.Date(), nullable=False),
        sa.Column('loan_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('expected_return_date', sa.Date(), nullable=False),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approval_date', sa.Date(), nullable=True),
        sa.Column('loan_proof_photo_path', sa.String(length=512), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('actual_return_date', sa.Date(), nullable=True),
        sa.Column('return_notes', sa.Text(), nullable=True),
        sa.Column('return_proof_photo_path', sa.String(length=512), nullable=True),
        sa.Column('return_condition', sa.String(length=16), nullable=True),
        sa.Column('return_verified_by_user_id', sa.Integer(), nullable=True),
        sa.Column('return_verification_date', sa.Date(), nullable=True),
        sa.Column('return_rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['borrower_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['return_verified_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('asset_loans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_asset_loans_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_loans_borrower_id'), ['borrower_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_loans_status'), ['status'], unique=False)
        batch_op.create_index('ix_asset_loans_asset_status', ['asset_id', 'status'], unique=False)

    op.create_table('asset_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requester_unit_id', sa.Integer(), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('asset_name', sa.String(length=255), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.Column('request_date', sa.Date(), nullable=False),
        sa.Column('needed_date', sa.Date(), nullable=False),
        sa.Column('expected_return_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('review_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('loan_photo_path', sa.String(length=512), nullable=True),
        sa.Column('loan_status', sa.String(length=32), nullable=True),
        sa.Column('actual_loan_date', sa.Date(), nullable=True),
        sa.Column('actual_return_date', sa.Date(), nullable=True),
        sa.Column('return_notes', sa.Text(), nullable=True),
        sa.Column('return_proof_photo_path', sa.String(length=512), nullable=True),
        sa.Column('return_confirmed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('return_confirmation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['requester_unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['return_confirmed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('asset_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_asset_requests_requester_unit_id'), ['requester_unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_requests_requester_id'), ['requester_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_requests_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_requests_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_requests_loan_status'), ['loan_status'], unique=False)
        batch_op.create_index('ix_asset_requests_asset_loan_status', ['asset_id', 'loan_status'], unique=False)

    # ==========================================================================
    # 4. GUARANTEES
    # ==========================================================================
    op.create_table('guarantees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('spk_number', sa.String(length=255), nullable=False),
        sa.Column('cif_number', sa.String(length=255), nullable=False),
        sa.Column('spk_name', sa.String(length=255), nullable=False),
        sa.Column('credit_period', sa.String(length=64), nullable=True),
        sa.Column('guarantee_name', sa.String(length=255), nullable=False),
        sa.Column('guarantee_type', sa.String(length=8), nullable=False),
        sa.Column('guarantee_number', sa.String(length=255), nullable=True),
        sa.Column('file_location', sa.String(length=255), nullable=True),
        sa.Column('input_date', sa.Date(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('guarantees', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_guarantees_unit_id'), ['unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_guarantees_status'), ['status'], unique=False)
        batch_op.create_index('ix_guarantees_spk_number', ['spk_number'], unique=False)
        batch_op.create_index('ix_guarantees_cif_number', ['cif_number'], unique=False)

    op.create_table('guarantee_loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guarantee_id', sa.Integer(), nullable=False),
        sa.Column('borrower_name', sa.String(length=255), nullable=False),
        sa.Column('borrower_contact', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('loan_date', sa.Date(), nullable=False),
        sa.Column('expected_return_date', sa.Date(), nullable=True),
        sa.Column('actual_return_date', sa.Date(), nullable=True),
        sa.Column('returned', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('returned_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['guarantee_id'], ['guarantees.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['returned_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('guarantee_loans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_guarantee_loans_guarantee_id'), ['guarantee_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_guarantee_loans_returned'), ['returned'], unique=False)
        batch_op.create_index('ix_guarantee_loans_guarantee_returned', ['guarantee_id', 'returned'], unique=False)

    op.create_table('guarantee_settlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guarantee_id', sa.Integer(), nullable=False),
        sa.Column('previous_settlement_id', sa.Integer(), nullable=True),
        sa.Column('settlement_date', sa.Date(), nullable=False),
        sa.Column('settlement_notes', sa.Text(), nullable=True),
        sa.Column('settlement_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('settled_by', sa.String(length=255), nullable=True),
        sa.Column('settlement_remarks', sa.Text(), nullable=True),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['guarantee_id'], ['guarantees.id'], ),
        sa.ForeignKeyConstraint(['previous_settlement_id'], ['guarantee_settlements.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('guarantee_settlements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_guarantee_settlements_guarantee_id'), ['guarantee_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_guarantee_settlements_previous_settlement_id'), ['previous_settlement_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_guarantee_settlements_settlement_status'), ['settlement_status'], unique=False)

    # ==========================================================================
    # 5. INCIDENT REPORTS
    # ==========================================================================
    op.create_table('incident_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('reporter_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('evidence_photo_path', sa.String(length=512), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('reviewed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('review_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('responsible_party', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('incident_reports', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_incident_reports_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_incident_reports_reporter_id'), ['reporter_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_incident_reports_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_incident_reports_status'), ['status'], unique=False)
        batch_op.create_index('ix_incident_reports_asset_status', ['asset_id', 'status'], unique=False)

    # ==========================================================================
    # 6. INVENTORY AUDITS
    # ==========================================================================
    op.create_table('inventory_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_code', sa.String(length=32), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('auditor_id', sa.Integer(), nullable=False),
        sa.Column('scan_mode', sa.String(length=16), nullable=False, server_default='camera'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_progress'),
        sa.Column('expected_asset_ids', sa.JSON(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['auditor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_audits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_audits_audit_code'), ['audit_code'], unique=True)
        batch_op.create_index(batch_op.f('ix_inventory_audits_unit_id'), ['unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_audits_auditor_id'), ['auditor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_audits_status'), ['status'], unique=False)

    op.create_table('audit_findings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('actual_unit_id', sa.Integer(), nullable=True),
        sa.Column('scanned_identifier', sa.String(length=128), nullable=False),
        sa.Column('scanned_by_user_id', sa.Integer(), nullable=False),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['audit_id'], ['inventory_audits.id'], ),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['actual_unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['scanned_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audit_id', 'asset_id', name='uq_audit_findings_audit_asset'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_findings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_findings_audit_id'), ['audit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_findings_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_findings_kind'), ['kind'], unique=False)

    # ==========================================================================
    # 7. WORKFLOW EVENTS (append-only)
    # ==========================================================================
    op.create_table('workflow_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('asset_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('workflow_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_workflow_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_workflow_events_actor_user_id'), ['actor_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_workflow_events_unit_id'), ['unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_workflow_events_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index('ix_workflow_events_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index('ix_workflow_events_occurred', ['occurred_at'], unique=False)


def downgrade():
    op.drop_table('workflow_events')
    op.drop_table('audit_findings')
    op.drop_table('inventory_audits')
    op.drop_table('incident_reports')
    op.drop_table('guarantee_settlements')
    op.drop_table('guarantee_loans')
    op.drop_table('guarantees')
    op.drop_table('asset_requests')
    op.drop_table('asset_loans')
    op.drop_table('assets')
    op.drop_table('users')
    op.drop_table('units')
