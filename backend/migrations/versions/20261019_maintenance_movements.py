"""Maintenance jobs and asset movements

Revision ID: 20261019_maint_moves
Revises: 20261018_initial
Create Date: 2026-10-19

This migration creates:
1. Maintenances (repair/upkeep jobs that hold the asset In Repair)
2. Asset movements (unit-to-unit ownership transfers)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_maint_moves'
down_revision = '20261018_initial'
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. MAINTENANCES
    # ==========================================================================
    op.create_table('maintenances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('reported_by_user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('party_type', sa.String(length=16), nullable=False),
        sa.Column('vendor_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('photo_proof_path', sa.String(length=512), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('validated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('validation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validation_notes', sa.Text(), nullable=True),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['reported_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['validated_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('maintenances', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_maintenances_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_maintenances_reported_by_user_id'), ['reported_by_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_maintenances_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_maintenances_status'), ['status'], unique=False)
        batch_op.create_index('ix_maintenances_asset_status', ['asset_id', 'status'], unique=False)

    # ==========================================================================
    # 2. ASSET MOVEMENTS
    # ==========================================================================
    op.create_table('asset_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('from_unit_id', sa.Integer(), nullable=False),
        sa.Column('to_unit_id', sa.Integer(), nullable=False),
        sa.Column('requested_by_user_id', sa.Integer(), nullable=False),
        sa.Column('validated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['from_unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['to_unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['requested_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['validated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('asset_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_asset_movements_asset_id'), ['asset_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_movements_from_unit_id'), ['from_unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_movements_to_unit_id'), ['to_unit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_asset_movements_status'), ['status'], unique=False)
        batch_op.create_index('ix_asset_movements_asset_status', ['asset_id', 'status'], unique=False)


def downgrade():
    op.drop_table('asset_movements')
    op.drop_table('maintenances')
