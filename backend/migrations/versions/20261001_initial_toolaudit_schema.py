"""Initial schema: storage locations, inventory, audit cycles, audit snapshots

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration adds:
1. StorageLocation and QrLocation (scannable rows per storage)
2. Tool, Toolkit and KitContent (inventory keyed by storage triple)
3. AuditCycle (audit scheduling per storage)
4. AuditSnapshotSequence (atomic per-storage snapshot counter)
5. AuditSnapshot (append-only frozen audit runs)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def _placement():
    return [
        sa.Column('department', sa.String(length=120), nullable=False),
        sa.Column('storage_name', sa.String(length=120), nullable=False),
        sa.Column('storage_code', sa.String(length=64), nullable=False),
        sa.Column('storage_type', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('qr_location', sa.String(length=128), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. STORAGE LOCATIONS
    # ==========================================================================
    op.create_table('storage_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=False),
        sa.Column('storage_name', sa.String(length=120), nullable=False),
        sa.Column('storage_code', sa.String(length=64), nullable=False),
        sa.Column('storage_type', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department', 'storage_name', 'storage_code', name='uq_storage_locations_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('storage_locations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_storage_locations_department'), ['department'], unique=False)

    op.create_table('qr_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('storage_location_id', sa.Integer(), nullable=False),
        sa.Column('row_name', sa.String(length=120), nullable=False),
        sa.Column('qr_code', sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(['storage_location_id'], ['storage_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storage_location_id', 'row_name', name='uq_qr_locations_storage_row'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('qr_locations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_qr_locations_storage_location_id'), ['storage_location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_qr_locations_qr_code'), ['qr_code'], unique=True)

    # ==========================================================================
    # 2. INVENTORY
    # ==========================================================================
    op.create_table('tools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('eq_number', sa.String(length=64), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='available'),
        sa.Column('calibration_due_date', sa.Date(), nullable=True),
        sa.Column('audit_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('last_audited_at', sa.DateTime(timezone=True), nullable=True),
        *_placement(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('eq_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('tools', schema=None) as batch_op:
        batch_op.create_index('ix_tools_storage_key', ['department', 'storage_name', 'storage_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_tools_department'), ['department'], unique=False)
        batch_op.create_index(batch_op.f('ix_tools_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_tools_audit_status'), ['audit_status'], unique=False)

    op.create_table('toolkits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kit_number', sa.String(length=64), nullable=True),
        sa.Column('qr_code', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='available'),
        sa.Column('calibration_due_date', sa.Date(), nullable=True),
        sa.Column('audit_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('last_audited_at', sa.DateTime(timezone=True), nullable=True),
        *_placement(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kit_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('toolkits', schema=None) as batch_op:
        batch_op.create_index('ix_toolkits_storage_key', ['department', 'storage_name', 'storage_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_toolkits_department'), ['department'], unique=False)
        batch_op.create_index(batch_op.f('ix_toolkits_qr_code'), ['qr_code'], unique=True)
        batch_op.create_index(batch_op.f('ix_toolkits_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_toolkits_audit_status'), ['audit_status'], unique=False)

    op.create_table('kit_contents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('toolkit_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('eq_number', sa.String(length=64), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='available'),
        sa.Column('calibration_due_date', sa.Date(), nullable=True),
        sa.Column('audit_status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('last_audited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['toolkit_id'], ['toolkits.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('kit_contents', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_kit_contents_toolkit_id'), ['toolkit_id'], unique=False)

    # ==========================================================================
    # 3. AUDIT CYCLES
    # ==========================================================================
    op.create_table('audit_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=False),
        sa.Column('storage_name', sa.String(length=120), nullable=False),
        sa.Column('storage_code', sa.String(length=64), nullable=False),
        sa.Column('storage_type', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('frequency', sa.String(length=16), nullable=False, server_default='monthly'),
        sa.Column('max_cycles', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('cycle_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_audit_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_audit_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='not_started'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_cycles', schema=None) as batch_op:
        batch_op.create_index('ix_audit_cycles_storage_key', ['department', 'storage_name', 'storage_code'], unique=False)

    # ==========================================================================
    # 4. SNAPSHOT SEQUENCE COUNTER
    # ==========================================================================
    op.create_table('audit_snapshot_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=False),
        sa.Column('storage_name', sa.String(length=120), nullable=False),
        sa.Column('storage_code', sa.String(length=64), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department', 'storage_name', 'storage_code', name='uq_audit_snapshot_sequences_storage'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. AUDIT SNAPSHOTS
    # ==========================================================================
    op.create_table('audit_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=False),
        sa.Column('storage_name', sa.String(length=120), nullable=False),
        sa.Column('storage_code', sa.String(length=64), nullable=False),
        sa.Column('cycle_id', sa.Integer(), nullable=True),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('snapshot_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('supervisor_name', sa.String(length=120), nullable=True),
        sa.Column('supervisor_employee_id', sa.String(length=64), nullable=True),
        sa.Column('tool_data', sa.JSON(), nullable=False),
        sa.Column('toolkit_data', sa.JSON(), nullable=False),
        sa.Column('total_tools', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('present_tools', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('needs_update_tools', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('missing_tools', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('toolkits_audited', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('toolkits_pending', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['cycle_id'], ['audit_cycles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('department', 'storage_name', 'storage_code', 'sequence_number', name='uq_audit_snapshots_storage_sequence'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_snapshots', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_snapshots_cycle_id'), ['cycle_id'], unique=False)
        batch_op.create_index(
            'ix_audit_snapshots_storage_date',
            ['department', 'storage_name', 'storage_code', 'snapshot_date'],
            unique=False,
        )


def downgrade():
    with op.batch_alter_table('audit_snapshots', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_snapshots_storage_date')
        batch_op.drop_index(batch_op.f('ix_audit_snapshots_cycle_id'))
    op.drop_table('audit_snapshots')

    op.drop_table('audit_snapshot_sequences')

    with op.batch_alter_table('audit_cycles', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_cycles_storage_key')
    op.drop_table('audit_cycles')

    with op.batch_alter_table('kit_contents', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_kit_contents_toolkit_id'))
    op.drop_table('kit_contents')

    with op.batch_alter_table('toolkits', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_toolkits_audit_status'))
        batch_op.drop_index(batch_op.f('ix_toolkits_status'))
        batch_op.drop_index(batch_op.f('ix_toolkits_qr_code'))
        batch_op.drop_index(batch_op.f('ix_toolkits_department'))
        batch_op.drop_index('ix_toolkits_storage_key')
    op.drop_table('toolkits')

    with op.batch_alter_table('tools', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_tools_audit_status'))
        batch_op.drop_index(batch_op.f('ix_tools_status'))
        batch_op.drop_index(batch_op.f('ix_tools_department'))
        batch_op.drop_index('ix_tools_storage_key')
    op.drop_table('tools')

    with op.batch_alter_table('qr_locations', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_qr_locations_qr_code'))
        batch_op.drop_index(batch_op.f('ix_qr_locations_storage_location_id'))
    op.drop_table('qr_locations')

    with op.batch_alter_table('storage_locations', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_storage_locations_department'))
    op.drop_table('storage_locations')
