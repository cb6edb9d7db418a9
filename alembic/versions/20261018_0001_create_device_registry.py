"""Create users, devices and captures tables

Revision ID: 4c1d7e2a9b30
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1d7e2a9b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('identity_subject', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_identity_subject', 'users', ['identity_subject'], unique=True)

    op.create_table(
        'devices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('stable_hardware_id', sa.String(64), nullable=True),
        sa.Column('credential', sa.String(128), nullable=False),
        sa.Column('owner_user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('push_token', sa.String(256), nullable=True),
        sa.Column('registered_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_seen_at', sa.DateTime(), nullable=True),
        sa.Column('last_bridge_call_at', sa.DateTime(), nullable=True),
    )
    # Unique indexes: NULL hardware ids never collide
    op.create_index('ix_devices_stable_hardware_id', 'devices', ['stable_hardware_id'], unique=True)
    op.create_index('ix_devices_credential', 'devices', ['credential'], unique=True)
    op.create_index('ix_devices_owner_user_id', 'devices', ['owner_user_id'])

    op.create_table(
        'captures',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('device_id', sa.String(36), sa.ForeignKey('devices.id'), nullable=False),
        sa.Column('sensor_type', sa.String(20), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('captured_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_captures_device_id', 'captures', ['device_id'])
    op.create_index('ix_captures_device_captured_at', 'captures', ['device_id', 'captured_at'])


def downgrade() -> None:
    op.drop_index('ix_captures_device_captured_at', table_name='captures')
    op.drop_index('ix_captures_device_id', table_name='captures')
    op.drop_table('captures')
    op.drop_index('ix_devices_owner_user_id', table_name='devices')
    op.drop_index('ix_devices_credential', table_name='devices')
    op.drop_index('ix_devices_stable_hardware_id', table_name='devices')
    op.drop_table('devices')
    op.drop_index('ix_users_identity_subject', table_name='users')
    op.drop_table('users')
