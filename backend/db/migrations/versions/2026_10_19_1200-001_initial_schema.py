"""Initial schema - families, groups, schedule configs, slots and assignments

Revision ID: 001
Revises: 
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=False), **kwargs)


def upgrade() -> None:
    op.create_table(
        'users',
        _uuid('id', nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'families',
        _uuid('id', nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'family_members',
        _uuid('id', nullable=False),
        _uuid('family_id', nullable=False),
        _uuid('user_id', nullable=False),
        sa.Column('role', sa.String(16), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('family_id', 'user_id', name='uq_family_member'),
    )

    op.create_table(
        'groups',
        _uuid('id', nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _uuid('family_id', nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('operating_hours', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'group_family_members',
        _uuid('id', nullable=False),
        _uuid('group_id', nullable=False),
        _uuid('family_id', nullable=False),
        sa.Column('role', sa.String(16), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'family_id', name='uq_group_family'),
    )

    op.create_table(
        'group_schedule_configs',
        _uuid('id', nullable=False),
        _uuid('group_id', nullable=False),
        sa.Column('schedule_hours', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id'),
    )

    op.create_table(
        'children',
        _uuid('id', nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('age', sa.Integer(), nullable=True),
        _uuid('family_id', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'vehicles',
        _uuid('id', nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        _uuid('family_id', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['family_id'], ['families.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'schedule_slots',
        _uuid('id', nullable=False),
        _uuid('group_id', nullable=False),
        sa.Column('datetime', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_schedule_slots_group_datetime', 'schedule_slots', ['group_id', 'datetime'])

    op.create_table(
        'schedule_slot_vehicles',
        _uuid('id', nullable=False),
        _uuid('schedule_slot_id', nullable=False),
        _uuid('vehicle_id', nullable=False),
        _uuid('driver_id', nullable=True),
        sa.Column('seat_override', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['schedule_slot_id'], ['schedule_slots.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['driver_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_slot_id', 'vehicle_id', name='uq_slot_vehicle'),
    )

    op.create_table(
        'schedule_slot_children',
        _uuid('id', nullable=False),
        _uuid('schedule_slot_id', nullable=False),
        _uuid('child_id', nullable=False),
        _uuid('vehicle_assignment_id', nullable=False),
        sa.Column('assigned_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['schedule_slot_id'], ['schedule_slots.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['child_id'], ['children.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['vehicle_assignment_id'], ['schedule_slot_vehicles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_slot_id', 'child_id', name='uq_slot_child'),
    )

    op.create_table(
        'activity_logs',
        _uuid('id', nullable=False),
        _uuid('user_id', nullable=False),
        sa.Column('action_type', sa.String(64), nullable=False),
        sa.Column('action_description', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.String(64), nullable=True),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('entity_name', sa.String(255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])


def downgrade() -> None:
    # Drop in reverse order
    op.drop_index('ix_activity_logs_created_at')
    op.drop_table('activity_logs')
    op.drop_table('schedule_slot_children')
    op.drop_table('schedule_slot_vehicles')
    op.drop_index('ix_schedule_slots_group_datetime')
    op.drop_table('schedule_slots')
    op.drop_table('vehicles')
    op.drop_table('children')
    op.drop_table('group_schedule_configs')
    op.drop_table('group_family_members')
    op.drop_table('groups')
    op.drop_table('family_members')
    op.drop_table('families')
    op.drop_table('users')
