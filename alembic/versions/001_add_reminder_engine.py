"""add contacts, channels and reminder engine tables

Revision ID: 001_add_reminder_engine
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_add_reminder_engine'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'vaults',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'user_vaults',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vault_id', sa.String(36), sa.ForeignKey('vaults.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission', sa.Integer(), nullable=False, server_default='100'),
        sa.UniqueConstraint('vault_id', 'user_id', name='uq_user_vaults_vault_user'),
    )
    op.create_index('ix_user_vaults_vault_id', 'user_vaults', ['vault_id'])
    op.create_index('ix_user_vaults_user_id', 'user_vaults', ['user_id'])

    op.create_table(
        'user_notification_channels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('label', sa.String(), nullable=True),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('fails', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_user_notification_channels_user_id', 'user_notification_channels', ['user_id'])

    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vault_id', sa.String(36), sa.ForeignKey('vaults.id', ondelete='CASCADE'), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_contacts_vault_id', 'contacts', ['vault_id'])

    op.create_table(
        'contact_important_date_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vault_id', sa.String(36), sa.ForeignKey('vaults.id', ondelete='CASCADE'), nullable=False),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('internal_type', sa.String(), nullable=True),
    )

    op.create_table(
        'contact_important_dates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'contact_important_date_type_id',
            sa.Integer(),
            sa.ForeignKey('contact_important_date_types.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('day', sa.Integer(), nullable=True),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('calendar_type', sa.String(), nullable=False, server_default='gregorian'),
        sa.Column('original_day', sa.Integer(), nullable=True),
        sa.Column('original_month', sa.Integer(), nullable=True),
        sa.Column('original_year', sa.Integer(), nullable=True),
        sa.Column('remind_me', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_contact_important_dates_contact_id', 'contact_important_dates', ['contact_id'])

    op.create_table(
        'contact_reminders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'important_date_id',
            sa.Integer(),
            sa.ForeignKey('contact_important_dates.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('day', sa.Integer(), nullable=True),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('calendar_type', sa.String(), nullable=False, server_default='gregorian'),
        sa.Column('original_day', sa.Integer(), nullable=True),
        sa.Column('original_month', sa.Integer(), nullable=True),
        sa.Column('original_year', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('frequency_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('number_times_triggered', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('frequency_number >= 1', name='ck_contact_reminders_frequency_positive'),
    )
    op.create_index('ix_contact_reminders_contact_id', 'contact_reminders', ['contact_id'])
    op.create_index('ix_contact_reminders_important_date_id', 'contact_reminders', ['important_date_id'])

    op.create_table(
        'contact_reminder_scheduled',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'reminder_id', sa.String(36), sa.ForeignKey('contact_reminders.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column(
            'channel_id',
            sa.Integer(),
            sa.ForeignKey('user_notification_channels.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_contact_reminder_scheduled_due', 'contact_reminder_scheduled', ['scheduled_at', 'triggered_at'])
    op.create_index('ix_contact_reminder_scheduled_channel_id', 'contact_reminder_scheduled', ['channel_id'])
    op.create_index(
        'uq_contact_reminder_scheduled_pending',
        'contact_reminder_scheduled',
        ['reminder_id', 'channel_id'],
        unique=True,
        postgresql_where=sa.text('triggered_at IS NULL'),
        sqlite_where=sa.text('triggered_at IS NULL'),
    )

    # No FK on channel_id: history outlives deleted channels
    op.create_table(
        'user_notification_sent',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
    )
    op.create_index('ix_user_notification_sent_channel_id', 'user_notification_sent', ['channel_id'])


def downgrade() -> None:
    op.drop_index('ix_user_notification_sent_channel_id', table_name='user_notification_sent')
    op.drop_table('user_notification_sent')
    op.drop_index('uq_contact_reminder_scheduled_pending', table_name='contact_reminder_scheduled')
    op.drop_index('ix_contact_reminder_scheduled_channel_id', table_name='contact_reminder_scheduled')
    op.drop_index('ix_contact_reminder_scheduled_due', table_name='contact_reminder_scheduled')
    op.drop_table('contact_reminder_scheduled')
    op.drop_index('ix_contact_reminders_important_date_id', table_name='contact_reminders')
    op.drop_index('ix_contact_reminders_contact_id', table_name='contact_reminders')
    op.drop_table('contact_reminders')
    op.drop_index('ix_contact_important_dates_contact_id', table_name='contact_important_dates')
    op.drop_table('contact_important_dates')
    op.drop_table('contact_important_date_types')
    op.drop_index('ix_contacts_vault_id', table_name='contacts')
    op.drop_table('contacts')
    op.drop_index('ix_user_notification_channels_user_id', table_name='user_notification_channels')
    op.drop_table('user_notification_channels')
    op.drop_index('ix_user_vaults_user_id', table_name='user_vaults')
    op.drop_index('ix_user_vaults_vault_id', table_name='user_vaults')
    op.drop_table('user_vaults')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
