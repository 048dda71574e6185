"""
Task comments and time logs, email templates and folders, SIP trunks and
inbound routes

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.String(15), primary_key=True)


def _timestamps():
    return [
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _fk(name, target, ondelete='SET NULL', nullable=True, index=False):
    return sa.Column(name, sa.String(15), sa.ForeignKey(f'{target}.id', ondelete=ondelete), nullable=nullable, index=index)


NEW_FOLDERS = ('outbox', 'archive')


def upgrade() -> None:
    # Tasks
    op.add_column('tasks', sa.Column('actual_duration', sa.Integer, nullable=False, server_default='0'))

    op.create_table(
        'task_comments',
        _id(),
        _fk('task_id', 'tasks', ondelete='CASCADE', nullable=False, index=True),
        _fk('user_id', 'users'),
        sa.Column('comment', sa.Text, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'task_time_logs',
        _id(),
        _fk('task_id', 'tasks', ondelete='CASCADE', nullable=False, index=True),
        _fk('user_id', 'users'),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        *_timestamps(),
    )

    # Mail
    if op.get_bind().dialect.name == 'postgresql':
        with op.get_context().autocommit_block():
            for folder in NEW_FOLDERS:
                op.execute(f"ALTER TYPE emailfolder ADD VALUE IF NOT EXISTS '{folder}'")

    op.add_column('email_accounts', sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.false()))
    op.add_column('email_messages', sa.Column('is_starred', sa.Boolean, nullable=False, server_default=sa.false()))

    op.create_table(
        'email_templates',
        _id(),
        _fk('user_id', 'users', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('subject', sa.String(998), nullable=False),
        sa.Column('body', sa.Text, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('variables', sa.JSON, nullable=False),
        sa.Column('is_shared', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    # VoIP
    op.alter_column('voip_providers', 'provider_type', server_default='twilio')

    op.create_table(
        'voip_trunks',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        _fk('provider_id', 'voip_providers', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('sip_domain', sa.String(255), nullable=False),
        sa.Column('sip_port', sa.Integer, nullable=False, server_default='5060'),
        sa.Column('transport_protocol', sa.Enum('UDP', 'TCP', 'TLS', name='siptransport'), nullable=False, server_default='UDP'),
        sa.Column('auth_method', sa.Enum('username', 'ip', name='sipauthmethod'), nullable=False, server_default='username'),
        sa.Column('sip_username', sa.String(255), nullable=True),
        sa.Column('sip_password_encrypted', sa.Text, nullable=True),
        sa.Column('registration_required', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('options_context', sa.String(255), nullable=True),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'inbound_routes',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('did_pattern', sa.String(100), nullable=False),
        sa.Column('destination_type', sa.Enum('user', 'queue', 'ivr', 'voicemail', name='routedestination'), nullable=False),
        sa.Column('destination_id', sa.String(100), nullable=False),
        _fk('trunk_id', 'voip_trunks', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('priority', sa.Integer, nullable=False, server_default='1', index=True),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )


def downgrade() -> None:
    # Postgres cannot drop enum values; outbox/archive stay on emailfolder
    for table in ('inbound_routes', 'voip_trunks', 'email_templates', 'task_time_logs', 'task_comments'):
        op.drop_table(table)
    for enum_name in ('routedestination', 'sipauthmethod', 'siptransport'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)

    op.alter_column('voip_providers', 'provider_type', server_default=None)
    op.drop_column('email_messages', 'is_starred')
    op.drop_column('email_accounts', 'is_default')
    op.drop_column('tasks', 'actual_duration')
