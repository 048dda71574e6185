"""
Initial CRM schema

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '001'
down_revision = None
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


def upgrade() -> None:
    """Create all CRM tables."""

    # Access
    op.create_table(
        'roles',
        _id(),
        sa.Column('name', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('permission_type', sa.Enum('all', 'custom', name='permissiontype'), nullable=False, server_default='custom'),
        sa.Column('permissions', sa.JSON, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'users',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('status', sa.Boolean, nullable=False, server_default=sa.true()),
        _fk('role_id', 'roles', ondelete='RESTRICT', nullable=False, index=True),
        _fk('reports_to_id', 'users', index=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # Contacts
    op.create_table(
        'organizations',
        _id(),
        sa.Column('name', sa.String(200), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=True, index=True),
        sa.Column('website', sa.String(500), nullable=True),
        sa.Column('address', sa.JSON, nullable=False),
        _fk('user_id', 'users'),
        *_timestamps(),
    )

    op.create_table(
        'persons',
        _id(),
        sa.Column('name', sa.String(200), nullable=False, index=True),
        sa.Column('emails', sa.JSON, nullable=False),
        sa.Column('contact_numbers', sa.JSON, nullable=False),
        sa.Column('job_title', sa.String(200), nullable=True),
        _fk('organization_id', 'organizations', index=True),
        _fk('user_id', 'users'),
        *_timestamps(),
    )

    # Pipelines
    for table in ('lead_sources', 'lead_types'):
        op.create_table(
            table,
            _id(),
            sa.Column('name', sa.String(100), nullable=False, unique=True),
            *_timestamps(),
        )

    op.create_table(
        'lead_pipelines',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('rotten_days', sa.Integer, nullable=False, server_default='30'),
        *_timestamps(),
    )

    op.create_table(
        'lead_stages',
        _id(),
        _fk('pipeline_id', 'lead_pipelines', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('code', sa.String(50), nullable=True),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('probability', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'deal_pipelines',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        'deal_stages',
        _id(),
        _fk('pipeline_id', 'deal_pipelines', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('probability', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
    )

    # Sales
    op.create_table(
        'products',
        _id(),
        sa.Column('sku', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('price', sa.Numeric(15, 2), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'leads',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('company_name', sa.String(200), nullable=True),
        sa.Column('job_title', sa.String(200), nullable=True),
        sa.Column('website', sa.String(500), nullable=True),
        sa.Column('linkedin_url', sa.String(500), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('primary_email', sa.String(255), nullable=True, index=True),
        sa.Column('secondary_email', sa.String(255), nullable=True, index=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('lead_rating', sa.String(50), nullable=True),
        sa.Column('no_employees', sa.String(50), nullable=True),
        sa.Column('lead_value', sa.Numeric(15, 2), nullable=True),
        sa.Column('status', sa.Integer, nullable=True),
        _fk('person_id', 'persons', index=True),
        _fk('organization_id', 'organizations', index=True),
        _fk('lead_source_id', 'lead_sources'),
        _fk('lead_type_id', 'lead_types'),
        _fk('user_id', 'users', index=True),
        _fk('assigned_to_id', 'users', index=True),
        _fk('pipeline_id', 'lead_pipelines'),
        _fk('stage_id', 'lead_stages', index=True),
        *_timestamps(),
    )

    op.create_table(
        'deals',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('deal_value', sa.Numeric(15, 2), nullable=True),
        sa.Column('status', sa.Enum('open', 'won', 'lost', name='dealstatus'), nullable=False, server_default='open', index=True),
        _fk('person_id', 'persons', index=True),
        _fk('organization_id', 'organizations', index=True),
        _fk('lead_id', 'leads', index=True),
        _fk('user_id', 'users', index=True),
        _fk('pipeline_id', 'deal_pipelines'),
        _fk('stage_id', 'deal_stages', index=True),
        sa.Column('expected_close_date', sa.Date, nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'quotes',
        _id(),
        sa.Column('quote_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        _fk('person_id', 'persons', ondelete='CASCADE', nullable=False, index=True),
        _fk('deal_id', 'deals'),
        _fk('user_id', 'users'),
        sa.Column('sub_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('grand_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('expired_at', sa.Date, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'quote_items',
        _id(),
        _fk('quote_id', 'quotes', ondelete='CASCADE', nullable=False, index=True),
        _fk('product_id', 'products'),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(15, 2), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        *_timestamps(),
    )

    # Work
    op.create_table(
        'activities',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', sa.Enum('call', 'meeting', 'task', 'note', 'email', name='activitytype'), nullable=False, index=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_done', sa.Boolean, nullable=False, server_default=sa.false()),
        _fk('person_id', 'persons', index=True),
        _fk('lead_id', 'leads', ondelete='CASCADE', index=True),
        _fk('deal_id', 'deals', ondelete='CASCADE', index=True),
        _fk('user_id', 'users'),
        *_timestamps(),
    )

    op.create_table(
        'tasks',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('task_type', sa.Enum('call', 'meeting', 'email', 'follow-up', 'deadline', 'custom', name='tasktype'), nullable=False),
        sa.Column('priority', sa.Enum('low', 'medium', 'high', 'urgent', name='taskpriority'), nullable=False, server_default='medium'),
        sa.Column('priority_rank', sa.Integer, nullable=False, server_default='2'),
        sa.Column('status', sa.Enum('to_do', 'in_progress', 'completed', 'cancelled', name='taskstatus'), nullable=False, server_default='to_do', index=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('estimated_duration', sa.Integer, nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _fk('assigned_to_id', 'users', ondelete='CASCADE', nullable=False, index=True),
        _fk('assigned_by_id', 'users', index=True),
        _fk('person_id', 'persons'),
        _fk('organization_id', 'organizations'),
        _fk('lead_id', 'leads'),
        _fk('deal_id', 'deals'),
        sa.Column('tags', sa.JSON, nullable=False),
        sa.Column('checklist', sa.JSON, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'notifications',
        _id(),
        _fk('user_id', 'users', ondelete='CASCADE', nullable=False, index=True),
        _fk('task_id', 'tasks'),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false(), index=True),
        *_timestamps(),
    )

    # Mail
    op.create_table(
        'email_accounts',
        _id(),
        _fk('user_id', 'users', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('provider', sa.Enum('gmail', 'outlook', 'smtp_imap', name='emailprovider'), nullable=False),
        sa.Column('smtp_host', sa.String(255), nullable=True),
        sa.Column('smtp_port', sa.Integer, nullable=True),
        sa.Column('imap_host', sa.String(255), nullable=True),
        sa.Column('imap_port', sa.Integer, nullable=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('encrypted_password', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'email_messages',
        _id(),
        _fk('account_id', 'email_accounts', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('message_id', sa.String(500), nullable=True, index=True),
        sa.Column('in_reply_to', sa.String(500), nullable=True),
        sa.Column('references', sa.JSON, nullable=False),
        sa.Column('folder', sa.Enum('inbox', 'sent', 'draft', 'trash', name='emailfolder'), nullable=False, server_default='inbox', index=True),
        sa.Column('subject', sa.String(998), nullable=True),
        sa.Column('from_email', sa.String(255), nullable=True, index=True),
        sa.Column('from_name', sa.String(255), nullable=True),
        sa.Column('to', sa.JSON, nullable=False),
        sa.Column('cc', sa.JSON, nullable=False),
        sa.Column('bcc', sa.JSON, nullable=False),
        sa.Column('body_text', sa.Text, nullable=True),
        sa.Column('body_html', sa.Text, nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        _fk('person_id', 'persons', index=True),
        _fk('lead_id', 'leads', index=True),
        _fk('deal_id', 'deals', index=True),
        sa.Column('is_unknown', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        'email_tracking',
        _id(),
        _fk('message_id', 'email_messages', ondelete='CASCADE', nullable=False, index=True),
        sa.Column('event_type', sa.Enum('open', 'click', name='trackingeventtype'), nullable=False),
        sa.Column('ip_address', sa.String(100), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('link_url', sa.Text, nullable=True),
        sa.Column('tracked_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )

    # VoIP
    op.create_table(
        'voip_providers',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('provider_type', sa.Enum('twilio', 'telnyx', 'sip', name='voipprovidertype'), nullable=False),
        sa.Column('account_sid', sa.String(100), nullable=True),
        sa.Column('auth_token_encrypted', sa.Text, nullable=True),
        sa.Column('api_key_sid', sa.String(100), nullable=True),
        sa.Column('api_key_secret_encrypted', sa.Text, nullable=True),
        sa.Column('twiml_app_sid', sa.String(100), nullable=True),
        sa.Column('from_number', sa.String(50), nullable=True),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'call_logs',
        _id(),
        sa.Column('call_sid', sa.String(100), nullable=False, unique=True, index=True),
        _fk('provider_id', 'voip_providers'),
        sa.Column('direction', sa.Enum('inbound', 'outbound', name='calldirection'), nullable=False),
        sa.Column('from_number', sa.String(50), nullable=True),
        sa.Column('to_number', sa.String(50), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='initiated', index=True),
        _fk('user_id', 'users', index=True),
        _fk('person_id', 'persons'),
        _fk('lead_id', 'leads'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration', sa.Integer, nullable=True),
        sa.Column('recording_url', sa.Text, nullable=True),
        *_timestamps(),
    )


TABLES = [
    'call_logs', 'voip_providers',
    'email_tracking', 'email_messages', 'email_accounts',
    'notifications', 'tasks', 'activities',
    'quote_items', 'quotes', 'deals', 'leads', 'products',
    'deal_stages', 'deal_pipelines', 'lead_stages', 'lead_pipelines', 'lead_types', 'lead_sources',
    'persons', 'organizations', 'users', 'roles',
]

ENUMS = [
    'calldirection', 'voipprovidertype', 'trackingeventtype', 'emailfolder', 'emailprovider',
    'taskstatus', 'taskpriority', 'tasktype', 'activitytype', 'dealstatus', 'permissiontype',
]


def downgrade() -> None:
    """Drop all CRM tables."""
    for table in TABLES:
        op.drop_table(table)
    for enum_name in ENUMS:
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
