"""Action engine schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create tools table
    op.create_table(
        'tools',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('org_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('base_url', sa.String(2048), nullable=False),
        sa.Column('auth_type', sa.Enum('none', 'apiKey', 'oauth2', name='tool_auth_type'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_tools_org_name')
    )
    op.create_index('ix_tools_org_id', 'tools', ['org_id'])

    # Create actions table
    op.create_table(
        'actions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('org_id', sa.String(36), nullable=False),
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('tool_id', sa.String(36), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),
        sa.Column('endpoint', sa.String(2048), nullable=False),
        sa.Column('headers', sa.JSON(), nullable=False),
        sa.Column('input_schema', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tool_id'], ['tools.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('org_id', 'key', name='uq_actions_org_key')
    )
    op.create_index('ix_actions_org_id', 'actions', ['org_id'])
    op.create_index('idx_actions_tool', 'actions', ['tool_id'])

    # Create tool_auth_configs table
    op.create_table(
        'tool_auth_configs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('org_id', sa.String(36), nullable=False),
        sa.Column('tool_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tool_id'], ['tools.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('org_id', 'tool_id', name='uq_tool_auth_org_tool')
    )
    op.create_index('ix_tool_auth_configs_org_id', 'tool_auth_configs', ['org_id'])

    # Create user_credentials table
    op.create_table(
        'user_credentials',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('org_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('tool_id', sa.String(36), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tool_id'], ['tools.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('org_id', 'user_id', 'tool_id', name='uq_user_credentials_org_user_tool')
    )
    op.create_index('ix_user_credentials_org_id', 'user_credentials', ['org_id'])
    op.create_index('ix_user_credentials_user_id', 'user_credentials', ['user_id'])

    # Create action_execution_logs table
    op.create_table(
        'action_execution_logs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('execution_id', sa.String(36), nullable=False),
        sa.Column('org_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('action_id', sa.String(36), nullable=True),
        sa.Column('action_key', sa.String(255), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'running', 'completed', 'failed', 'cancelled', name='execution_status'),
            nullable=False
        ),
        sa.Column('inputs', sa.JSON(), nullable=False),
        sa.Column('outputs', sa.JSON(), nullable=True),
        sa.Column('error', sa.JSON(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parent_id', sa.String(36), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_action_execution_logs_execution_id', 'action_execution_logs', ['execution_id'], unique=True)
    op.create_index('ix_action_execution_logs_parent_id', 'action_execution_logs', ['parent_id'])
    op.create_index('idx_execution_logs_org_created', 'action_execution_logs', ['org_id', 'created_at'])
    op.create_index('idx_execution_logs_org_action', 'action_execution_logs', ['org_id', 'action_key'])
    op.create_index('idx_execution_logs_org_status', 'action_execution_logs', ['org_id', 'status'])


def downgrade() -> None:
    op.drop_table('action_execution_logs')
    op.drop_table('user_credentials')
    op.drop_table('tool_auth_configs')
    op.drop_table('actions')
    op.drop_table('tools')
    sa.Enum(name='execution_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='tool_auth_type').drop(op.get_bind(), checkfirst=True)
