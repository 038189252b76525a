"""Initial schema: projects, proposals, acceptance ledger, audit logs

Revision ID: 001
Revises:
Create Date: 2025-01-01

WHY: The proposal lifecycle engine needs four tables. The partial unique
index on proposals is the database-level guard for "at most one accepted
proposal per project"; the projects.version column backs optimistic
locking of project writes.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PROJECT_STATUS = ('draft', 'open', 'awarded', 'in_progress', 'completed', 'cancelled')
PROJECT_TYPE = (
    'new_build', 'renovation', 'repair', 'addition',
    'demolition', 'landscaping', 'specialty', 'other',
)
PROPOSAL_STATUS = ('draft', 'submitted', 'viewed', 'accepted', 'rejected', 'withdrawn', 'expired')
REJECTION_REASON = (
    'incomplete_proposal', 'too_expensive', 'timeline_too_long', 'out_of_scope_items', 'other',
)
VISIBILITY_SETTING = (
    'private', 'shared_with_target_user', 'shared_with_participant',
    'public_to_invitees', 'public_to_marketplace', 'admin_only',
)
ACCEPTANCE_STATUS = ('in_progress', 'completed', 'failed')
AUDIT_ACTION = (
    'CREATE', 'UPDATE', 'DELETE', 'STATUS_CHANGE', 'ATTACHMENT_ADDED',
    'ACCEPTANCE_STARTED', 'ACCEPTANCE_COMPLETED', 'ACCEPTANCE_FAILED',
)


def upgrade() -> None:
    """
    Create all tables.
    """
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('statement_of_work', sa.Text(), nullable=True),
        sa.Column('budget', sa.Numeric(12, 2), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('project_type', sa.Enum(*PROJECT_TYPE, name='projecttype'), nullable=False, server_default='other'),
        sa.Column('status', sa.Enum(*PROJECT_STATUS, name='projectstatus'), nullable=False, server_default='draft'),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('decision_date', sa.Date(), nullable=False),
        sa.Column('creator_id', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_projects_id', 'projects', ['id'])
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_creator_id', 'projects', ['creator_id'])

    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('contractor_id', sa.Integer(), nullable=False),
        sa.Column('homeowner_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description_of_work', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('clause_preview_html', sa.Text(), nullable=True),
        sa.Column('subtotal_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_included', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tax_jurisdiction', sa.String(length=16), nullable=False),
        sa.Column('tax_rate', sa.Numeric(6, 5), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('deposit_due_on', sa.Date(), nullable=False),
        sa.Column('proposed_start_date', sa.Date(), nullable=False),
        sa.Column('proposed_end_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum(*PROPOSAL_STATUS, name='proposalstatus'), nullable=False, server_default='draft'),
        sa.Column('is_selected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('submitted_date', sa.DateTime(), nullable=True),
        sa.Column('viewed_date', sa.DateTime(), nullable=True),
        sa.Column('accepted_date', sa.DateTime(), nullable=True),
        sa.Column('rejected_date', sa.DateTime(), nullable=True),
        sa.Column('withdrawn_date', sa.DateTime(), nullable=True),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.Column('last_modified_by', sa.Integer(), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.Column('rejection_reason', sa.Enum(*REJECTION_REASON, name='rejectionreason'), nullable=True),
        sa.Column('rejection_reason_notes', sa.Text(), nullable=True),
        sa.Column('attached_files', sa.JSON(), nullable=False),
        sa.Column(
            'visibility_settings',
            sa.Enum(*VISIBILITY_SETTING, name='visibilitysetting'),
            nullable=False,
            server_default='shared_with_target_user',
        ),
        sa.Column('acceptance_operation_id', sa.String(length=36), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proposals_id', 'proposals', ['id'])
    op.create_index('ix_proposals_project_id', 'proposals', ['project_id'])
    op.create_index('ix_proposals_contractor_id', 'proposals', ['contractor_id'])
    op.create_index('ix_proposals_homeowner_id', 'proposals', ['homeowner_id'])
    op.create_index('ix_proposals_status', 'proposals', ['status'])
    op.create_index('ix_proposals_expiry_date', 'proposals', ['expiry_date'])
    op.create_index('ix_proposals_acceptance_operation_id', 'proposals', ['acceptance_operation_id'])
    op.create_index('ix_proposals_project_status', 'proposals', ['project_id', 'status'])

    # WHY: At most one live accepted proposal per project, whatever the
    # application does
    op.create_index(
        'uq_proposals_one_accepted_per_project',
        'proposals',
        ['project_id'],
        unique=True,
        postgresql_where=sa.text("status = 'accepted' AND is_deleted = false"),
    )

    op.create_table(
        'acceptance_operations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*ACCEPTANCE_STATUS, name='acceptanceoperationstatus'),
            nullable=False,
            server_default='in_progress',
        ),
        sa.Column('completed_steps', sa.JSON(), nullable=False),
        sa.Column('failed_step', sa.String(length=32), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('rejected_proposal_ids', sa.JSON(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_acceptance_operations_project_id', 'acceptance_operations', ['project_id'])
    op.create_index('ix_acceptance_operations_proposal_id', 'acceptance_operations', ['proposal_id'])
    op.create_index('ix_acceptance_operations_status', 'acceptance_operations', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.Enum(*AUDIT_ACTION, name='auditaction'), nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=False),
        sa.Column('resource_id', sa.String(length=64), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_resource_type', 'audit_logs', ['resource_type'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])

    # WHY: Audit logs are append-only at the database level too
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_log_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'Audit logs are immutable';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER audit_logs_immutable
        BEFORE UPDATE OR DELETE ON audit_logs
        FOR EACH ROW EXECUTE FUNCTION prevent_audit_log_modification();
    """)


def downgrade() -> None:
    """
    Drop all tables and enum types.
    """
    op.execute("DROP TRIGGER IF EXISTS audit_logs_immutable ON audit_logs")
    op.execute("DROP FUNCTION IF EXISTS prevent_audit_log_modification()")
    op.drop_table('audit_logs')
    op.drop_table('acceptance_operations')
    op.drop_index('uq_proposals_one_accepted_per_project', table_name='proposals')
    op.drop_table('proposals')
    op.drop_table('projects')

    for enum_name in (
        'auditaction',
        'acceptanceoperationstatus',
        'visibilitysetting',
        'rejectionreason',
        'proposalstatus',
        'projectstatus',
        'projecttype',
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
