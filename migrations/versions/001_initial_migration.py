"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create documents table (users, returnForms and punchRecords collections)
    op.create_table('documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('doc_id', sa.String(length=128), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('collection', 'doc_id', name='uix_collection_doc')
    )
    op.create_index(op.f('ix_documents_id'), 'documents', ['id'], unique=False)
    op.create_index('ix_documents_collection_created', 'documents', ['collection', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_documents_collection_created', table_name='documents')
    op.drop_index(op.f('ix_documents_id'), table_name='documents')
    op.drop_table('documents')
