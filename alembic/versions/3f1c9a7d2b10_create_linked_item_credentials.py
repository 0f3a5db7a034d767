"""create profiles and linked_item_credentials

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # profiles is owned by the identity provider; only create it where it is missing
    bind = op.get_bind()
    if not sa.inspect(bind).has_table('profiles'):
        op.create_table(
            'profiles',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('email', sa.String(length=320), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)

    op.create_table(
        'linked_item_credentials',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('item_id', sa.String(length=128), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('institution_id', sa.String(length=64), nullable=True),
        sa.Column('institution_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.UniqueConstraint('user_id', 'item_id', name='uq_linked_item_credentials_user_item'),
    )
    op.create_index('ix_linked_item_credentials_user_id', 'linked_item_credentials', ['user_id'])
    op.create_index(
        'ix_linked_item_credentials_active',
        'linked_item_credentials',
        ['user_id', 'is_active'],
        postgresql_where=sa.text('is_active = true'),
    )

    # Backend-only table: block direct client roles where row level security exists (Supabase)
    if bind.dialect.name == 'postgresql':
        op.execute('ALTER TABLE linked_item_credentials ENABLE ROW LEVEL SECURITY')


def downgrade() -> None:
    op.drop_index('ix_linked_item_credentials_active', table_name='linked_item_credentials')
    op.drop_index('ix_linked_item_credentials_user_id', table_name='linked_item_credentials')
    op.drop_table('linked_item_credentials')
