"""Record when a login request's browsing session ended

Revision ID: 20261017_lr_session_end
Revises: 20261001_initial_schema
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_lr_session_end"
down_revision = "20261001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("login_requests", schema=None) as batch_op:
        batch_op.add_column(sa.Column("session_end_time", sa.DateTime(timezone=True), nullable=True))


def downgrade():
    with op.batch_alter_table("login_requests", schema=None) as batch_op:
        batch_op.drop_column("session_end_time")
