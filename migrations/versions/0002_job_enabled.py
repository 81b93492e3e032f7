"""Per-job enabled switch for recurring jobs

Revision ID: 0002_job_enabled
Revises: 0001_initial
Create Date: 2026-10-18 12:00:00.000000

Lets operators switch a recurring job off and back on without cancelling it.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_job_enabled'
down_revision: Union[str, None] = '0001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'jobs',
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
    )


def downgrade() -> None:
    op.drop_column('jobs', 'enabled')
