"""unique open downtime per asset

Revision ID: 9a4c6e1f2b73
Revises: 5d8f3b2a6c41
Create Date: 2026-10-19 10:05:17.930412

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9a4c6e1f2b73'
down_revision: Union[str, Sequence[str], None] = '5d8f3b2a6c41'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_index(
        "uq_downtime_logs_open_asset",
        "downtime_logs",
        ["asset_id"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_downtime_logs_open_asset", table_name="downtime_logs")
