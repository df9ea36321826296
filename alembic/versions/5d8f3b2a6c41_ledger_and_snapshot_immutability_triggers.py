"""ledger and snapshot immutability triggers

Revision ID: 5d8f3b2a6c41
Revises: 1c2e7a9b4d10
Create Date: 2026-10-19 09:40:02.554671

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa  # noqa: F401

from cmms.services.ledger_immutability import IMMUTABLE_TABLES, postgres_immutability_ddl


# revision identifiers, used by Alembic.
revision: str = '5d8f3b2a6c41'
down_revision: Union[str, Sequence[str], None] = '1c2e7a9b4d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    for table_name in IMMUTABLE_TABLES:
        op.execute(postgres_immutability_ddl(table_name))


def downgrade() -> None:
    """Downgrade schema."""
    for table_name in IMMUTABLE_TABLES:
        op.execute(
            f"""
            DROP TRIGGER IF EXISTS trg_{table_name}_block_update ON {table_name};
            DROP TRIGGER IF EXISTS trg_{table_name}_block_delete ON {table_name};
            DROP FUNCTION IF EXISTS {table_name}_block_mutation();
            """
        )
