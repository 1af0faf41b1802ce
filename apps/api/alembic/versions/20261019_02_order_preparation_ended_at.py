"""Record when a kitchen ticket left preparing.

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("orders", sa.Column("preparation_ended_at", sa.DateTime(timezone=True), nullable=True))
    op.execute(
        "UPDATE orders SET preparation_ended_at = fnbstatus_updated_at "
        "WHERE fnbstatus IS NOT NULL AND fnbstatus <> 'PREPARING'"
    )


def downgrade() -> None:
    op.drop_column("orders", "preparation_ended_at")
