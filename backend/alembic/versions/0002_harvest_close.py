"""Harvest close step: closed_at / closed_by.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.add_column("harvests", sa.Column("closed_at", sa.DateTime()))
    op.add_column("harvests", sa.Column("closed_by", sa.String(36)))


def downgrade() -> None:
    op.drop_column("harvests", "closed_by")
    op.drop_column("harvests", "closed_at")
