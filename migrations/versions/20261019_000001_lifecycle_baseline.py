"""Lifecycle engine baseline schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

from lifecycle_engine.db import SCHEMA_STATEMENTS


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TABLES = (
    "status_events",
    "inventory",
    "purchase_order_line_items",
    "purchase_orders",
    "sales_order_line_items",
    "sales_orders",
    "quote_revisions",
    "quotes",
    "rfqs",
    "prices",
    "contacts",
    "workspace_members",
)


def upgrade() -> None:
    for statement in SCHEMA_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
