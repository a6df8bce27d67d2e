from typing import Any

import sqlalchemy as sa
from alembic import op


def _get_bind(conn: sa.engine.Connection | None = None) -> sa.engine.Connection:
    if conn is not None:
        return conn
    return op.get_bind()


def table_exists(table_name: str, conn: sa.engine.Connection | None = None) -> bool:
    bind = _get_bind(conn)
    return table_name in sa.inspect(bind).get_table_names()


def pg_constraint_exists(constraint_name: str, conn: sa.engine.Connection | None = None) -> bool:
    """True when a constraint of any kind (including EXCLUDE) has this name."""
    bind = _get_bind(conn)
    row: Any = bind.execute(
        sa.text("SELECT 1 FROM pg_constraint WHERE conname = :name"), {"name": constraint_name}
    ).first()
    return row is not None
