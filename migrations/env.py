"""Alembic migration environment.

The database URL is injected by magz.migrations (sqlalchemy.url), so
migrations run against the same cache file the application uses.
"""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine
from sqlmodel import SQLModel

# Import all model modules so that their tables are registered on
# SQLModel.metadata before Alembic inspects it.
from magz import models as _models  # noqa: F401

target_metadata = SQLModel.metadata


def run_migrations_online() -> None:
    """Run migrations with a real database connection."""
    url = context.config.get_main_option("sqlalchemy.url")
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            context.configure(
                connection=conn,
                target_metadata=target_metadata,
                render_as_batch=True,  # SQLite ALTER support
            )

            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


# Only online mode is supported.
if context.is_offline_mode():
    raise RuntimeError(
        "Offline migration mode is not supported. "
        "Run without --sql."
    )
else:
    run_migrations_online()
