# alembic/env.py
import logging
import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine

from alembic import context

# The alembic directory sits one level below the project root, which must be
# importable for 'survey_pulse'.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# survey_pulse.database loads .env and resolves DATABASE_URL on import
from survey_pulse import models  # noqa: E402,F401  registers the tables
from survey_pulse.database import DATABASE_URL, Base, sync_database_url  # noqa: E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Emits the SQL to the script output instead of connecting.
    """
    offline_url = sync_database_url(DATABASE_URL)
    logger.info("Offline migrations for %s", offline_url)
    context.configure(
        url=offline_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with a blocking engine."""
    online_url = sync_database_url(DATABASE_URL)
    logger.info("Online migrations for %s", online_url)
    connectable = create_engine(online_url)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
