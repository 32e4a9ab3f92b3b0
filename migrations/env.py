from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlmodel import SQLModel

import app.models  # noqa: F401 - register tables
from app.core.config import settings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def _sync_database_url(database_url: str) -> str:
    """Migrations run on a sync driver; strip asyncpg/aiosqlite from the URL."""
    url = make_url(database_url)
    if url.drivername in ("postgresql+asyncpg", "postgres"):
        url = url.set(drivername="postgresql")
    elif url.drivername == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite")
    return url.render_as_string(hide_password=False)


sync_database_url = _sync_database_url(settings.database_url)
config.set_main_option("sqlalchemy.url", sync_database_url.replace("%", "%%"))


def run_migrations_offline() -> None:
    context.configure(
        url=sync_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(sync_database_url)

    with connectable.connect() as connection:
        # compare_type catches TIMESTAMP WITH/WITHOUT TIME ZONE drift on autogenerate
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
