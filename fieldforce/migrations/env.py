from alembic import context
from sqlalchemy import engine_from_config, pool

from fieldforce import models  # noqa: F401  (registers tables on Base.metadata)
from fieldforce.db import Base
from fieldforce.settings import get_settings, normalize_database_url

config = context.config
config.set_main_option("sqlalchemy.url", normalize_database_url(get_settings().database_url))

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
