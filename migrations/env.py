import logging
from logging.config import fileConfig

from alembic import context
from academy.app import create_app, db

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

app = create_app()

with app.app_context():
    from academy import models  # noqa: F401

    target_metadata = db.metadata


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    with app.app_context():
        url = config.get_main_option("sqlalchemy.url") or app.config[
            "SQLALCHEMY_DATABASE_URI"
        ]
        context.configure(
            url=url,
            target_metadata=target_metadata,
            literal_binds=True,
            render_as_batch=_is_sqlite(url),
            dialect_opts={"paramstyle": "named"},
        )

        with context.begin_transaction():
            context.run_migrations()


def run_migrations_online() -> None:
    with app.app_context():
        connectable = db.engine
        logger.info("Running migrations against %s", connectable.url.render_as_string(hide_password=True))

        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )

            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
