import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from devday.app import create_app, db

config = context.config

fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

app = create_app({"CERT_SWEEP_ENABLED": False})
target_metadata = db.metadata


def _database_url() -> str:
    # `alembic -x db_url=...` beats alembic.ini, which beats the app config
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    return override or config.get_main_option("sqlalchemy.url") or app.config[
        "SQLALCHEMY_DATABASE_URI"
    ]


def _skip_empty_autogenerate(migration_context, revision, directives):
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("no schema changes detected for teams/events")


def _configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
        "process_revision_directives": _skip_empty_autogenerate,
    }


def run_migrations_offline() -> None:
    url = _database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = _database_url()
    with app.app_context():
        if url == app.config["SQLALCHEMY_DATABASE_URI"]:
            connectable = db.engine
        else:
            connectable = create_engine(url)

        with connectable.connect() as connection:
            context.configure(connection=connection, **_configure_kwargs(url))
            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    logger.info("emitting SQL for %s", target_metadata.sorted_tables)
    run_migrations_offline()
else:
    run_migrations_online()
