"""Board database settings read from the environment and a project ``.env``."""

import os
from pathlib import Path

from dotenv import load_dotenv
from psycopg.conninfo import make_conninfo

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"

DEFAULT_DB_NAME = "message_board"
MAINTENANCE_DB_NAME = "postgres"


def load_env(path=ENV_FILE):
    """Load ``path`` into ``os.environ`` without overriding exported values.

    :returns: ``True`` when the file existed and set at least one variable.
    :rtype: bool
    """
    return load_dotenv(path, override=False)


load_env()


def get_db_name() -> str:
    return os.getenv("DB_NAME", DEFAULT_DB_NAME)


def get_db_conn_info() -> str:
    """Return the psycopg connection string for the board database.

    ``DATABASE_URL`` is used verbatim when set. Otherwise ``DB_HOST``,
    ``DB_PORT``, ``DB_NAME``, ``DB_USER`` and ``DB_PASSWORD`` are combined;
    unset credentials are left to libpq defaults.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url
    return make_conninfo(
        host=os.getenv("DB_HOST", "localhost"),
        port=os.getenv("DB_PORT", "5432"),
        dbname=get_db_name(),
        user=os.getenv("DB_USER"),
        password=os.getenv("DB_PASSWORD"),
    )


def get_admin_conn_info() -> str:
    """Same server and role as the board database, on the maintenance db.

    Used by ``init_db`` to issue ``CREATE DATABASE``.
    """
    return make_conninfo(get_db_conn_info(), dbname=MAINTENANCE_DB_NAME)
