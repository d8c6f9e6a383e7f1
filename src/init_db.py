"""Provision the message board database and its ``threads`` table."""

import os

import psycopg
from psycopg import sql

from db_config import get_admin_conn_info, get_db_conn_info, get_db_name
from board.store import ThreadStore


def create_db_if_not_exists(connect=psycopg.connect):
    """Create the board database when unmanaged local defaults are used.

    If ``DATABASE_URL`` is set, provisioning is assumed to be handled
    elsewhere and this function returns immediately.

    :param connect: Connection factory, ``psycopg.connect`` by default.
    :type connect: collections.abc.Callable
    :returns: ``True`` when the database was created.
    :rtype: bool
    """
    if os.getenv('DATABASE_URL'):
        return False
    dbname = get_db_name()
    with connect(get_admin_conn_info(), autocommit=True) as conn:
        with conn.cursor() as cur:
            cur.execute('SELECT 1 FROM pg_database WHERE datname = %s', (dbname,))
            if cur.fetchone():
                print(f'Database {dbname} already exists.')
                return False
            print(f'Database {dbname} not found. Creating it now...')
            cur.execute(
                sql.SQL('CREATE DATABASE {db_name}').format(db_name=sql.Identifier(dbname))
            )
            return True


def create_schema(connect=psycopg.connect):
    """Create the ``threads`` table and recency index if they are missing."""
    ThreadStore(get_db_conn_info(), connect=connect).create_schema()


if __name__ == '__main__':
    create_db_if_not_exists()
    create_schema()
    print('SUCCESS: threads table ready')
