from sqlalchemy import inspect

from fxledger.database import _engine_options, engine, init_db


def test_sqlite_connections_may_cross_threads():
    assert _engine_options("sqlite:///ledger.db") == {"connect_args": {"check_same_thread": False}}


def test_server_databases_check_pooled_connections():
    assert _engine_options("postgresql://localhost/fxledger") == {"pool_pre_ping": True}


def test_init_db_creates_tables():
    init_db()

    tables = set(inspect(engine).get_table_names())
    assert {"transactions", "user_settings"} <= tables
    columns = {c["name"] for c in inspect(engine).get_columns("transactions")}
    assert "renormalized_from" in columns
