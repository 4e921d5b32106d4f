"""
core/db.py -- SQLAlchemy engine factory shared by every store.

Each repository (auth/directory.py, auth/provider.py's local provider,
bookings/store.py) owns its own tables and MetaData but builds its engine
here so SQLite connections get the same settings everywhere.

Layer rule: core/ is the kernel. No imports from api/, auth/, or bookings/.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine for db_url.

    SQLite: check_same_thread=False because FastAPI runs sync handlers in a
    thread pool, and WAL mode on every new connection.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine
