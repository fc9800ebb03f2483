"""SQLAlchemy engine factory for the yields-fun persistent stores.

Engines are cached per URL so every cache store and watchlist in a process
shares one connection pool.
"""
import sqlalchemy as sa

_engines = {}


def get_engine(url: str = None, pool_size: int = 5, max_overflow: int = 10) -> sa.Engine:
    """Get or create a process-level engine for ``url``.

    Args:
        url: Database URL. If None, reads from config.YIELDS_CACHE_URL.
        pool_size: Persistent connections in the pool (non-SQLite only).
        max_overflow: Additional connections allowed on burst (non-SQLite only).

    Returns:
        SQLAlchemy Engine
    """
    if url is None:
        from yields_fun.config import YIELDS_CACHE_URL
        url = YIELDS_CACHE_URL

    if url not in _engines:
        if url.startswith('sqlite'):
            _engines[url] = sa.create_engine(
                url,
                connect_args={'check_same_thread': False},
                echo=False,
            )
        else:
            _engines[url] = sa.create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True,
                echo=False,
            )
    return _engines[url]


def upsert(engine: sa.Engine, table: sa.Table, values: dict, index_elements: list, update_columns: list):
    """Insert ``values`` or update ``update_columns`` on key conflict."""
    if engine.dialect.name == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        from sqlalchemy.dialects.sqlite import insert as dialect_insert

    stmt = dialect_insert(table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={col: getattr(stmt.excluded, col) for col in update_columns},
    )
    with engine.begin() as conn:
        conn.execute(stmt)
