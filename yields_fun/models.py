"""SQLAlchemy Core table definitions for yields-fun.

Single source of truth for the persistent cache and watchlist schema.
"""
import sqlalchemy as sa

metadata = sa.MetaData()

# ─── 1. Cache entries (persistent cache tier) ───────────────────────────────
cache_entries = sa.Table('cache_entries', metadata,
    sa.Column('key', sa.Text, primary_key=True),
    sa.Column('value_json', sa.Text, nullable=False),
    sa.Column('expires_at', sa.Float, nullable=False),
    sa.Column('updated_at', sa.Float, nullable=False),
)

# ─── 2. Watchlist ───────────────────────────────────────────────────────────
watchlist_entries = sa.Table('watchlist_entries', metadata,
    sa.Column('token_address', sa.Text, primary_key=True),
    sa.Column('added_at', sa.Float, nullable=False),
    sa.Column('last_checked', sa.Float, nullable=False),
    sa.Column('thresholds_json', sa.Text, nullable=False),
    sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
)


def create_all(engine: sa.Engine):
    """Create any missing tables on ``engine``."""
    metadata.create_all(engine)
