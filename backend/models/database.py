from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    JSON,
    Index,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from contextlib import contextmanager
from pathlib import Path
import logging
import os

from config import settings
from models.types import LedgerAmount as Float
from utils.utcnow import utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()


# ==================== SWAP ACTIVITY ====================


class SwapActivity(Base):
    """One executed swap, the raw input of the weekly XP distribution."""

    __tablename__ = "swap_activities"

    id = Column(String, primary_key=True)
    user_id = Column(Integer, nullable=True)
    wallet_address = Column(String, nullable=False)
    swap_type = Column(String, nullable=False, default="CLASSIC")  # CLASSIC, LIMIT_ORDER
    tx_hash = Column(String, nullable=True)
    chain_id = Column(Integer, nullable=True)

    token_from_address = Column(String, nullable=False)
    token_from_symbol = Column(String, nullable=True)
    token_to_address = Column(String, nullable=False)
    token_to_symbol = Column(String, nullable=True)

    usd_volume = Column(Float, nullable=False, default=0.0)
    fees_usd = Column(Float, nullable=True)  # Backfilled by fee enrichment for limit orders
    price_impact = Column(Float, nullable=True)
    order_id = Column(String, nullable=True)  # External order id for limit orders
    status = Column(String, nullable=False, default="success")
    timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_swap_wallet_ts", "wallet_address", "timestamp"),
        Index("idx_swap_ts", "timestamp"),
        Index("idx_swap_status", "status"),
        Index("idx_swap_order", "order_id"),
    )


# ==================== XP DISTRIBUTION ====================


class XpDistribution(Base):
    """Settled weekly XP for one wallet; one row per (wallet, week_start)."""

    __tablename__ = "xp_distributions"

    id = Column(String, primary_key=True)
    wallet_address = Column(String, nullable=False)
    user_id = Column(Integer, nullable=True)
    week_start = Column(DateTime, nullable=False)
    week_end = Column(DateTime, nullable=False)
    league = Column(String, nullable=False, default="bronze")

    swap_xp_raw = Column(Float, nullable=False, default=0.0)
    swap_xp_decayed = Column(Float, nullable=False, default=0.0)
    pair_bonus_xp = Column(Float, nullable=False, default=0.0)
    total_xp = Column(Float, nullable=False, default=0.0)
    eligible_volume = Column(Float, nullable=False, default=0.0)
    total_fees = Column(Float, nullable=False, default=0.0)
    unique_pairs_count = Column(Integer, nullable=False, default=0)
    new_pairs_count = Column(Integer, nullable=False, default=0)
    total_swaps = Column(Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    calculated_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("wallet_address", "week_start", name="uq_xp_wallet_week"),
        Index("idx_xp_week", "week_start"),
        Index("idx_xp_total", "total_xp"),
    )


# ==================== DATABASE SETUP ====================

# SQLite-specific: improve concurrency (WAL + busy_timeout applied in _set_sqlite_pragma)
_engine_kw: dict = {"echo": False}
if "sqlite" in settings.DATABASE_URL:
    _engine_kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked

async_engine = create_async_engine(settings.DATABASE_URL, **_engine_kw)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for concurrent access from the wallet workers."""
    if "sqlite" not in settings.DATABASE_URL:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


event.listens_for(async_engine.sync_engine, "connect")(_set_sqlite_pragma)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


def _run_alembic_upgrade(connection) -> None:
    from alembic import command
    from alembic.config import Config

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", str(connection.engine.url))
    alembic_cfg.attributes["connection"] = connection
    command.upgrade(alembic_cfg, "head")


@contextmanager
def _sqlite_migration_lock():
    """Serialize Alembic upgrades across processes for SQLite databases."""
    if "sqlite" not in settings.DATABASE_URL or os.name != "posix":
        yield
        return

    import fcntl

    lock_path = Path(__file__).resolve().parents[1] / ".alembic.sqlite.lock"
    try:
        lock_file = lock_path.open("a", encoding="utf-8")
    except OSError:
        logger.warning("Cannot open migration lock file, proceeding without lock")
        yield
        return

    try:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
    finally:
        lock_file.close()


async def init_database():
    """Initialize database and apply Alembic migrations."""
    with _sqlite_migration_lock():
        async with async_engine.begin() as conn:
            await conn.run_sync(_run_alembic_upgrade)

