"""Initialize database tables."""
import logging
from pathlib import Path
from typing import Optional
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.db.session import engine as default_engine, Base
from app.db.models import NfcDevice, LoyaltyTransaction, PendingReward, SecurityEvent
from app.core.config import settings

logger = logging.getLogger(__name__)

EXPECTED_TABLES = ['nfc_devices', 'loyalty_transactions', 'pending_rewards', 'security_events']


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all database tables."""
    bind = bind or default_engine

    # Ensure database directory exists for SQLite
    if bind.url.get_backend_name() == "sqlite":
        db_path = bind.url.database
        if db_path and db_path != ":memory:":
            db_file = Path(db_path).resolve()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Database file path: {db_file}")

    # Models must be registered with Base.metadata before create_all
    _ = NfcDevice, LoyaltyTransaction, PendingReward, SecurityEvent

    try:
        Base.metadata.create_all(bind=bind)

        tables = inspect(bind).get_table_names()
        missing_tables = [t for t in EXPECTED_TABLES if t not in tables]
        if missing_tables:
            logger.warning(f"Some tables were not created: {missing_tables}")
        else:
            logger.info(f"All expected tables created: {EXPECTED_TABLES}")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)
        raise  # Re-raise to ensure startup fails if DB init fails


if __name__ == "__main__":
    # Setup basic logging for CLI usage
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    logger.info(f"Initializing database at {settings.database_url}")
    init_db()
    logger.info("Database initialization complete")
