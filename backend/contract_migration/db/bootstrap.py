from __future__ import annotations

import logging

from sqlalchemy import text

from contract_migration.db.base import Base
from contract_migration.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)


def bootstrap_database() -> None:
    """
    Ensure the target schema exists and check the write path with a no-op statement.
    Production deployments run the alembic revisions instead.
    """
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        db.execute(text('SELECT 1'))
        db.commit()
        logger.info('DB bootstrap completed (schema ensured)')
    except Exception:
        db.rollback()
        logger.exception('DB bootstrap failed')
        raise
    finally:
        db.close()
