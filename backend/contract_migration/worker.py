import logging
import os
import signal
import sys
import threading

from contract_migration.core.logging_config import setup_logging
from contract_migration.services.contract_migration_service import ContractMigrationService


logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging()
    actor = os.getenv("MIGRATION_ACTOR", "migration-worker")
    cancel_event = threading.Event()

    def _shutdown_handler(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info("migration worker received signal %s, finishing running contracts...", signum)
        cancel_event.set()

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)

    logger.info("migration worker started: actor=%s", actor)
    result = ContractMigrationService().migrate_all(actor, cancel_event=cancel_event)
    for entry in result.errors:
        logger.warning("contract %s failed (%s): %s", entry.legacy_id, entry.kind, entry.message)
    logger.info("migration worker stopped: %s", result.message)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
