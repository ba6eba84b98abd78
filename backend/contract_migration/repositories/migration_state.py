from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from contract_migration.core.errors import AlreadyMigratedError, NotFoundError, error_kind
from contract_migration.models.contracts import MigrationRecord, MigrationStatus

logger = logging.getLogger(__name__)

_ERROR_TEXT_LIMIT = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MigrationStateTracker:
    """
    Durable per-legacy-id migration status in ``migration_records``.
    A migrated record is terminal: later writes never move it back.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        if session_factory is None:
            from contract_migration.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def get_record(self, legacy_id: int, db: Session | None = None) -> MigrationRecord | None:
        own = db is None
        db = db or self._session_factory()
        try:
            return (
                db.query(MigrationRecord)
                .filter(MigrationRecord.legacy_contract_id == int(legacy_id))
                .first()
            )
        finally:
            if own:
                db.close()

    def is_migrated(self, legacy_id: int) -> bool:
        record = self.get_record(legacy_id)
        return record is not None and record.status == MigrationStatus.MIGRATED

    def is_settled(self, legacy_id: int) -> bool:
        record = self.get_record(legacy_id)
        return record is not None and record.status in MigrationStatus.SETTLED

    def settled_legacy_ids(self) -> set[int]:
        db = self._session_factory()
        try:
            rows = (
                db.query(MigrationRecord.legacy_contract_id)
                .filter(MigrationRecord.status.in_(MigrationStatus.SETTLED))
                .all()
            )
            return {int(r[0]) for r in rows}
        finally:
            db.close()

    def record_outcome(
        self,
        legacy_id: int,
        status: str,
        target_id: int | None = None,
        error: BaseException | None = None,
        actor: str = 'system',
        db: Session | None = None,
    ) -> str:
        """
        Upsert the record for ``legacy_id`` unless it is already migrated.
        When ``db`` is given the write joins the caller's transaction and is not committed here.
        Returns the status stored after the write.
        """
        if status not in MigrationStatus.ALL:
            raise ValueError(f'unknown migration status: {status}')
        own = db is None
        db = db or self._session_factory()
        try:
            now = _utcnow()
            values = {
                'legacy_contract_id': int(legacy_id),
                'target_contract_id': target_id,
                'status': status,
                'error_kind': error_kind(error) if error is not None else None,
                'last_error': str(error)[:_ERROR_TEXT_LIMIT] if error is not None else None,
                'attempts': 1,
                'actor': str(actor or 'system'),
                'attempted_at': now,
                'migrated_at': now if status == MigrationStatus.MIGRATED else None,
            }
            self._compare_and_write(db, values)
            db.flush()
            stored = (
                db.query(MigrationRecord)
                .filter(MigrationRecord.legacy_contract_id == int(legacy_id))
                .populate_existing()
                .one()
            )
            if stored.status == MigrationStatus.MIGRATED:
                conflicting_target = target_id is not None and stored.target_contract_id != target_id
                if status != MigrationStatus.MIGRATED or conflicting_target:
                    logger.info('[migration:%s] record already migrated, %s not recorded', legacy_id, status)
                    raise AlreadyMigratedError(
                        f'Contract {legacy_id} already migrated to {stored.target_contract_id}', int(legacy_id)
                    )
            if own:
                db.commit()
            return str(stored.status)
        except Exception:
            if own:
                db.rollback()
            raise
        finally:
            if own:
                db.close()

    def _compare_and_write(self, db: Session, values: dict) -> None:
        table = MigrationRecord.__table__
        dialect = db.get_bind().dialect.name
        if dialect in ('postgresql', 'sqlite'):
            if dialect == 'postgresql':
                insert_stmt = pg_insert(table).values(values)
            else:
                insert_stmt = sqlite_insert(table).values(values)
            excluded = insert_stmt.excluded
            stmt = insert_stmt.on_conflict_do_update(
                index_elements=[table.c.legacy_contract_id],
                set_={
                    'target_contract_id': excluded.target_contract_id,
                    'status': excluded.status,
                    'error_kind': excluded.error_kind,
                    'last_error': excluded.last_error,
                    'attempts': table.c.attempts + 1,
                    'actor': excluded.actor,
                    'attempted_at': excluded.attempted_at,
                    'migrated_at': excluded.migrated_at,
                },
                where=table.c.status != MigrationStatus.MIGRATED,
            )
            db.execute(stmt)
            return
        record = (
            db.query(MigrationRecord)
            .filter(MigrationRecord.legacy_contract_id == values['legacy_contract_id'])
            .with_for_update()
            .first()
        )
        if record is None:
            db.add(MigrationRecord(**values))
            return
        if record.status == MigrationStatus.MIGRATED:
            return
        for key in ('target_contract_id', 'status', 'error_kind', 'last_error', 'actor', 'attempted_at', 'migrated_at'):
            setattr(record, key, values[key])
        record.attempts = int(record.attempts or 0) + 1

    def get_statistics(self, total_legacy: int | None = None) -> dict:
        db = self._session_factory()
        try:
            rows = (
                db.query(MigrationRecord.status, func.count(MigrationRecord.id))
                .group_by(MigrationRecord.status)
                .all()
            )
            # ids unknown to the legacy store are not part of total_legacy
            orphaned = (
                db.query(func.count(MigrationRecord.id))
                .filter(MigrationRecord.status == MigrationStatus.FAILED)
                .filter(MigrationRecord.error_kind == NotFoundError.kind)
                .scalar()
            )
        finally:
            db.close()
        counts = {status: 0 for status in MigrationStatus.ALL}
        for status, count in rows:
            counts[str(status)] = int(count or 0)
        recorded_pending = counts[MigrationStatus.PENDING]
        if total_legacy is not None:
            touched = counts[MigrationStatus.MIGRATED] + counts[MigrationStatus.FAILED] + counts[MigrationStatus.SKIPPED]
            touched -= int(orphaned or 0)
            pending = max(0, int(total_legacy) - touched)
        else:
            pending = recorded_pending
        return {
            'pending': pending,
            'migrated': counts[MigrationStatus.MIGRATED],
            'failed': counts[MigrationStatus.FAILED],
            'skipped': counts[MigrationStatus.SKIPPED],
            'total_legacy': total_legacy,
        }
